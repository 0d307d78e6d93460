"""
Commit message generation using an LLM.

This module provides :func:`resolve_model`, which decides which model to
ask, and the :class:`CommitMessageGenerator` class, which sends the staged
diff to the Ollama server (via :class:`OllamaClient`) and assembles the
streamed fragments into a single-line commit message.

When the request times out, partial output is still used as long as at
least one response fragment arrived.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from aicommit.llm.ollama_client import (
    GenerationError,
    GenerationRequest,
    LLMError,
    NoModelsInstalled,
    OllamaClient,
    TimedOutNoOutput,
    TimedOutThinkingOnly,
    strip_thinking_tags,
    strip_unclosed_thinking,
)
from aicommit.llm.response_parser import (
    ParseFailure,
    ResponseParser,
    default_parsers,
    parse_response_lines,
)


logger = logging.getLogger(__name__)
# Attach a null handler to prevent logging errors when no handlers are
# configured on the root logger. Logs will propagate when configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


PROMPT_TEMPLATE = """Generate a concise git commit message based on the following diff.
The commit message should follow conventional commit format if applicable.
Only return the commit message, no explanations.

```diff
{diff}
```"""


def build_prompt(diff: str) -> str:
    """Embed the diff verbatim in the commit message prompt."""
    return PROMPT_TEMPLATE.format(diff=diff)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace (newlines included) to single spaces and trim."""
    return re.sub(r"\s+", " ", text).strip()


def apply_prefix(message: str, prefix: Optional[str]) -> str:
    """Return ``"<prefix>: <message>"`` when a non-empty prefix is given."""
    if prefix and prefix.strip():
        return f"{prefix.strip()}: {message}"
    return message


def resolve_model(client: OllamaClient, configured_name: Optional[str]) -> str:
    """Pick the model to use.

    A configured name is returned unchanged without contacting the server.
    Otherwise the first model the server lists is used; list order is
    whatever the server returns.

    Raises
    ------
    ServiceUnavailable
        If the server cannot be reached.
    NoModelsInstalled
        If the server has no models.
    """
    if configured_name:
        logger.debug("Using configured model: %s", configured_name)
        return configured_name
    models = client.list_models()
    if not models:
        raise NoModelsInstalled()
    logger.debug("Using first listed model: %s", models[0])
    return models[0]


class CommitMessageGenerator:
    """Generate a commit message for a staged diff."""

    def __init__(
        self,
        ollama_client: OllamaClient,
        parsers: Optional[Sequence[ResponseParser]] = None,
        stream: bool = True,
    ) -> None:
        self.ollama_client = ollama_client
        self.parsers = tuple(parsers) if parsers is not None else default_parsers()
        self.stream = stream

    def generate(self, model: str, diff: str, timeout: float) -> str:
        """Ask ``model`` for a commit message describing ``diff``.

        Parameters
        ----------
        model : str
            Name of the model to use.
        diff : str
            The staged diff, embedded verbatim in the prompt.
        timeout : float
            Overall deadline for the generation request in seconds.

        Returns
        -------
        str
            The whitespace-normalized commit message.

        Raises
        ------
        GenerationError
            If the server reported an error.
        TimedOutNoOutput
            If the timeout elapsed before any response text arrived.
        TimedOutThinkingOnly
            If only reasoning output arrived before the timeout.
        ParseFailure
            If no parser could extract any text from the response.
        LLMError
            For other transport failures.
        """
        request = GenerationRequest(model=model, prompt=build_prompt(diff), stream=self.stream)
        result = self.ollama_client.generate_stream(request, timeout)

        if not result.lines:
            if result.timed_out:
                raise TimedOutNoOutput(timeout)
            raise LLMError("Ollama returned an empty response")

        try:
            parsed = parse_response_lines(result.lines, self.parsers)
        except ParseFailure:
            if result.timed_out:
                if '"thinking"' in result.raw_text:
                    raise TimedOutThinkingOnly(timeout)
                raise TimedOutNoOutput(timeout)
            raise

        for fragment in parsed.fragments:
            if fragment.has_error:
                raise GenerationError(fragment.error_text or "")

        raw_message = "".join(f.text for f in parsed.fragments if f.text)
        visible = strip_thinking_tags(raw_message)
        if result.timed_out:
            visible = strip_unclosed_thinking(visible)
        message = normalize_whitespace(visible)

        if not message:
            saw_thinking = any(f.thinking for f in parsed.fragments) or (
                visible != raw_message.strip()
            )
            if result.timed_out:
                if saw_thinking:
                    raise TimedOutThinkingOnly(timeout)
                raise TimedOutNoOutput(timeout)
            raise ParseFailure(
                parsed.attempted,
                result.raw_text,
                f"{parsed.parser_name}: no response text in {len(parsed.fragments)} fragment(s)",
            )

        if result.timed_out:
            logger.warning("Request timed out; using partial response")
        return message
