"""
Client for interacting with an Ollama LLM server.

This client wraps HTTP requests to the Ollama REST API. It lists installed
models via ``/api/tags`` and issues streamed generation requests via
``/api/generate``. The generation stream is read line by line under an
overall deadline; whatever arrived before the deadline is handed back so the
caller can decide whether partial output is usable.

Transport failures are reported with subclasses of :class:`LLMError`, one
per remedy the user has to apply.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests


logger = logging.getLogger(__name__)
# Attach a null handler to avoid errors when the root logger is missing a
# stream. Messages will still propagate to the root logger if configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# Seconds allowed for establishing the TCP connection and for model listing.
CONNECT_TIMEOUT = 10.0


class LLMError(Exception):
    """Raised when communication with the LLM server fails."""

    pass


class ServiceUnavailable(LLMError):
    """Raised when the Ollama server cannot be reached."""

    def __init__(self, url: str, reason: object = None) -> None:
        self.url = url
        message = (
            f"Ollama is not running or not accessible at {url}. "
            "Please start Ollama (`ollama serve`) or check OLLAMA_HOST."
        )
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class NoModelsInstalled(LLMError):
    """Raised when the server reports an empty model list."""

    def __init__(self) -> None:
        super().__init__(
            "No models found in Ollama. Please install a model first, "
            "e.g. `ollama pull llama3`, or set OLLAMA_MODEL."
        )


class GenerationError(LLMError):
    """Raised when the server reports an explicit error for a generation."""

    def __init__(self, error_text: str) -> None:
        self.error_text = error_text
        super().__init__(f"Error from Ollama: {error_text}")


class TimedOutNoOutput(LLMError):
    """Raised when the timeout elapsed before any response text arrived."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"Request timed out after {timeout:g} seconds with no response. "
            "Increase the timeout with OLLAMA_TIMEOUT, e.g. `export OLLAMA_TIMEOUT=300`."
        )


class TimedOutThinkingOnly(LLMError):
    """Raised when the model only produced reasoning output before the timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"Model timed out after {timeout:g} seconds while still thinking; "
            "no response was generated yet. This model needs more time: "
            "increase OLLAMA_TIMEOUT, e.g. `export OLLAMA_TIMEOUT=300`."
        )


def strip_thinking_tags(text: str) -> str:
    """Remove thinking process tags from LLM responses.

    Many modern LLMs with reasoning capabilities output their thinking
    process in XML-like tags such as <think>, <thinking>, <thought>,
    or <reasoning>. This function strips these tags and their contents
    from the response, leaving only the actual output.

    Parameters
    ----------
    text : str
        The raw LLM response text.

    Returns
    -------
    str
        The text with all thinking tags removed.

    Examples
    --------
    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    thinking_patterns = [
        r"<think>.*?</think>",
        r"<thinking>.*?</thinking>",
        r"<thought>.*?</thought>",
        r"<reasoning>.*?</reasoning>",
    ]

    result = text
    for pattern in thinking_patterns:
        result = re.sub(pattern, "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


_UNCLOSED_THINKING = re.compile(r"<(think|thinking|thought|reasoning)>.*\Z", re.DOTALL | re.IGNORECASE)


def strip_unclosed_thinking(text: str) -> str:
    """Drop an opening thinking tag that was never closed, and everything after it.

    A reasoning model cut off by a timeout leaves its ``<think>`` block open.
    Call this after :func:`strip_thinking_tags` so only unclosed tags remain.

    >>> strip_unclosed_thinking("<think>Okay, let me look at")
    ''
    """
    return _UNCLOSED_THINKING.sub("", text).strip()


@dataclass(frozen=True)
class GenerationRequest:
    """A single generation request; built once per invocation."""

    model: str
    prompt: str
    stream: bool = True

    def to_payload(self) -> Dict[str, Any]:
        return {"model": self.model, "prompt": self.prompt, "stream": self.stream}


@dataclass(frozen=True)
class StreamResult:
    """Raw lines received from ``/api/generate``.

    ``timed_out`` is True when reading stopped before the server finished,
    because the deadline passed or the stream was cut off.
    """

    lines: Tuple[str, ...] = ()
    timed_out: bool = False

    @property
    def raw_text(self) -> str:
        return "\n".join(self.lines)


@dataclass
class OllamaClient:
    """Client for interacting with an Ollama server.

    Parameters
    ----------
    base_url : str
        Base URL of the Ollama server, e.g. ``"http://localhost"``.
    port : int
        Port number of the Ollama server, e.g. ``11434``.
    """

    base_url: str
    port: int

    def _endpoint(self, path: str) -> str:
        return f"{self.base_url}:{self.port}{path}"

    def list_models(self) -> List[str]:
        """Return the names of installed models in server order.

        Raises
        ------
        ServiceUnavailable
            If the server cannot be reached.
        LLMError
            If the server answers with an error status or an unreadable body.
        """
        url = self._endpoint("/api/tags")
        logger.debug("Fetching available models from %s", url)
        try:
            response = requests.get(url, timeout=CONNECT_TIMEOUT)
        except requests.RequestException as exc:
            logger.error("Failed to connect to LLM: %s", exc)
            raise ServiceUnavailable(self._endpoint(""), exc) from exc
        if response.status_code != 200:
            logger.error(
                "LLM returned non-200 status %s: %s", response.status_code, response.text
            )
            raise LLMError(
                f"Failed to fetch models from Ollama: status {response.status_code}: {response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Failed to parse model list: %s", exc)
            raise LLMError("Failed to parse model list from Ollama") from exc

        models = data.get("models") if isinstance(data, dict) else None
        names: List[str] = []
        for entry in models or []:
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and name.strip():
                names.append(name)
        logger.debug("Server reports %d model(s)", len(names))
        return names

    def generate_stream(self, request: GenerationRequest, timeout: float) -> StreamResult:
        """Send a generation request and collect the response lines.

        Parameters
        ----------
        request : GenerationRequest
            Model, prompt and stream flag to send.
        timeout : float
            Overall deadline in seconds for the whole response. It is checked
            after each line; a single socket read is bounded by the same
            value, so a stream that stalls just before the deadline can take
            up to twice ``timeout`` to end.

        Returns
        -------
        StreamResult
            The non-empty response lines in arrival order, flagged as timed
            out when reading stopped early.

        Raises
        ------
        ServiceUnavailable
            If the server cannot be reached.
        GenerationError
            If the server rejects the request with an error message.
        LLMError
            If the server returns any other non-200 status.
        """
        url = self._endpoint("/api/generate")
        payload = request.to_payload()
        logger.debug(
            "Sending request to LLM at %s (model=%s, stream=%s, prompt=%d chars)",
            url,
            request.model,
            request.stream,
            len(request.prompt),
        )
        deadline = time.monotonic() + timeout
        try:
            response = requests.post(
                url,
                json=payload,
                stream=True,
                timeout=(CONNECT_TIMEOUT, timeout),
            )
        except requests.ConnectionError as exc:
            logger.error("Failed to connect to LLM: %s", exc)
            raise ServiceUnavailable(self._endpoint(""), exc) from exc
        except requests.Timeout as exc:
            logger.warning("LLM did not answer within %s seconds: %s", timeout, exc)
            return StreamResult(lines=(), timed_out=True)

        try:
            if response.status_code != 200:
                self._raise_for_status(response)
            return self._read_lines(response, deadline)
        finally:
            response.close()

    @staticmethod
    def _raise_for_status(response: Any) -> None:
        body = response.text
        logger.error("LLM returned non-200 status %s: %s", response.status_code, body)
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("error"), str):
            raise GenerationError(data["error"])
        raise LLMError(f"LLM returned status {response.status_code}: {body}")

    @staticmethod
    def _read_lines(response: Any, deadline: float) -> StreamResult:
        lines: List[str] = []
        timed_out = False
        try:
            for raw in response.iter_lines():
                if raw:
                    if isinstance(raw, bytes):
                        raw = raw.decode("utf-8", errors="replace")
                    lines.append(raw)
                if time.monotonic() >= deadline:
                    logger.warning("Deadline reached after %d line(s); stopping", len(lines))
                    timed_out = True
                    break
        except requests.RequestException as exc:
            # requests reports read timeouts during iteration as ConnectionError
            logger.warning("Stream interrupted after %d line(s): %s", len(lines), exc)
            timed_out = True
        logger.debug("Received %d response line(s), timed_out=%s", len(lines), timed_out)
        return StreamResult(lines=tuple(lines), timed_out=timed_out)
