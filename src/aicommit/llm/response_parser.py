"""
Tolerant parsing of Ollama's newline-delimited JSON responses.

Each line of a ``/api/generate`` response is an independent JSON object
carrying a ``response`` text fragment, a ``done`` flag and optionally a
``thinking`` fragment or an ``error``. Some servers and proxies emit lines
that are not quite valid JSON (raw control characters inside strings,
trailing garbage), so lines are decoded by an ordered chain of parsers:

1. :class:`JSONResponseParser` - the standard strict decoder.
2. :class:`LenientJSONResponseParser` - ``json.JSONDecoder(strict=False)``
   decoding every object on the line (concatenated objects allowed) and
   skipping junk between and after them.
3. :class:`PatternResponseParser` - regular expressions over the raw text.

A parser either handles the whole line set or fails; the first one that
succeeds alone decides the fragments.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from aicommit.llm.ollama_client import LLMError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


PREVIEW_CHARS = 300


class ResponseParseError(Exception):
    """Raised by a single parser when it cannot handle the line set."""

    pass


class ParseFailure(LLMError):
    """Raised when no parser could extract anything from a non-empty response."""

    def __init__(self, attempted: Sequence[str], raw_text: str, reason: str = "") -> None:
        self.attempted = tuple(attempted)
        self.preview = raw_text[:PREVIEW_CHARS]
        lines = ["Failed to parse response from Ollama."]
        lines.append(f"Parsers attempted: {', '.join(self.attempted) or 'none'}")
        if reason:
            lines.append(f"Parse error: {reason}")
        lines.append(f"Response preview (first {PREVIEW_CHARS} chars):")
        lines.append(self.preview)
        lines.append(
            "Check that the server speaks the Ollama /api/generate protocol "
            "and rerun with --verbose for details."
        )
        super().__init__("\n".join(lines))


@dataclass(frozen=True)
class ResponseFragment:
    """The useful content of one response line."""

    text: str = ""
    is_final: bool = False
    error_text: Optional[str] = None
    thinking: str = ""

    @property
    def has_error(self) -> bool:
        return self.error_text is not None


@dataclass(frozen=True)
class ParseResult:
    fragments: Tuple[ResponseFragment, ...]
    parser_name: str
    attempted: Tuple[str, ...]


def _fragment_from_object(data: Any) -> ResponseFragment:
    if not isinstance(data, dict):
        raise ResponseParseError(f"expected a JSON object, got {type(data).__name__}")
    text = data.get("response")
    thinking = data.get("thinking")
    error = data.get("error")
    if error is not None and not isinstance(error, str):
        error = json.dumps(error)
    return ResponseFragment(
        text=text if isinstance(text, str) else "",
        is_final=data.get("done") is True,
        error_text=error,
        thinking=thinking if isinstance(thinking, str) else "",
    )


class ResponseParser:
    """Base class for one stage of the parser chain."""

    name = "base"

    def parse_line(self, line: str) -> List[ResponseFragment]:
        raise NotImplementedError

    def parse(self, lines: Sequence[str]) -> List[ResponseFragment]:
        """Parse every line, failing the whole stage on the first bad line."""
        fragments = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                fragments.extend(self.parse_line(line))
            except ResponseParseError as exc:
                raise ResponseParseError(f"line {number}: {exc}") from exc
        return fragments


class JSONResponseParser(ResponseParser):
    """Strict JSON, one object per line."""

    name = "json"

    def parse_line(self, line: str) -> List[ResponseFragment]:
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ResponseParseError(str(exc)) from exc
        return [_fragment_from_object(data)]


class LenientJSONResponseParser(ResponseParser):
    """JSON allowing control characters in strings, several objects per line and junk around them."""

    name = "lenient-json"

    def __init__(self) -> None:
        self._decoder = json.JSONDecoder(strict=False)

    def parse_line(self, line: str) -> List[ResponseFragment]:
        # Several objects may share a line when the newline between them was lost.
        start = line.find("{")
        if start == -1:
            raise ResponseParseError("no JSON object found")
        fragments = []
        while start != -1:
            try:
                data, end = self._decoder.raw_decode(line, start)
            except json.JSONDecodeError as exc:
                raise ResponseParseError(str(exc)) from exc
            fragments.append(_fragment_from_object(data))
            start = line.find("{", end)
        return fragments


_STRING_VALUE = r'\s*:\s*"((?:[^"\\]|\\.)*)"'
_BASIC_ESCAPES = (
    ("\\n", "\n"),
    ("\\t", "\t"),
    ("\\r", ""),
    ('\\"', '"'),
    ("\\/", "/"),
    ("\\\\", "\\"),
)


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"', strict=False)
    except json.JSONDecodeError:
        for escaped, plain in _BASIC_ESCAPES:
            value = value.replace(escaped, plain)
        return value


class PatternResponseParser(ResponseParser):
    """Regular-expression extraction for lines no JSON decoder accepts."""

    name = "pattern"

    _response = re.compile(r'"response"' + _STRING_VALUE, re.DOTALL)
    _thinking = re.compile(r'"thinking"' + _STRING_VALUE, re.DOTALL)
    _error = re.compile(r'"error"' + _STRING_VALUE, re.DOTALL)
    _done = re.compile(r'"done"\s*:\s*true')

    def parse_line(self, line: str) -> List[ResponseFragment]:
        response = self._response.search(line)
        thinking = self._thinking.search(line)
        error = self._error.search(line)
        done = self._done.search(line)
        if not (response or thinking or error or done):
            return []
        fragment = ResponseFragment(
            text=_unescape(response.group(1)) if response else "",
            is_final=done is not None,
            error_text=_unescape(error.group(1)) if error else None,
            thinking=_unescape(thinking.group(1)) if thinking else "",
        )
        return [fragment]

    def parse(self, lines: Sequence[str]) -> List[ResponseFragment]:
        fragments = super().parse(lines)
        if not fragments:
            raise ResponseParseError("no response fields found")
        return fragments


def default_parsers() -> Tuple[ResponseParser, ...]:
    """Build the parser chain in preference order."""
    return (JSONResponseParser(), LenientJSONResponseParser(), PatternResponseParser())


def parse_response_lines(
    lines: Sequence[str], parsers: Sequence[ResponseParser]
) -> ParseResult:
    """Extract fragments from ``lines`` with the first parser that succeeds.

    Raises
    ------
    ParseFailure
        If every parser in the chain fails.
    """
    attempted: List[str] = []
    reason = ""
    for parser in parsers:
        attempted.append(parser.name)
        try:
            fragments = parser.parse(lines)
        except ResponseParseError as exc:
            logger.debug("Parser '%s' failed: %s", parser.name, exc)
            reason = f"{parser.name}: {exc}"
            continue
        logger.debug("Parser '%s' extracted %d fragment(s)", parser.name, len(fragments))
        return ParseResult(
            fragments=tuple(fragments), parser_name=parser.name, attempted=tuple(attempted)
        )
    raise ParseFailure(attempted, "\n".join(lines), reason)
