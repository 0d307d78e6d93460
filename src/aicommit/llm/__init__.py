"""
Language model integration for aicommit.

This package contains the :class:`OllamaClient` for communicating with
an Ollama LLM server, the tolerant response parsers, and the
:class:`CommitMessageGenerator` which turns a staged diff into a commit
message.
"""

from .ollama_client import (  # noqa: F401
    GenerationError,
    LLMError,
    NoModelsInstalled,
    OllamaClient,
    ServiceUnavailable,
    TimedOutNoOutput,
    TimedOutThinkingOnly,
)
from .response_parser import ParseFailure  # noqa: F401
from .commit_message_generator import CommitMessageGenerator, resolve_model  # noqa: F401
