"""
Configuration loader for aicommit.

Settings are resolved once at process start and handed to every component
as an explicit :class:`Settings` value. Sources, lowest precedence first:

1. Built-in defaults (local Ollama server, 120 second timeout, streaming).
2. An optional JSON file named ``config.json`` in ``~/.aicommit/``.
3. Environment variables ``OLLAMA_HOST``, ``OLLAMA_MODEL`` and
   ``OLLAMA_TIMEOUT``.

A missing file is fine. A malformed file, a key of the wrong type or an
unusable environment value raises :class:`ConfigError`.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)
# Attach a null handler to avoid "No handler" warnings in environments where
# the root logger is not configured. The CLI reconfigures logging explicitly.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


DEFAULT_BASE_URL = "http://localhost"
DEFAULT_PORT = 11434
DEFAULT_TIMEOUT = 120.0

CONFIG_FILE_NAME = "config.json"

ENV_HOST = "OLLAMA_HOST"
ENV_MODEL = "OLLAMA_MODEL"
ENV_TIMEOUT = "OLLAMA_TIMEOUT"

SCHEME_PORTS = {"http": 80, "https": 443}


class ConfigError(Exception):
    """Raised when the configuration file or environment is invalid."""

    pass


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings.

    Parameters
    ----------
    base_url : str
        Scheme and host of the Ollama server, e.g. ``"http://localhost"``.
    port : int
        Port of the Ollama server.
    model : str, optional
        Model to use. ``None`` means "ask the server and take the first".
    request_timeout : float
        Upper bound in seconds for the generation request.
    stream : bool
        Whether to request a streamed response.
    config_path : Path, optional
        The configuration file that was read, if any.
    """

    base_url: str = DEFAULT_BASE_URL
    port: int = DEFAULT_PORT
    model: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT
    stream: bool = True
    config_path: Optional[Path] = None


def _get_config_directory() -> Path:
    """Return the directory holding the optional aicommit config file."""
    return Path.home() / ".aicommit"


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    try:
        content = config_path.read_text(encoding="utf-8")
        data = json.loads(content)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    # bool is a subclass of int, so reject it explicitly for numeric keys
    if "base_url" in data and not isinstance(data["base_url"], str):
        raise ConfigError("'base_url' must be a string")
    if "port" in data and (
        not isinstance(data["port"], int) or isinstance(data["port"], bool)
    ):
        raise ConfigError("'port' must be an integer")
    if "model" in data and not isinstance(data["model"], str):
        raise ConfigError("'model' must be a string")
    if "request_timeout" in data and (
        not isinstance(data["request_timeout"], (int, float))
        or isinstance(data["request_timeout"], bool)
        or data["request_timeout"] <= 0
    ):
        raise ConfigError("'request_timeout' must be a positive number")
    if "stream" in data and not isinstance(data["stream"], bool):
        raise ConfigError("'stream' must be a boolean")

    return data


def parse_timeout(value: str) -> float:
    """Parse a timeout in seconds, rejecting non-numeric and non-positive values."""
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ConfigError(
            f"{ENV_TIMEOUT} must be a number of seconds, got {value!r}"
        ) from exc
    if timeout <= 0:
        raise ConfigError(f"{ENV_TIMEOUT} must be positive, got {value!r}")
    return timeout


def parse_host(value: str) -> Dict[str, Any]:
    """Split an ``OLLAMA_HOST`` value into ``base_url`` and optional ``port``.

    Accepts ``host``, ``host:port`` and ``scheme://host[:port]``. Without a
    scheme, ``http`` is assumed and the port stays at the Ollama default. With
    an explicit scheme and no port, the scheme's standard port is used, as
    Ollama's own client does.
    """
    raw = value.strip().rstrip("/")
    has_scheme = "://" in raw
    if not has_scheme:
        raw = f"http://{raw}"
    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError as exc:
        raise ConfigError(f"Invalid {ENV_HOST} value {value!r}: {exc}") from exc
    if not parts.hostname:
        raise ConfigError(f"Invalid {ENV_HOST} value {value!r}: missing host")

    host = parts.hostname
    if ":" in host:
        # IPv6 literal
        host = f"[{host}]"
    result: Dict[str, Any] = {"base_url": f"{parts.scheme}://{host}"}
    if port is None and has_scheme:
        port = SCHEME_PORTS.get(parts.scheme)
    if port is not None:
        result["port"] = port
    return result


def load_config(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve the runtime settings from defaults, config file and environment.

    Args:
        environ: Mapping to read variables from. Defaults to ``os.environ``.

    Returns:
        The resolved :class:`Settings`.

    Raises:
        ConfigError: If the config file or an environment value is invalid.
    """
    if environ is None:
        environ = os.environ

    values: Dict[str, Any] = {}

    config_path = _get_config_directory() / CONFIG_FILE_NAME
    if config_path.exists():
        data = _read_config_file(config_path)
        for key in ("base_url", "port", "model", "request_timeout", "stream"):
            if key in data:
                values[key] = data[key]
        if "request_timeout" in values:
            values["request_timeout"] = float(values["request_timeout"])
        if isinstance(values.get("model"), str) and not values["model"].strip():
            values.pop("model")
        values["config_path"] = config_path
        logger.debug("Loaded configuration file: %s", config_path)
    else:
        logger.debug("No configuration file at %s; using defaults", config_path)

    host = environ.get(ENV_HOST, "").strip()
    if host:
        values.update(parse_host(host))

    model = environ.get(ENV_MODEL, "").strip()
    if model:
        values["model"] = model

    timeout = environ.get(ENV_TIMEOUT, "").strip()
    if timeout:
        values["request_timeout"] = parse_timeout(timeout)

    settings = Settings(**values)
    logger.debug("Resolved settings: %s", settings)
    return settings
