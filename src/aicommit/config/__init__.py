"""
Configuration loading for aicommit.

Settings come from an optional JSON file in the user's home directory and
from ``OLLAMA_*`` environment variables. See
:mod:`aicommit.config.loader` for implementation details.
"""

from .loader import ConfigError, Settings, load_config  # noqa: F401
