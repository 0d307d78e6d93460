"""
Top-level package for aicommit.

This package exposes the main CLI entry point via the
``aicommit.cli`` module.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
