"""
Version control integration.

Only Git is supported: the client reads the staged diff and commits with a
generated message.
"""

from .git_client import GitClient, GitError, NoStagedChanges  # noqa: F401
