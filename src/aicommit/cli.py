"""
Command line interface for the aicommit tool.

This module defines the ``main`` function which is used as the entry
point when executing the ``aicommit`` command. It loads the settings,
collects the staged diff, resolves the model, asks the Ollama server for a
commit message and, after confirmation, commits. Every failure class maps
to its own exit code; success and user cancellation exit with 0.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple, Type

import click

from aicommit import __version__
from aicommit.config.loader import ConfigError, load_config
from aicommit.llm.commit_message_generator import (
    CommitMessageGenerator,
    apply_prefix,
    resolve_model,
)
from aicommit.llm.ollama_client import (
    GenerationError,
    LLMError,
    NoModelsInstalled,
    OllamaClient,
    ServiceUnavailable,
    TimedOutNoOutput,
    TimedOutThinkingOnly,
)
from aicommit.llm.response_parser import ParseFailure
from aicommit.vcs.git_client import GitClient, GitError, NoStagedChanges

# Create a module-level logger. Attach a null handler and disable
# propagation to avoid logging errors when the root logger's stream is
# closed (such as during unit tests). When logging is configured by
# the CLI, root handlers will be added and messages will propagate.
logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_NO_REPO = 3
EXIT_NO_CHANGES = 4
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_LLM_FAILURE = 7
EXIT_SERVICE_UNAVAILABLE = 9
EXIT_NO_MODELS = 10
EXIT_GENERATION_ERROR = 11
EXIT_TIMEOUT_NO_OUTPUT = 12
EXIT_TIMEOUT_THINKING = 13
EXIT_PARSE_FAILURE = 14

# Most specific first; the first matching class wins.
LLM_EXIT_CODES: List[Tuple[Type[LLMError], int]] = [
    (ServiceUnavailable, EXIT_SERVICE_UNAVAILABLE),
    (NoModelsInstalled, EXIT_NO_MODELS),
    (GenerationError, EXIT_GENERATION_ERROR),
    (TimedOutNoOutput, EXIT_TIMEOUT_NO_OUTPUT),
    (TimedOutThinkingOnly, EXIT_TIMEOUT_THINKING),
    (ParseFailure, EXIT_PARSE_FAILURE),
]

RULE = "━" * 40


class CommitOutcome(enum.Enum):
    COMMITTED = "committed"
    CANCELLED = "cancelled"


def llm_exit_code(exc: LLMError) -> int:
    for error_type, code in LLM_EXIT_CODES:
        if isinstance(exc, error_type):
            return code
    return EXIT_LLM_FAILURE


# ---------------------------------------------------------------------------
# Progress and status display utilities
# ---------------------------------------------------------------------------

class ProgressIndicator:
    """Simple progress indicator for user feedback."""

    def __init__(self, message: str):
        self.message = message
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        click.echo(f"⠋ {self.message}...", nl=False)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time
        mark = "✗" if exc_type is not None else "✓"
        click.echo(f"\r{mark} {self.message} (took {elapsed:.1f}s)")
        return False


def print_step(step_num: int, total_steps: int, message: str):
    """Print a step indicator."""
    click.echo(f"\n{'='*60}")
    click.echo(f"Step {step_num}/{total_steps}: {message}")
    click.echo(f"{'='*60}")


def print_info(message: str, indent: int = 0):
    """Print an info message."""
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}")


def print_success(message: str, indent: int = 0):
    """Print a success message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}")


def print_warning(message: str, indent: int = 0):
    """Print a warning message."""
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}")


def print_error(message: str, indent: int = 0):
    """Print an error message."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


# ---------------------------------------------------------------------------
# Core functionality
# ---------------------------------------------------------------------------

def confirm_and_commit(
    client: GitClient, message: str, prefix: Optional[str] = None
) -> CommitOutcome:
    """Show the proposed message, ask for confirmation and commit on ``y``.

    Parameters
    ----------
    client : GitClient
        Client used to perform the commit.
    message : str
        The generated commit message.
    prefix : str, optional
        Label prepended as ``"<prefix>: "``.

    Returns
    -------
    CommitOutcome
        ``COMMITTED`` only when the answer was ``y`` or ``Y``.

    Raises
    ------
    GitError
        If the commit itself fails.
    """
    final_message = apply_prefix(message, prefix)

    click.echo("\nSuggested commit message:")
    click.echo(RULE)
    click.echo(final_message)
    click.echo(RULE)
    click.echo("")

    answer = click.prompt(
        "Do you want to commit with this message? (y/N)",
        default="",
        show_default=False,
    )
    if answer.strip() not in ("y", "Y"):
        print_info("Commit cancelled.")
        return CommitOutcome.CANCELLED

    client.commit(final_message)
    print_success("Committed successfully!")
    return CommitOutcome.COMMITTED


@click.command()
@click.argument("prefix", required=False)
@click.option("--model", help="Model to use (overrides OLLAMA_MODEL).")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Generation timeout in seconds (overrides OLLAMA_TIMEOUT).",
)
@click.option("--no-stream", "no_stream", is_flag=True, help="Request a single non-streamed response.")
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
@click.version_option(version=__version__, prog_name="aicommit")
def main(
    prefix: Optional[str],
    model: Optional[str],
    timeout: Optional[float],
    no_stream: bool,
    verbose: bool,
) -> None:
    """🤖 Generate a commit message for the staged changes with Ollama.

    PREFIX, if given, is prepended to the message as "PREFIX: message".
    """
    # Configure logging. Use force=True to ensure handlers are reconfigured
    # on subsequent invocations (important for tests).
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )

    ctx = click.get_current_context(silent=True)

    total_steps = 5
    current_step = 0

    try:
        # Step 1: Load configuration
        current_step += 1
        print_step(current_step, total_steps, "Loading Configuration")

        try:
            settings = load_config()
        except ConfigError as exc:
            print_error(f"Configuration error: {exc}")
            raise click.exceptions.Exit(EXIT_CONFIG_ERROR)

        overrides = {}
        if model:
            overrides["model"] = model
        if timeout is not None:
            overrides["request_timeout"] = timeout
        if no_stream:
            overrides["stream"] = False
        if overrides:
            settings = dataclasses.replace(settings, **overrides)

        if settings.config_path is not None:
            print_info(f"Config file: {settings.config_path}", indent=1)
        print_info(f"LLM Server: {settings.base_url}:{settings.port}", indent=1)
        print_info(f"Timeout: {settings.request_timeout:g}s", indent=1)

        # Step 2: Collect staged changes
        current_step += 1
        print_step(current_step, total_steps, "Collecting Staged Changes")

        repo_root = GitClient.find_repo_root(Path.cwd())
        if not repo_root:
            print_error("Current directory is not inside a Git repository.")
            raise click.exceptions.Exit(EXIT_NO_REPO)

        client = GitClient(repo_root)
        try:
            diff = client.get_staged_diff()
        except NoStagedChanges as exc:
            print_warning(str(exc))
            raise click.exceptions.Exit(EXIT_NO_CHANGES)
        except GitError as exc:
            print_error(f"Git error: {exc}")
            raise click.exceptions.Exit(EXIT_VCS_FAILURE)

        print_success(f"Staged diff: {len(diff.splitlines())} lines")

        # Step 3: Resolve model
        current_step += 1
        print_step(current_step, total_steps, "Resolving Model")

        ollama_client = OllamaClient(base_url=settings.base_url, port=settings.port)
        try:
            if settings.model:
                chosen_model = resolve_model(ollama_client, settings.model)
                print_info(f"Using model from configuration: {chosen_model}")
            else:
                print_info("No OLLAMA_MODEL set, fetching available models...")
                with ProgressIndicator("Listing installed models"):
                    chosen_model = resolve_model(ollama_client, None)
                print_info(f"Using model: {chosen_model}")

            # Step 4: Generate
            current_step += 1
            print_step(current_step, total_steps, "Generating Commit Message")

            generator = CommitMessageGenerator(ollama_client, stream=settings.stream)
            with ProgressIndicator("Generating commit message (this may take a moment)"):
                message = generator.generate(chosen_model, diff, settings.request_timeout)
        except LLMError as exc:
            print_error(str(exc))
            raise click.exceptions.Exit(llm_exit_code(exc))

        # Step 5: Review and commit
        current_step += 1
        print_step(current_step, total_steps, "Review and Commit")

        try:
            confirm_and_commit(client, message, prefix)
        except GitError as exc:
            print_error(f"Failed to commit changes: {exc}")
            raise click.exceptions.Exit(EXIT_VCS_FAILURE)

        raise click.exceptions.Exit(EXIT_SUCCESS)

    except click.exceptions.Exit:
        # Click uses its own Exit exception; re-raise to let Click handle it
        raise
    except click.exceptions.Abort:
        raise
    except Exception as exc:
        logging.exception("Unhandled error: %s", exc)
        print_error(f"Unexpected error: {exc}")
        ctx.exit(EXIT_GENERIC_ERROR)
