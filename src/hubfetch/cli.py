"""
hubfetch CLI

Implements 2 CLI verbs with Operations facade integration:
- download: Download a file (all shards of a sharded file) into the cache
- resolve: Resolve file metadata without side effects
"""
from __future__ import annotations

import logging
import signal
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, exit_code_for_result, run_and_exit
from .operations.printers import ProgressPrinter, print_download_summary, print_metadata
from .types import CancelToken

app = typer.Typer(name="hubfetch", help="Fetch files from a Hugging Face compatible Hub into the local cache")

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool, quiet: bool) -> None:
    """
    Route hubfetch log records to stderr through rich.

    --verbose shows debug records (commit, blob id, size, sha256),
    --quiet shows warnings and errors only.
    """
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    package_logger = logging.getLogger("hubfetch")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


@contextmanager
def _cancel_on_sigint(token: CancelToken) -> Iterator[None]:
    """
    Turn Ctrl-C into a cooperative cancel for the duration of the block.

    A second Ctrl-C falls through to the default handler.
    """
    def _handler(signum, frame):
        logger.warning("Interrupt received, stopping download")
        token.cancel()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not in the main thread; leave signal handling alone
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@app.command()
def download(
    repo_id: str = typer.Argument(..., help="Repository id, e.g. org/name"),
    filename: str = typer.Argument(..., help="File path inside the repository"),
    cache_dir: Optional[str] = typer.Option(None, "--cache-dir", help="Cache root (default: ~/.cache/huggingface/hub)"),
    force: bool = typer.Option(False, "--force", help="Download again even if the file is cached"),
    revision: Optional[str] = typer.Option(None, "--revision", help="Branch or tag to resolve (default: main)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show warnings and errors"),
) -> None:
    """Download a file into the cache and print its snapshot path."""
    _configure_logging(verbose, quiet)

    def _download():
        context = CLIContext.from_env(revision=revision)
        try:
            config = OpsConfig(force=force, cache_dir=cache_dir, verbose=verbose)
            ops = Operations(config=config, downloader=context.downloader)
            token = CancelToken()
            with _cancel_on_sigint(token), ProgressPrinter(enabled=not quiet) as progress:
                return ops.download(repo_id, filename, cancel_token=token, on_progress=progress)
        finally:
            context.close()

    result = run_and_exit(_download)
    print_download_summary(result)
    if not result.success:
        raise typer.Exit(code=exit_code_for_result(result))


@app.command()
def resolve(
    repo_id: str = typer.Argument(..., help="Repository id, e.g. org/name"),
    filename: str = typer.Argument(..., help="File path inside the repository"),
    revision: Optional[str] = typer.Option(None, "--revision", help="Branch or tag to resolve (default: main)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed output"),
) -> None:
    """Resolve file metadata without downloading."""
    _configure_logging(verbose, quiet=True)

    def _resolve() -> None:
        context = CLIContext.from_env(revision=revision)
        try:
            ops = Operations(config=OpsConfig(verbose=verbose), downloader=context.downloader)
            metadata = ops.resolve(repo_id, filename)
        finally:
            context.close()
        print_metadata(repo_id, filename, metadata, verbose=verbose)

    run_and_exit(_resolve)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
