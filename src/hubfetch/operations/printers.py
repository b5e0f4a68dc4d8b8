"""
Human-readable output formatting.

Centralizes all CLI output formatting. Results go to stdout; progress bars,
errors and log records go to stderr so stdout stays pipeable (the download
command prints only the resolved path there).
"""
from __future__ import annotations

from typing import Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from ..types import DownloadResult, FileMetadata, ProgressEvent

_console = Console(soft_wrap=True)
_err_console = Console(stderr=True, soft_wrap=True)


class ProgressPrinter:
    """
    Rich progress bars driven by ProgressEvent callbacks.

    One bar per event label, so the shards of a multi-part download each get
    their own line. Use as a context manager around the download and pass
    the instance as on_progress.
    """

    def __init__(self, console: Optional[Console] = None, enabled: bool = True):
        self.enabled = enabled
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            "[progress.percentage]{task.percentage:>3.0f}%",
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console or _err_console,
            transient=False,
        )
        self._tasks: Dict[str, TaskID] = {}

    def __call__(self, event: ProgressEvent) -> None:
        if not self.enabled:
            return
        total = event.total or None
        task = self._tasks.get(event.label)
        if task is None:
            task = self._progress.add_task(event.label, total=total)
            self._tasks[event.label] = task
        self._progress.update(task, completed=event.downloaded, total=total)

    def __enter__(self) -> ProgressPrinter:
        if self.enabled:
            self._progress.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.enabled:
            self._progress.stop()


def print_metadata(repo_id: str, filename: str, metadata: FileMetadata, verbose: bool = False) -> None:
    """
    Print resolved file metadata.

    Args:
        repo_id: Repository the file belongs to
        filename: Repository-relative file path
        metadata: Resolved metadata
        verbose: Also show the git object id and entry type
    """
    _console.print(f"[bold]File:[/] {escape(repo_id)}/{escape(filename)}")
    _console.print(f"[bold]Commit:[/] {metadata.commit}")
    _console.print(f"[bold]Content key:[/] {metadata.content_key}")
    _console.print(f"[bold]Size:[/] {_format_bytes(metadata.size)} ({metadata.size} bytes)")
    _console.print(f"[bold]SHA256:[/] {metadata.sha256 or '-'}")
    if verbose:
        _console.print(f"[bold]Blob ID:[/] [dim]{metadata.oid or '-'}[/]")
        _console.print(f"[bold]Type:[/] {metadata.type or '-'}")


def print_download_summary(result: DownloadResult) -> None:
    """
    Print the outcome of a download.

    The snapshot path of a successful download is the only thing written
    to stdout.
    """
    if result.success:
        typer.echo(result.path)
        return
    if result.cancelled:
        _err_console.print("[yellow]Download interrupted.[/] Partial data kept; rerun to resume.")
        return
    print_error(result.error or "download failed")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    _err_console.print(f"[bold red]Error:[/] {escape(message)}", highlight=False)


def _format_bytes(size_bytes: int) -> str:
    """
    Format byte count as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB", "42 KB")
    """
    if size_bytes == 0:
        return "0 B"
    elif size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"
