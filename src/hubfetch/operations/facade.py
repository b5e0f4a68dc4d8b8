"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and the download pipeline, centralizing
command orchestration, configuration, and policy decisions while keeping
CLI commands thin and testable.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..hub import Downloader
from ..types import CancelToken, DownloadResult, FileMetadata, ProgressCallback


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Centralizes policy decisions like shard expansion and forced downloads
    to avoid scattered configuration.
    """
    shards: bool = True           # Expand shard names into the full shard set
    force: bool = False           # Re-transfer even when the blob is cached
    cache_dir: Optional[str] = None  # Cache root override (None = settings)
    verbose: bool = False         # Show detailed output


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Exceptions from argument validation bubble up
    for central mapping in run_and_exit; download failures come back as a
    DownloadResult so the caller can print partial information (the snapshot
    path) before exiting.
    """

    def __init__(self, config: OpsConfig, downloader: Downloader):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            downloader: Downloader bound to a Hub endpoint
        """
        self.cfg = config
        self.downloader = downloader

    def resolve(self, repo_id: str, filename: str) -> FileMetadata:
        """
        Resolve file metadata without side effects.

        Raises:
            MetadataError: If the metadata cannot be resolved
        """
        return self.downloader.resolve(repo_id, filename)

    def download(self, repo_id: str, filename: str, *,
                 cancel_token: Optional[CancelToken] = None,
                 on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Download a file (or its shard set) into the cache.

        Args:
            repo_id: Repository id
            filename: Repository-relative file path
            cancel_token: Cancellation for the transfer
            on_progress: Progress events for the transfer

        Returns:
            DownloadResult from the download pipeline
        """
        if self.cfg.shards:
            return self.downloader.download_with_shards(
                repo_id,
                filename,
                cache_dir=self.cfg.cache_dir,
                force_download=self.cfg.force,
                cancel_token=cancel_token,
                on_progress=on_progress,
            )
        return self.downloader.download(
            repo_id,
            filename,
            cache_dir=self.cfg.cache_dir,
            force_download=self.cfg.force,
            cancel_token=cancel_token,
            on_progress=on_progress,
        )
