"""
hubfetch download pipeline.

This module implements hub_download() and hub_download_with_shards(): resolve
a file's metadata, prepare the cache layout, reconcile the revision ref,
transfer the object when its blob is absent (or a download is forced), verify
and promote it, and link it into its commit snapshot.

Every runtime failure is reported through DownloadResult; only invalid
arguments raise.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

import httpx

from .cache import (
    blob_path,
    ensure_layout,
    incomplete_path,
    invalidate,
    reconcile_ref,
    repo_folder_name,
    snapshot_path,
)
from .errors import CancelledError, HubFetchError, TransferError
from .finalize import finalize, link_snapshot
from .metadata import MetadataResolver, raise_for_failure
from .path_safety import safe_relpath
from .settings import Settings, create_settings_from_env
from .shards import parse_shard_name
from .storage.hub_http import HubHTTP
from .transfer import CHUNK_SIZE, TransferEngine, verify_sha256
from .types import CancelToken, DownloadResult, FileMetadata, ProgressCallback

logger = logging.getLogger(__name__)

__all__ = ["Downloader", "hub_download", "hub_download_with_shards"]


class Downloader:
    """
    Download files from one Hub endpoint into a local cache.

    Holds the HTTP client, metadata resolver and transfer engine built from
    Settings so sequential downloads (e.g. the shards of one file) share a
    connection pool. Use as a context manager or call close().
    """

    def __init__(self, settings: Optional[Settings] = None, http: Optional[HubHTTP] = None, *,
                 transport: Optional[httpx.BaseTransport] = None, chunk_size: int = CHUNK_SIZE):
        """
        Initialize the downloader.

        Args:
            settings: Settings (defaults to loading from environment)
            http: HTTP client (defaults to HubHTTP(settings))
            transport: Optional httpx transport for the default client
            chunk_size: Streaming chunk size in bytes
        """
        if settings is None:
            settings = create_settings_from_env()
        self.settings = settings
        self.http = http or HubHTTP(settings, transport=transport)
        self.resolver = MetadataResolver(self.http, revision=settings.revision, mode=settings.metadata_mode)
        self.engine = TransferEngine(
            self.http,
            chunk_size=chunk_size,
            progress_interval_s=settings.progress_interval_s,
        )

    def resolve(self, repo_id: str, filename: str) -> FileMetadata:
        """
        Resolve file metadata without touching the cache.

        Raises:
            MetadataError: If the metadata cannot be resolved
        """
        return raise_for_failure(self.resolver.resolve(repo_id, safe_relpath(filename)))

    def download(self, repo_id: str, filename: str, *,
                 cache_dir: Union[str, os.PathLike, None] = None,
                 force_download: bool = False,
                 cancel_token: Optional[CancelToken] = None,
                 on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Download one file into the cache.

        Args:
            repo_id: Repository id, e.g. "org/name"
            filename: Repository-relative file path
            cache_dir: Cache root (defaults to settings.cache_dir)
            force_download: Re-transfer even if the blob exists; discards partial data
            cancel_token: Cooperative cancellation for the transfer
            on_progress: Progress events for the transfer

        Returns:
            DownloadResult with the snapshot path on success

        Raises:
            ValueError: If repo_id or filename is malformed
        """
        filename = safe_relpath(filename)
        repo_folder_name(repo_id)
        cache_root = cache_dir if cache_dir is not None else self.settings.cache_dir

        try:
            metadata = raise_for_failure(self.resolver.resolve(repo_id, filename))
            model_dir = ensure_layout(cache_root, repo_id)
        except HubFetchError as e:
            logger.error(str(e))
            return DownloadResult(success=False, error=str(e), error_type=type(e).__name__)

        logger.info(f"Downloading {filename} from {repo_id}")
        logger.debug(f"Commit: {metadata.commit}")
        logger.debug(f"Blob ID: {metadata.oid}")
        logger.debug(f"Size: {metadata.size} bytes")
        logger.debug(f"SHA256: {metadata.sha256}")

        snapshot = snapshot_path(model_dir, metadata.commit, filename)
        try:
            self._materialize(repo_id, filename, model_dir, metadata, snapshot,
                              force_download, cancel_token, on_progress)
        except CancelledError as e:
            logger.info("Download interrupted. Partial data kept for resume.")
            return DownloadResult(success=False, path=str(snapshot), cancelled=True,
                                  error=str(e), error_type=type(e).__name__)
        except HubFetchError as e:
            logger.error(str(e))
            return DownloadResult(success=False, path=str(snapshot), error=str(e),
                                  error_type=type(e).__name__)

        logger.info(f"Downloaded to: {snapshot}")
        return DownloadResult(success=True, path=str(snapshot))

    def _materialize(self, repo_id: str, filename: str, model_dir: Path, metadata: FileMetadata,
                     snapshot: Path, force_download: bool, cancel_token: Optional[CancelToken],
                     on_progress: Optional[ProgressCallback]) -> None:
        revision = self.settings.revision
        status = reconcile_ref(model_dir, metadata.commit, revision)
        if status.stale:
            invalidate(model_dir, status, filename, policy=self.settings.invalidation, revision=revision)

        blob = blob_path(model_dir, metadata.content_key)
        partial = incomplete_path(model_dir, metadata.content_key)

        if blob.is_file() and not force_download:
            logger.info("Blob file exists. Skipping download...")
            if not snapshot.exists():
                link_snapshot(blob, snapshot)
            return

        url = self.http.resolve_url(repo_id, metadata.commit, filename)
        outcome = self.engine.fetch(
            url,
            partial,
            resume=not force_download,
            expected_total_size=metadata.size,
            cancel_token=cancel_token,
            on_progress=on_progress,
            label=filename,
        )
        if outcome.cancelled:
            raise CancelledError(f"Download of {filename} cancelled")
        if not outcome.ok:
            raise TransferError(outcome.reason or f"Download of {filename} failed")

        if self.settings.verify_checksum and metadata.sha256:
            try:
                actual = verify_sha256(partial, metadata.sha256)
            except OSError as e:
                raise TransferError(f"Cannot read {partial} for verification: {e}") from e
            if actual is not None:
                try:
                    partial.unlink()
                except OSError as e:
                    raise TransferError(
                        f"Checksum mismatch for {filename}; cannot remove {partial}: {e}"
                    ) from e
                raise TransferError(
                    f"Checksum mismatch for {filename}: expected {metadata.sha256}, got {actual}"
                )

        finalize(partial, blob, snapshot)

    def download_with_shards(self, repo_id: str, filename: str, *,
                             cache_dir: Union[str, os.PathLike, None] = None,
                             force_download: bool = False,
                             cancel_token: Optional[CancelToken] = None,
                             on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
        """
        Download a file, or every shard of it when its name is a shard name.

        Shards 1..count are downloaded strictly in index order. The first
        unsuccessful shard stops the run and its result is returned. On
        success the result for shard 1 is returned.
        """
        shard = parse_shard_name(filename)
        if shard is None:
            return self.download(repo_id, filename, cache_dir=cache_dir, force_download=force_download,
                                 cancel_token=cancel_token, on_progress=on_progress)

        logger.info(f"{filename} is shard {shard.index} of {shard.count}, downloading all shards")
        first: Optional[DownloadResult] = None
        for name in shard.shard_filenames():
            result = self.download(repo_id, name, cache_dir=cache_dir, force_download=force_download,
                                   cancel_token=cancel_token, on_progress=on_progress)
            if not result.success:
                return result
            if first is None:
                first = result
        return first

    def close(self):
        """Close HTTP client."""
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def hub_download(repo_id: str, filename: str, *,
                 cache_dir: Union[str, os.PathLike, None] = None,
                 force_download: bool = False,
                 settings: Optional[Settings] = None,
                 cancel_token: Optional[CancelToken] = None,
                 on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
    """
    Download one file from the Hub into the local cache.

    Examples:
        >>> result = hub_download("Qwen/Qwen2.5-0.5B-Instruct-GGUF", "qwen2.5-0.5b-instruct-q2_k.gguf")
        >>> result.success, result.path
    """
    with Downloader(settings) as downloader:
        return downloader.download(repo_id, filename, cache_dir=cache_dir, force_download=force_download,
                                   cancel_token=cancel_token, on_progress=on_progress)


def hub_download_with_shards(repo_id: str, filename: str, *,
                             cache_dir: Union[str, os.PathLike, None] = None,
                             force_download: bool = False,
                             settings: Optional[Settings] = None,
                             cancel_token: Optional[CancelToken] = None,
                             on_progress: Optional[ProgressCallback] = None) -> DownloadResult:
    """
    Download a possibly sharded file from the Hub into the local cache.

    `model-00001-of-00003.gguf` downloads all three shards and returns the
    path of the first; any other name behaves like hub_download().
    """
    with Downloader(settings) as downloader:
        return downloader.download_with_shards(repo_id, filename, cache_dir=cache_dir,
                                               force_download=force_download,
                                               cancel_token=cancel_token, on_progress=on_progress)
