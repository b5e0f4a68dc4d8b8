"""
hubfetch error classes.

Provides a clear taxonomy of errors that can occur while resolving, transferring
and caching Hub files. Lower layers raise these; the download pipeline folds
them into a DownloadResult so no single failure aborts the caller's process.
"""
from __future__ import annotations


class HubFetchError(Exception):
    """
    Base class for all hubfetch errors.
    """
    pass


class MetadataError(HubFetchError):
    """
    File metadata could not be resolved.

    Raised when:
    - The metadata request fails at the network level
    - The remote reports the repository or file as missing (HTTP 404)
    - The response is malformed or carries no usable content key / commit
    """

    def __init__(self, message: str, kind: str = "malformed"):
        super().__init__(message)
        self.kind = kind


class CacheLayoutError(HubFetchError):
    """
    Cache directory layout could not be created or updated.

    Raised when:
    - refs/, blobs/ or snapshots/ cannot be created (permissions, read-only fs)
    - The ref file cannot be read or written
    """
    pass


class TransferError(HubFetchError):
    """
    Content transfer failed.

    Raised when:
    - The content request fails at the network level
    - The remote answers with a non-success status mid-transfer
    - The completed object does not match its expected size or checksum
    """
    pass


class CancelledError(HubFetchError):
    """
    Transfer was stopped through its cancel token.

    Distinct from TransferError: the partial object is intact and resumable,
    and callers may choose not to treat the interrupt as a failure.
    """
    pass


class FinalizationError(HubFetchError):
    """
    A completed transfer could not be promoted into the cache.

    Raised when:
    - Renaming the .incomplete file onto its blob path fails
      (e.g. the paths live on different devices)
    - The snapshot entry cannot be removed or linked
    """
    pass


__all__ = [
    "HubFetchError",
    "MetadataError",
    "CacheLayoutError",
    "TransferError",
    "CancelledError",
    "FinalizationError",
]
