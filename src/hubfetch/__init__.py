"""
hubfetch - fetch files from a Hugging Face compatible Hub into a shared local cache.
"""
from __future__ import annotations

__version__ = "0.1.0"

from .hub import Downloader, hub_download, hub_download_with_shards
from .types import CancelToken, DownloadResult, FileMetadata, ProgressEvent

__all__ = [
    "__version__",
    "Downloader",
    "hub_download",
    "hub_download_with_shards",
    "CancelToken",
    "DownloadResult",
    "FileMetadata",
    "ProgressEvent",
]
