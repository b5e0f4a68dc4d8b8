"""
Shared types for hubfetch.

These types define the values passed between the metadata resolver, the
transfer engine and the download pipeline. Results are tagged values rather
than exceptions so each layer can report failure without aborting its caller.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Union


# Type alias for transfer outcomes
TransferStatus = Literal["ok", "failed", "cancelled"]

# Failure kinds reported by the metadata resolver
MetadataFailureKind = Literal["network", "not_found", "unsupported", "auth", "malformed", "missing_field"]

_SHA256_RE = re.compile(r"[a-f0-9]{64}")

__all__ = [
    "FileMetadata",
    "MetadataOk",
    "MetadataFailure",
    "MetadataResult",
    "ProgressEvent",
    "ProgressCallback",
    "CancelToken",
    "TransferOutcome",
    "TransferStatus",
    "DownloadResult",
    "is_sha256",
]


def is_sha256(value: str) -> bool:
    """True if value is a bare 64-hex sha256 digest."""
    return bool(_SHA256_RE.fullmatch(value or ""))


@dataclass(frozen=True, slots=True)
class FileMetadata:
    """
    Identity of one file at one commit on the remote.

    The content key addresses the blob in the cache: the LFS sha256 when the
    file is stored as a large-file pointer, otherwise the git object id.
    """
    commit: str                  # Commit id the metadata was resolved at
    content_key: str             # Blob name in blobs/
    size: int = 0                # Byte length, 0 when unknown
    oid: Optional[str] = None    # Git object id as reported by the remote
    sha256: Optional[str] = None # LFS sha256 when present
    type: Optional[str] = None   # "file" / "directory" when reported

    def __post_init__(self) -> None:
        if not self.content_key:
            raise ValueError("content_key must be non-empty")
        if "/" in self.content_key or self.content_key in (".", ".."):
            raise ValueError(f"content_key is not a valid blob name: {self.content_key!r}")
        if not self.commit:
            raise ValueError("commit must be non-empty")
        if self.size < 0:
            raise ValueError("size must be non-negative")


@dataclass(frozen=True, slots=True)
class MetadataOk:
    """Successful metadata resolution."""
    metadata: FileMetadata
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class MetadataFailure:
    """Failed metadata resolution with a structured kind."""
    kind: MetadataFailureKind
    message: str
    ok: Literal[False] = False


MetadataResult = Union[MetadataOk, MetadataFailure]


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """
    Progress of one transfer.

    `total` is the full object size, not the size of the remaining range, so
    the amount downloaded overall is `offset + bytes_this_session`. `label`
    names the file being transferred.
    """
    bytes_this_session: int
    total: int
    elapsed: float
    offset: int = 0
    label: str = ""

    @property
    def downloaded(self) -> int:
        return self.offset + self.bytes_this_session

    @property
    def fraction(self) -> Optional[float]:
        if self.total <= 0:
            return None
        return min(1.0, self.downloaded / self.total)


class ProgressCallback(Protocol):
    """Receives progress events synchronously and in order."""

    def __call__(self, event: ProgressEvent) -> None:
        ...


class CancelToken:
    """
    Cooperative cancellation flag shared between a caller and a transfer.

    Any caller (signal handler, timer, parent task) may set it; the transfer
    engine samples it at progress boundaries and stops writing once set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"


@dataclass(frozen=True, slots=True)
class TransferOutcome:
    """Result of a single TransferEngine.fetch call."""
    status: TransferStatus
    reason: Optional[str] = None
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"

    @classmethod
    def success(cls, bytes_written: int) -> TransferOutcome:
        return cls(status="ok", bytes_written=bytes_written)

    @classmethod
    def failure(cls, reason: str, bytes_written: int = 0) -> TransferOutcome:
        return cls(status="failed", reason=reason, bytes_written=bytes_written)

    @classmethod
    def interrupted(cls, bytes_written: int) -> TransferOutcome:
        return cls(status="cancelled", reason="cancelled", bytes_written=bytes_written)


@dataclass(frozen=True)
class DownloadResult:
    """
    Result of a download request.

    `path` is the snapshot path of the file (set even on failure once metadata
    is known). `cancelled` separates an intentional interrupt from a failure.
    `error_type` names the error class behind a failure (e.g. "MetadataError").
    """
    success: bool
    path: str = ""
    cancelled: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def status(self) -> str:
        if self.success:
            return "ok"
        return "cancelled" if self.cancelled else "failed"
