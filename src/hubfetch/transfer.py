"""
Resumable, cancellable streaming transfer.

TransferEngine.fetch streams a URL into a `.incomplete` file. An existing
partial file is resumed with a Range request, but appended to only after the
server acknowledges the range (206 with a matching Content-Range start);
otherwise the transfer restarts from byte zero. Cancellation is cooperative
and always leaves a byte-accurate prefix on disk.
"""
from __future__ import annotations

import hashlib
import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import httpx

from .storage.hub_http import HubHTTP
from .types import CancelToken, ProgressCallback, ProgressEvent, TransferOutcome

logger = logging.getLogger(__name__)

__all__ = ["TransferEngine", "sha256_file", "verify_sha256", "parse_content_range", "CHUNK_SIZE"]

# Streaming I/O constants
CHUNK_SIZE = 1024 * 1024  # 1 MiB

_CONTENT_RANGE_RE = re.compile(r"^bytes\s+(?:(\d+)-(\d+)|\*)/(\d+|\*)$")


class _Restart(Exception):
    """Partial content cannot be trusted; retry the transfer from byte zero."""


def parse_content_range(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Parse a Content-Range header into (start, total).

    Examples:
        >>> parse_content_range("bytes 100-199/200")
        (100, 200)
        >>> parse_content_range("bytes */200")
        (None, 200)
    """
    if not value:
        return None, None
    match = _CONTENT_RANGE_RE.match(value.strip())
    if not match:
        return None, None
    start = int(match.group(1)) if match.group(1) is not None else None
    total = int(match.group(3)) if match.group(3) != "*" else None
    return start, total


def sha256_file(path: Union[str, Path]) -> str:
    """Hex sha256 of a file, read in CHUNK_SIZE blocks."""
    hash_obj = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            hash_obj.update(chunk)
    return hash_obj.hexdigest()


def verify_sha256(path: Union[str, Path], expected: str) -> Optional[str]:
    """
    Check a completed object against its expected sha256.

    Returns:
        None when the digest matches, otherwise the actual digest

    Raises:
        OSError: If the file cannot be read
    """
    actual = sha256_file(path)
    return None if actual == expected.lower() else actual


class TransferEngine:
    """
    Streams remote objects into partial files.

    The engine never promotes or deletes a partial file on cancel or network
    failure; it only reports what happened. The one exception is an object
    that grew past its expected size, which can never become valid and is
    removed.
    """

    def __init__(self, http: HubHTTP, *, chunk_size: int = CHUNK_SIZE,
                 progress_interval_s: float = 0.08,
                 clock: Callable[[], float] = time.monotonic):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.http = http
        self.chunk_size = chunk_size
        self.progress_interval_s = progress_interval_s
        self._clock = clock

    def fetch(self, url: str, incomplete_path: Union[str, Path], *,
              resume: bool = True,
              expected_total_size: int = 0,
              cancel_token: Optional[CancelToken] = None,
              on_progress: Optional[ProgressCallback] = None,
              label: str = "") -> TransferOutcome:
        """
        Download url into incomplete_path.

        Args:
            url: Content URL
            incomplete_path: Partial file, appended to when resuming
            resume: Continue from the existing partial file (False truncates it)
            expected_total_size: Full object size, 0 when unknown
            cancel_token: Sampled at every progress boundary
            on_progress: Receives ProgressEvent, rate limited to progress_interval_s
            label: Name carried by progress events (defaults to the file name)

        Returns:
            TransferOutcome with status "ok", "failed" or "cancelled"
        """
        path = Path(incomplete_path)
        label = label or path.name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            offset = self._starting_offset(path, resume, expected_total_size)
        except OSError as e:
            return TransferOutcome.failure(f"Cannot prepare {path}: {e}")

        if expected_total_size and offset == expected_total_size:
            logger.info(f"Partial file {path.name} already holds all {offset} bytes")
            return TransferOutcome.success(0)

        if cancel_token is not None and cancel_token.cancelled:
            return TransferOutcome.interrupted(0)

        try:
            try:
                outcome = self._fetch_once(url, path, offset, expected_total_size, cancel_token, on_progress, label)
            except _Restart as e:
                logger.warning(f"Restarting {path.name} from byte 0: {e}")
                _truncate(path)
                outcome = self._fetch_once(url, path, 0, expected_total_size, cancel_token, on_progress, label)
        except _Restart as e:
            return TransferOutcome.failure(f"Server did not honor the transfer range: {e}")
        except httpx.HTTPStatusError as e:
            return TransferOutcome.failure(f"HTTP {e.response.status_code} downloading {url}")
        except httpx.RequestError as e:
            return TransferOutcome.failure(f"Network error downloading {url}: {e}")
        except OSError as e:
            return TransferOutcome.failure(f"I/O error writing {path}: {e}")

        if outcome.ok:
            return self._check_size(path, expected_total_size, outcome)
        return outcome

    def _starting_offset(self, path: Path, resume: bool, expected_total_size: int) -> int:
        if not path.exists():
            return 0
        if not resume:
            _truncate(path)
            return 0
        offset = path.stat().st_size
        if expected_total_size and offset > expected_total_size:
            logger.warning(
                f"Partial file {path.name} is larger than the object ({offset} > {expected_total_size}), "
                f"discarding it"
            )
            _truncate(path)
            return 0
        if offset:
            logger.info(f"Resuming download from {offset} bytes...")
        return offset

    def _fetch_once(self, url: str, path: Path, offset: int, expected_total_size: int,
                    cancel_token: Optional[CancelToken],
                    on_progress: Optional[ProgressCallback], label: str) -> TransferOutcome:
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        with self.http.stream(url, headers=headers) as response:
            if offset and response.status_code == 416:
                _, total = parse_content_range(response.headers.get("Content-Range"))
                if total == offset:
                    return TransferOutcome.success(0)
                raise _Restart(f"range {offset}- not satisfiable (object size {total})")

            response.raise_for_status()

            mode = "ab"
            if offset:
                if response.status_code == 206:
                    start, total = parse_content_range(response.headers.get("Content-Range"))
                    if start != offset:
                        raise _Restart(f"requested offset {offset}, server sent range start {start}")
                else:
                    # Full body despite the Range header: rewrite from scratch
                    logger.warning(f"Server ignored range request for {path.name}, restarting from byte 0")
                    offset = 0
                    mode = "wb"
                    total = _content_length(response)
            else:
                total = _content_length(response)

            total = expected_total_size or total or 0
            return self._write_body(response, path, mode, offset, total, cancel_token, on_progress, label)

    def _write_body(self, response: httpx.Response, path: Path, mode: str, offset: int, total: int,
                    cancel_token: Optional[CancelToken],
                    on_progress: Optional[ProgressCallback], label: str) -> TransferOutcome:
        start = self._clock()
        last_emit: Optional[float] = None
        written = 0

        def emit(force: bool = False) -> None:
            nonlocal last_emit
            if on_progress is None:
                return
            now = self._clock()
            if not force and last_emit is not None and now - last_emit < self.progress_interval_s:
                return
            last_emit = now
            on_progress(ProgressEvent(
                bytes_this_session=written,
                total=total,
                elapsed=now - start,
                offset=offset,
                label=label,
            ))

        with open(path, mode) as out:
            try:
                for chunk in response.iter_bytes(self.chunk_size):
                    if not chunk:
                        continue
                    out.write(chunk)
                    written += len(chunk)
                    emit()
                    if cancel_token is not None and cancel_token.cancelled:
                        logger.info(f"Download interrupted after {offset + written} bytes")
                        return TransferOutcome.interrupted(written)
            finally:
                # Keep whatever was written as a valid resumable prefix
                out.flush()
                os.fsync(out.fileno())

        emit(force=True)
        return TransferOutcome.success(written)

    def _check_size(self, path: Path, expected_total_size: int, outcome: TransferOutcome) -> TransferOutcome:
        if not expected_total_size:
            return outcome
        actual = path.stat().st_size
        if actual == expected_total_size:
            return outcome
        if actual > expected_total_size:
            path.unlink()
            return TransferOutcome.failure(
                f"Downloaded object is larger than expected ({actual} > {expected_total_size} bytes); discarded",
                bytes_written=outcome.bytes_written,
            )
        return TransferOutcome.failure(
            f"Transfer ended early ({actual} of {expected_total_size} bytes)",
            bytes_written=outcome.bytes_written,
        )


def _content_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    try:
        return int(value) if value else None
    except ValueError:
        return None


def _truncate(path: Path) -> None:
    with open(path, "wb"):
        pass
