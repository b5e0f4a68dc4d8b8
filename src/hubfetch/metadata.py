"""
File metadata resolution.

Resolves a file's identity on the remote (commit, content key, size) through
either of the two protocols a Hub may expose:

1. Structured query: POST /api/models/<repo>/paths-info/<revision>
2. Pointer fallback: GET /<repo>/raw/<revision>/<path>, parsing the LFS pointer
   body and reading the commit from the X-Repo-Commit header

Results are tagged values (MetadataOk / MetadataFailure); nothing is retried
here beyond the client's opt-in connect retry.
"""
from __future__ import annotations

import hashlib
import logging
import re
from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import MetadataError
from .storage.hub_http import COMMIT_HEADER, HubHTTP
from .types import FileMetadata, MetadataFailure, MetadataOk, MetadataResult, is_sha256

logger = logging.getLogger(__name__)

__all__ = [
    "MetadataResolver",
    "PathInfo",
    "parse_paths_info",
    "parse_pointer",
    "git_blob_oid",
    "raise_for_failure",
]

_POINTER_OID_RE = re.compile(r"^oid sha256:([a-f0-9]{64})\s*$", re.MULTILINE)
_POINTER_SIZE_RE = re.compile(r"^size (\d+)\s*$", re.MULTILINE)

# LFS pointer files are tiny; anything larger is real content
_MAX_POINTER_SIZE = 1024


class LfsInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    oid: str
    size: Optional[int] = None


class LastCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class PathInfo(BaseModel):
    """One entry of a paths-info response."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "file"
    path: Optional[str] = None
    oid: Optional[str] = None
    size: int = 0
    lfs: Optional[LfsInfo] = None
    last_commit: Optional[LastCommit] = Field(default=None, alias="lastCommit")


_PATHS_INFO_ADAPTER = TypeAdapter(List[PathInfo])


def parse_paths_info(payload: object, file_path: str) -> MetadataResult:
    """
    Extract FileMetadata from a decoded paths-info response.

    The LFS sha256 is the preferred content key; the git object id is used
    when the file is not LFS-tracked.
    """
    try:
        entries = _PATHS_INFO_ADAPTER.validate_python(payload)
    except ValidationError as e:
        return MetadataFailure("malformed", f"Invalid paths-info response: {e}")

    if not entries:
        return MetadataFailure("not_found", f"File not found on remote: {file_path}")

    entry = next((e for e in entries if e.path == file_path), entries[0])
    if entry.type != "file":
        return MetadataFailure("not_found", f"{file_path} is a {entry.type}, not a file")

    sha256 = entry.lfs.oid if entry.lfs and is_sha256(entry.lfs.oid) else None
    content_key = sha256 or entry.oid
    if not content_key:
        return MetadataFailure("missing_field", f"No content key in paths-info response for {file_path}")
    if not entry.last_commit or not entry.last_commit.id:
        return MetadataFailure("missing_field", f"No commit id in paths-info response for {file_path}")

    size = entry.size
    if entry.lfs and entry.lfs.size is not None:
        size = entry.lfs.size

    return MetadataOk(FileMetadata(
        commit=entry.last_commit.id,
        content_key=content_key,
        size=size,
        oid=entry.oid,
        sha256=sha256,
        type=entry.type,
    ))


def git_blob_oid(content: bytes) -> str:
    """Git object id of a blob: sha1 over "blob <len>\\0" + content."""
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def parse_pointer(body: bytes, commit: Optional[str], file_path: str) -> MetadataResult:
    """
    Extract FileMetadata from a raw file body.

    An LFS pointer yields its sha256 and size. Any other body is the file
    itself, addressed by its git blob object id.
    """
    if not commit:
        return MetadataFailure("missing_field", f"No {COMMIT_HEADER} header for {file_path}")

    sha256 = None
    size = None
    if len(body) <= _MAX_POINTER_SIZE:
        text = body.decode("utf-8", errors="replace")
        oid_match = _POINTER_OID_RE.search(text)
        size_match = _POINTER_SIZE_RE.search(text)
        if oid_match and size_match:
            sha256 = oid_match.group(1)
            size = int(size_match.group(1))

    if sha256 is not None:
        return MetadataOk(FileMetadata(commit=commit, content_key=sha256, size=size, sha256=sha256, type="file"))

    oid = git_blob_oid(body)
    return MetadataOk(FileMetadata(commit=commit, content_key=oid, size=len(body), oid=oid, type="file"))


def _failure_from_http(exc: Exception, what: str) -> MetadataFailure:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 404:
            return MetadataFailure("not_found", f"Not found: {what}")
        if status in (405, 501):
            return MetadataFailure("unsupported", f"Endpoint not exposed for {what} (HTTP {status})")
        if status in (401, 403):
            return MetadataFailure("auth", f"Authentication failed for {what} (HTTP {status})")
        return MetadataFailure("network", f"Remote error {status} for {what}")
    return MetadataFailure("network", f"Network error for {what}: {exc}")


class MetadataResolver:
    """
    Resolve file metadata against one remote and revision.

    Modes:
        auto: structured query first, pointer fallback when it yields nothing usable
        paths-info: structured query only
        pointer: pointer fallback only
    """

    def __init__(self, http: HubHTTP, *, revision: str = "main", mode: str = "auto"):
        self.http = http
        self.revision = revision
        self.mode = mode

    def resolve(self, repo_id: str, file_path: str) -> MetadataResult:
        """
        Resolve metadata for file_path in repo_id.

        Returns:
            MetadataOk with FileMetadata, or MetadataFailure with kind and message
        """
        if self.mode == "pointer":
            return self.resolve_pointer(repo_id, file_path)

        result = self.resolve_paths_info(repo_id, file_path)
        if self.mode == "paths-info" or result.ok:
            return result

        if result.kind in ("network", "auth"):
            return result

        logger.debug(f"paths-info unusable for {repo_id}/{file_path} ({result.message}), trying pointer")
        return self.resolve_pointer(repo_id, file_path)

    def resolve_paths_info(self, repo_id: str, file_path: str) -> MetadataResult:
        url = self.http.paths_info_url(repo_id, self.revision)
        what = f"{repo_id}/{file_path}@{self.revision}"
        try:
            response = self.http.post_json(url, {"paths": [file_path], "expand": True})
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            return _failure_from_http(e, what)

        try:
            payload = response.json()
        except ValueError as e:
            return MetadataFailure("malformed", f"Invalid JSON in paths-info response for {what}: {e}")

        return parse_paths_info(payload, file_path)

    def resolve_pointer(self, repo_id: str, file_path: str) -> MetadataResult:
        url = self.http.raw_url(repo_id, self.revision, file_path)
        what = f"{repo_id}/{file_path}@{self.revision}"
        try:
            response = self.http.get(url)
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            return _failure_from_http(e, what)

        commit = (response.headers.get(COMMIT_HEADER) or "").strip()
        return parse_pointer(response.content, commit, file_path)


def raise_for_failure(result: MetadataResult) -> FileMetadata:
    """Unwrap a MetadataResult, raising MetadataError on failure."""
    if isinstance(result, MetadataFailure):
        raise MetadataError(result.message, kind=result.kind)
    return result.metadata
