"""
Fake Hub served through httpx.MockTransport.

Implements the three endpoints hubfetch talks to (paths-info, raw, resolve)
over an in-memory file table, and records every request so tests can assert
on what went over the wire. Range support can be switched off to mimic
servers and proxies that ignore Range headers.
"""
from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import httpx

__all__ = ["FakeHub", "FakeFile", "FAKE_ENDPOINT"]

FAKE_ENDPOINT = "https://hub.test"

_PATHS_INFO_RE = re.compile(r"^/api/models/(?P<repo>[^/]+/[^/]+)/paths-info/(?P<rev>[^/]+)$")
_FILE_RE = re.compile(r"^/(?P<repo>[^/]+/[^/]+)/(?P<kind>raw|resolve)/(?P<rev>[^/]+)/(?P<file>.+)$")
_RANGE_RE = re.compile(r"^bytes=(\d+)-$")


def _git_oid(content: bytes) -> str:
    return hashlib.sha1(f"blob {len(content)}\0".encode() + content).hexdigest()


@dataclass
class FakeFile:
    """One file in the fake Hub."""
    content: bytes
    lfs: bool = True

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.content).hexdigest()

    @property
    def pointer(self) -> bytes:
        return (
            "version https://git-lfs.github.com/spec/v1\n"
            f"oid sha256:{self.sha256}\n"
            f"size {len(self.content)}\n"
        ).encode()


class _DroppingStream(httpx.SyncByteStream):
    """Body stream that fails after `limit` bytes, like a dropped connection."""

    def __init__(self, body: bytes, limit: int):
        self.body = body
        self.limit = limit

    def __iter__(self) -> Iterator[bytes]:
        yield self.body[:self.limit]
        raise httpx.ReadError("connection reset by fake hub")


class FakeHub:
    """
    In-memory Hub for testing.

    This is a test double; not for production use. Files are keyed by
    (repo_id, path). Every file is served at the current commit.
    """

    def __init__(self, commit: str = "a" * 40, honor_range: bool = True):
        self.commit = commit
        self.honor_range = honor_range
        self.files: Dict[Tuple[str, str], FakeFile] = {}
        self.requests: List[httpx.Request] = []
        self.paths_info_status: Optional[int] = None
        self.raw_status: Optional[int] = None
        self.content_status: Optional[int] = None
        self.drop_content_after: Optional[int] = None
        self.content_override: Dict[Tuple[str, str], bytes] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def add_file(self, repo_id: str, path: str, content: bytes, *, lfs: bool = True) -> FakeFile:
        fake = FakeFile(content=content, lfs=lfs)
        self.files[(repo_id, path)] = fake
        return fake

    def content_requests(self, path: Optional[str] = None) -> List[httpx.Request]:
        """Recorded requests for file content, optionally for one file path."""
        found = []
        for request in self.requests:
            match = _FILE_RE.match(request.url.path)
            if match and match.group("kind") == "resolve":
                if path is None or match.group("file") == path:
                    found.append(request)
        return found

    def metadata_requests(self) -> List[httpx.Request]:
        found = []
        for request in self.requests:
            if _PATHS_INFO_RE.match(request.url.path):
                found.append(request)
                continue
            match = _FILE_RE.match(request.url.path)
            if match and match.group("kind") == "raw":
                found.append(request)
        return found

    # Request handling

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        match = _PATHS_INFO_RE.match(path)
        if match and request.method == "POST":
            return self._paths_info(request, match.group("repo"))

        match = _FILE_RE.match(path)
        if match and request.method == "GET":
            if match.group("kind") == "raw":
                return self._raw(match.group("repo"), match.group("file"))
            return self._resolve(request, match.group("repo"), match.group("file"))

        return httpx.Response(404, json={"error": "Not Found"})

    def _known_repo(self, repo_id: str) -> bool:
        return any(repo == repo_id for repo, _ in self.files)

    def _paths_info(self, request: httpx.Request, repo_id: str) -> httpx.Response:
        if self.paths_info_status is not None:
            return httpx.Response(self.paths_info_status, json={"error": "fake failure"})
        if not self._known_repo(repo_id):
            return httpx.Response(404, json={"error": "Repository not found"})

        body = json.loads(request.content or b"{}")
        entries = []
        for file_path in body.get("paths", []):
            fake = self.files.get((repo_id, file_path))
            if fake is None:
                continue
            entry = {
                "type": "file",
                "path": file_path,
                "oid": _git_oid(fake.pointer if fake.lfs else fake.content),
                "size": len(fake.content),
                "lastCommit": {"id": self.commit, "title": "Upload", "date": "2024-01-01T00:00:00.000Z"},
            }
            if fake.lfs:
                entry["lfs"] = {"oid": fake.sha256, "size": len(fake.content), "pointerSize": len(fake.pointer)}
            entries.append(entry)
        return httpx.Response(200, json=entries)

    def _raw(self, repo_id: str, file_path: str) -> httpx.Response:
        if self.raw_status is not None:
            return httpx.Response(self.raw_status, text="fake failure")
        fake = self.files.get((repo_id, file_path))
        if fake is None:
            return httpx.Response(404, text="Entry not found")
        body = fake.pointer if fake.lfs else fake.content
        return httpx.Response(200, content=body, headers={"X-Repo-Commit": self.commit})

    def _resolve(self, request: httpx.Request, repo_id: str, file_path: str) -> httpx.Response:
        if self.content_status is not None:
            return httpx.Response(self.content_status, text="fake failure")
        fake = self.files.get((repo_id, file_path))
        if fake is None:
            return httpx.Response(404, text="Entry not found")

        content = self.content_override.get((repo_id, file_path), fake.content)
        headers = {"X-Repo-Commit": self.commit}
        status = 200
        offset = 0

        range_match = _RANGE_RE.match(request.headers.get("Range", ""))
        if range_match and self.honor_range:
            offset = int(range_match.group(1))
            if offset >= len(content):
                headers["Content-Range"] = f"bytes */{len(content)}"
                return httpx.Response(416, headers=headers)
            status = 206
            headers["Content-Range"] = f"bytes {offset}-{len(content) - 1}/{len(content)}"

        body = content[offset:]
        headers["Content-Length"] = str(len(body))
        if self.drop_content_after is not None:
            limit = self.drop_content_after
            self.drop_content_after = None
            return httpx.Response(status, headers=headers, stream=_DroppingStream(body, limit))
        return httpx.Response(status, headers=headers, content=body)
