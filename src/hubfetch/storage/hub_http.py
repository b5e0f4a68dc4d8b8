"""
Hub HTTP client.

Provides the HTTP capability used by the metadata resolver and the transfer
engine: URL construction for the Hub endpoints, bearer-token auth, explicit
timeouts and streaming GETs with custom headers.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional
from urllib.parse import quote

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import __version__
from ..settings import Settings

logger = logging.getLogger(__name__)

__all__ = ["HubHTTP", "TokenAuth", "COMMIT_HEADER"]

# Response header carrying the commit a raw/resolve request was served from
COMMIT_HEADER = "X-Repo-Commit"


class TokenAuth:
    """Resolve a Hub access token from settings or the local token file."""

    def __init__(self, token: Optional[str] = None, token_path: Optional[Path] = None):
        self.token = token
        if token_path is None:
            hf_home = os.getenv("HF_HOME")
            base = Path(hf_home) if hf_home else Path.home() / ".cache" / "huggingface"
            token_path = base / "token"
        self.token_path = token_path
        self._file_cache: Optional[str] = None
        self._file_mtime: Optional[float] = None

    def get_token(self) -> Optional[str]:
        """
        Get the token to send, explicit token first.

        Returns: token string or None for anonymous access
        """
        if self.token:
            return self.token
        return self._load_token_file()

    def _load_token_file(self) -> Optional[str]:
        """Load token file with caching and mtime checking."""
        if not self.token_path.exists():
            return None

        try:
            current_mtime = self.token_path.stat().st_mtime
            if self._file_cache is not None and current_mtime == self._file_mtime:
                return self._file_cache

            token = self.token_path.read_text(encoding="utf-8").strip() or None
            self._file_cache = token
            self._file_mtime = current_mtime
            return token
        except OSError as e:
            logger.debug(f"Failed to read token file {self.token_path}: {e}")
            return None


class HubHTTP:
    """
    HTTP client for Hub file operations.

    Wraps a single httpx.Client with redirects enabled (content downloads are
    usually redirected to a CDN) and explicit connect/read timeouts.
    """

    def __init__(self, settings: Settings, auth: Optional[TokenAuth] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize Hub HTTP client.

        Args:
            settings: Endpoint, timeouts and retry configuration
            auth: Token source (defaults to settings.token, then the token file)
            transport: Optional httpx transport (tests inject httpx.MockTransport)
        """
        self.settings = settings
        self.endpoint = settings.endpoint.rstrip("/")
        self.auth = auth or TokenAuth(settings.token)

        self.client = httpx.Client(
            timeout=httpx.Timeout(settings.http_timeout_s, connect=settings.connect_timeout_s),
            follow_redirects=True,
            headers={"User-Agent": f"hubfetch/{__version__}"},
            transport=transport,
        )
        logger.debug(
            f"Hub client for {self.endpoint}: timeout {settings.http_timeout_s}s, "
            f"connect {settings.connect_timeout_s}s, retry {settings.http_retry}"
        )

    # URL construction

    def paths_info_url(self, repo_id: str, revision: str) -> str:
        return f"{self.endpoint}/api/models/{repo_id}/paths-info/{quote(revision, safe='')}"

    def raw_url(self, repo_id: str, revision: str, filename: str) -> str:
        return f"{self.endpoint}/{repo_id}/raw/{quote(revision, safe='')}/{quote(filename)}"

    def resolve_url(self, repo_id: str, revision: str, filename: str) -> str:
        return f"{self.endpoint}/{repo_id}/resolve/{quote(revision, safe='')}/{quote(filename)}"

    # Requests

    def post_json(self, url: str, payload: dict) -> httpx.Response:
        """POST a JSON body; raises httpx.HTTPStatusError on non-success status."""
        return self._request("POST", url, json=payload)

    def get(self, url: str) -> httpx.Response:
        """GET a (small) body; raises httpx.HTTPStatusError on non-success status."""
        return self._request("GET", url)

    @contextmanager
    def stream(self, url: str, headers: Optional[Dict[str, str]] = None) -> Iterator[httpx.Response]:
        """
        Open a streaming GET.

        The response status is not checked here; range handling needs to see
        206/200/416 before deciding what a failure is.
        """
        request_headers = self._headers(headers)
        with self.client.stream("GET", url, headers=request_headers) as response:
            yield response

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make a request, retrying connect timeouts when http_retry > 0.

        With the default http_retry=0 a single attempt is made.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.http_retry + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((httpx.ConnectTimeout, httpx.ConnectError)),
            reraise=True,
        )
        response = retrying(self._send, method, url, **kwargs)
        response.raise_for_status()
        return response

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        return self.client.request(method, url, headers=self._headers(), **kwargs)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = dict(extra or {})
        token = self.auth.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
