"""
Settings and configuration for hubfetch.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at client construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

__all__ = [
    "Settings",
    "create_settings_from_env",
    "DEFAULT_ENDPOINT",
    "DEFAULT_CACHE_DIR",
    "METADATA_MODES",
    "INVALIDATION_POLICIES",
]

DEFAULT_ENDPOINT = "https://huggingface.co"
DEFAULT_CACHE_DIR = "~/.cache/huggingface/hub"

METADATA_MODES = ("auto", "paths-info", "pointer")
INVALIDATION_POLICIES = ("snapshot", "purge")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for hubfetch.

    Remote Settings:
        endpoint: Base URL of the Hub (scheme required)
        revision: Branch or tag downloads are resolved against
        token: Bearer token for gated/private repositories
        http_timeout_s: Read/write timeout in seconds
        connect_timeout_s: Connect timeout in seconds
        http_retry: Retries on connect timeouts for metadata queries (0=no retry)
        metadata_mode: "auto" | "paths-info" | "pointer"

    Cache Settings:
        cache_dir: Cache root, "~" is expanded when used
        invalidation: "snapshot" (drop stale snapshot entry) | "purge" (drop whole repo cache)
        verify_checksum: Hash completed objects against sha256 content keys
        progress_interval_s: Minimum interval between progress events
    """
    endpoint: str = DEFAULT_ENDPOINT
    cache_dir: str = DEFAULT_CACHE_DIR
    revision: str = "main"
    token: Optional[str] = None
    http_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0
    http_retry: int = 0
    metadata_mode: str = "auto"
    invalidation: str = "snapshot"
    verify_checksum: bool = True
    progress_interval_s: float = 0.08

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.endpoint:
            raise ValueError("endpoint is required")

        url_pattern = r"^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        if not re.match(url_pattern, self.endpoint):
            raise ValueError(f"Invalid endpoint format: {self.endpoint}")

        if not self.cache_dir:
            raise ValueError("cache_dir is required")

        # Revisions end up as a path component under refs/
        if not self.revision or "/" in self.revision or self.revision in (".", ".."):
            raise ValueError(f"Invalid revision: {self.revision!r}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.connect_timeout_s <= 0:
            raise ValueError(f"connect_timeout_s must be positive, got {self.connect_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.metadata_mode not in METADATA_MODES:
            raise ValueError(
                f"Invalid metadata_mode: {self.metadata_mode}. Use one of: {', '.join(METADATA_MODES)}"
            )

        if self.invalidation not in INVALIDATION_POLICIES:
            raise ValueError(
                f"Invalid invalidation policy: {self.invalidation}. "
                f"Use one of: {', '.join(INVALIDATION_POLICIES)}"
            )

        if self.progress_interval_s < 0:
            raise ValueError(f"progress_interval_s must be non-negative, got {self.progress_interval_s}")


# Settings loading functions (no caching)


def create_settings_from_env(**overrides) -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - HUBFETCH_ENDPOINT, then HF_ENDPOINT (default: https://huggingface.co)
        - HUBFETCH_CACHE_DIR, then HF_HUB_CACHE (default: ~/.cache/huggingface/hub)
        - HUBFETCH_REVISION (default: main)
        - HUBFETCH_TOKEN, then HF_TOKEN (optional)
        - HUBFETCH_HTTP_TIMEOUT (default: 30.0)
        - HUBFETCH_CONNECT_TIMEOUT (default: 10.0)
        - HUBFETCH_HTTP_RETRY (default: 0)
        - HUBFETCH_METADATA_MODE (default: auto)
        - HUBFETCH_INVALIDATION (default: snapshot)
        - HUBFETCH_VERIFY_CHECKSUM (default: true)
        - HUBFETCH_PROGRESS_INTERVAL (default: 0.08)

    Args:
        **overrides: Explicit values (e.g. from CLI flags); None values are ignored

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
        This ensures test isolation and eliminates global state.
    """
    values = _load_settings_impl()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


def _load_settings_impl() -> dict:
    """Internal implementation of settings loading."""
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    def first_env(*keys: str) -> Optional[str]:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None

    return {
        "endpoint": (first_env("HUBFETCH_ENDPOINT", "HF_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/"),
        "cache_dir": first_env("HUBFETCH_CACHE_DIR", "HF_HUB_CACHE") or DEFAULT_CACHE_DIR,
        "revision": os.getenv("HUBFETCH_REVISION") or "main",
        "token": first_env("HUBFETCH_TOKEN", "HF_TOKEN"),
        "http_timeout_s": get_float("HUBFETCH_HTTP_TIMEOUT", 30.0),
        "connect_timeout_s": get_float("HUBFETCH_CONNECT_TIMEOUT", 10.0),
        "http_retry": get_int("HUBFETCH_HTTP_RETRY", 0),
        "metadata_mode": os.getenv("HUBFETCH_METADATA_MODE") or "auto",
        "invalidation": os.getenv("HUBFETCH_INVALIDATION") or "snapshot",
        "verify_checksum": str_to_bool(os.getenv("HUBFETCH_VERIFY_CHECKSUM", "true")),
        "progress_interval_s": get_float("HUBFETCH_PROGRESS_INTERVAL", 0.08),
    }
