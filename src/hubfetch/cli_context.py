"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
downloader, avoiding global state and enabling proper dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from .hub import Downloader
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, downloader) that are
    initialized once and shared across a CLI command execution. A transport
    may be injected so tests can serve a fake Hub.
    """
    settings: Settings
    transport: Optional[httpx.BaseTransport] = None
    _downloader: Optional[Downloader] = None

    @classmethod
    def from_env(cls, **overrides) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            **overrides: Settings values from CLI flags; None values are ignored

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env(**overrides)
        return cls(settings=settings)

    @property
    def downloader(self) -> Downloader:
        """
        Get or create the downloader (lazy initialization).

        Returns:
            Downloader sharing one HTTP client for the whole command
        """
        if self._downloader is None:
            self._downloader = Downloader(self.settings, transport=self.transport)
        return self._downloader

    def close(self) -> None:
        if self._downloader is not None:
            self._downloader.close()
            self._downloader = None
