"""Root pytest configuration for hubfetch tests."""
import os

import pytest

from hubfetch.hub import Downloader
from hubfetch.settings import Settings

from .fakes.fake_hub import FAKE_ENDPOINT, FakeHub


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Isolate tests from the developer's Hub configuration and token file."""
    for key in list(os.environ):
        if key.startswith("HUBFETCH_"):
            monkeypatch.delenv(key)
    for key in ("HF_TOKEN", "HF_ENDPOINT", "HF_HUB_CACHE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HF_HOME", str(tmp_path / "hf_home"))


# Standardized test fixtures
@pytest.fixture
def cache_dir(tmp_path):
    """Cache root for one test."""
    return tmp_path / "cache"


@pytest.fixture
def settings(cache_dir):
    """Standard test settings pointing at the fake Hub."""
    return Settings(
        endpoint=FAKE_ENDPOINT,
        cache_dir=str(cache_dir),
        progress_interval_s=0.0,
    )


@pytest.fixture
def hub():
    """Empty fake Hub."""
    return FakeHub()


@pytest.fixture
def downloader(settings, hub):
    """Downloader wired to the fake Hub with a small chunk size."""
    with Downloader(settings, transport=hub.transport, chunk_size=16) as d:
        yield d


@pytest.fixture
def model_dir(cache_dir):
    """Per-repository cache directory for acme/tiny-model."""
    return cache_dir / "models--acme--tiny-model"
