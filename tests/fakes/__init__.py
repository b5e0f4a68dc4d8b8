# Fake implementations for testing

from .fake_hub import FAKE_ENDPOINT, FakeFile, FakeHub

__all__ = ["FAKE_ENDPOINT", "FakeFile", "FakeHub"]
