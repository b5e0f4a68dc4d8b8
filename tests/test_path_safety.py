"""
Tests for path safety validation.

Tests the shared path_safety module and its use when deriving snapshot
paths inside the cache.
"""
from __future__ import annotations

import pytest

from hubfetch.cache import snapshot_path
from hubfetch.path_safety import safe_relpath


class TestSafeRelpath:
    """Test safe_relpath function directly."""

    def test_safe_paths_allowed(self):
        """Test that safe relative paths are allowed."""
        assert safe_relpath("model.gguf") == "model.gguf"
        assert safe_relpath("onnx/model.onnx") == "onnx/model.onnx"
        assert safe_relpath("deep/nested/path/file.txt") == "deep/nested/path/file.txt"

    def test_paths_are_normalized(self):
        """Test redundant separators and leading ./ are normalized away."""
        assert safe_relpath("./config.json") == "config.json"
        assert safe_relpath("onnx//model.onnx") == "onnx/model.onnx"

    def test_absolute_paths_rejected(self):
        """Test that absolute paths are rejected."""
        with pytest.raises(ValueError, match="unsafe path: /etc/passwd"):
            safe_relpath("/etc/passwd")

    def test_parent_directory_traversal_rejected(self):
        """Test that parent directory traversal is rejected."""
        with pytest.raises(ValueError, match="unsafe path: ../evil.txt"):
            safe_relpath("../evil.txt")

        with pytest.raises(ValueError, match="unsafe path: dir/../../evil.txt"):
            safe_relpath("dir/../../evil.txt")

    def test_empty_and_dot_rejected(self):
        """Test that paths addressing the snapshot directory itself are rejected."""
        for path in ("", "."):
            with pytest.raises(ValueError, match="unsafe path"):
                safe_relpath(path)

    def test_backslash_paths_rejected(self):
        """Test that paths containing backslashes are rejected."""
        dangerous_paths = [
            "a\\b\\c.txt",
            "..\\..\\etc\\passwd",
            "mixed/path\\with\\backslashes",
        ]

        for path in dangerous_paths:
            with pytest.raises(ValueError, match="unsafe path"):
                safe_relpath(path)


class TestSnapshotPathSafety:
    """Test that snapshot paths are validated before use."""

    def test_snapshot_path_rejects_traversal(self, tmp_path):
        """Test that a traversal in the file name never leaves the snapshot."""
        with pytest.raises(ValueError, match="unsafe path"):
            snapshot_path(tmp_path, "a" * 40, "../../outside.txt")

    def test_snapshot_path_nested(self, tmp_path):
        """Test nested repository paths keep their directories."""
        path = snapshot_path(tmp_path, "c0ffee", "onnx/model.onnx")
        assert path == tmp_path / "snapshots" / "c0ffee" / "onnx" / "model.onnx"
