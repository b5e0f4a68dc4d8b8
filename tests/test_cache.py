"""
Tests for the on-disk cache layout.

Covers path derivation, ref reconciliation and the two invalidation
policies applied when a branch moves to a new commit.
"""
from __future__ import annotations

import os

import pytest

from hubfetch.cache import (
    RefState,
    blob_path,
    ensure_layout,
    incomplete_path,
    invalidate,
    model_cache_dir,
    read_ref,
    reconcile_ref,
    ref_path,
    repo_folder_name,
    snapshot_path,
    write_ref,
)
from hubfetch.errors import CacheLayoutError

OLD = "1" * 40
NEW = "2" * 40


class TestPathDerivation:
    """Test pure path helpers."""

    def test_repo_folder_name(self):
        assert repo_folder_name("org/name") == "models--org--name"
        assert repo_folder_name("single") == "models--single"

    def test_repo_folder_name_rejects_traversal(self):
        for repo_id in ("", "/abs", "org/../etc"):
            with pytest.raises(ValueError, match="Invalid repo_id"):
                repo_folder_name(repo_id)

    def test_model_cache_dir_expands_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert model_cache_dir("~/hub", "org/name") == tmp_path / "hub" / "models--org--name"

    def test_blob_and_incomplete_share_directory(self, tmp_path):
        """Test the partial file lives next to its blob so promotion is a rename."""
        blob = blob_path(tmp_path, "abc")
        partial = incomplete_path(tmp_path, "abc")
        assert blob == tmp_path / "blobs" / "abc"
        assert partial == tmp_path / "blobs" / "abc.incomplete"
        assert blob.parent == partial.parent

    def test_ref_path(self, tmp_path):
        assert ref_path(tmp_path) == tmp_path / "refs" / "main"
        assert ref_path(tmp_path, "v1.0") == tmp_path / "refs" / "v1.0"


class TestEnsureLayout:
    """Test layout creation."""

    def test_creates_directories(self, tmp_path):
        model_dir = ensure_layout(tmp_path, "org/name")
        assert model_dir == tmp_path / "models--org--name"
        for sub in ("refs", "blobs", "snapshots"):
            assert (model_dir / sub).is_dir()

    def test_idempotent(self, tmp_path):
        first = ensure_layout(tmp_path, "org/name")
        (first / "blobs" / "keep").write_bytes(b"x")
        second = ensure_layout(tmp_path, "org/name")
        assert first == second
        assert (second / "blobs" / "keep").read_bytes() == b"x"

    def test_unwritable_root_raises(self, tmp_path):
        """Test that a file in place of the cache root is a layout error."""
        root = tmp_path / "not-a-dir"
        root.write_text("file")
        with pytest.raises(CacheLayoutError, match="Cannot create cache layout"):
            ensure_layout(root, "org/name")


class TestRefs:
    """Test ref reading, writing and reconciliation."""

    def test_read_missing_ref(self, tmp_path):
        assert read_ref(tmp_path) is None

    def test_write_then_read(self, tmp_path):
        write_ref(tmp_path, OLD)
        assert read_ref(tmp_path) == OLD
        assert ref_path(tmp_path).read_text() == OLD

    def test_write_leaves_no_temp_files(self, tmp_path):
        write_ref(tmp_path, OLD)
        write_ref(tmp_path, NEW)
        assert os.listdir(tmp_path / "refs") == ["main"]

    def test_reconcile_new_writes_ref(self, tmp_path):
        status = reconcile_ref(tmp_path, NEW)
        assert status.state is RefState.NEW
        assert not status.stale
        assert read_ref(tmp_path) == NEW

    def test_reconcile_fresh(self, tmp_path):
        write_ref(tmp_path, NEW)
        status = reconcile_ref(tmp_path, NEW)
        assert status.state is RefState.FRESH
        assert not status.stale

    def test_reconcile_stale_leaves_ref_untouched(self, tmp_path):
        write_ref(tmp_path, OLD)
        status = reconcile_ref(tmp_path, NEW)
        assert status.stale
        assert status.previous == OLD
        assert status.commit == NEW
        assert read_ref(tmp_path) == OLD


class TestInvalidate:
    """Test invalidation policies after a branch moved."""

    def _populate(self, model_dir):
        ensure_dirs = [model_dir / "blobs", model_dir / "snapshots" / OLD / "onnx"]
        for d in ensure_dirs:
            d.mkdir(parents=True, exist_ok=True)
        (model_dir / "blobs" / "k1").write_bytes(b"one")
        (model_dir / "blobs" / "k2").write_bytes(b"two")
        os.symlink("../../../blobs/k1", model_dir / "snapshots" / OLD / "onnx" / "model.onnx")
        os.symlink("../../blobs/k2", model_dir / "snapshots" / OLD / "config.json")
        write_ref(model_dir, OLD)

    def test_snapshot_policy_removes_only_stale_entry(self, tmp_path):
        self._populate(tmp_path)
        status = reconcile_ref(tmp_path, NEW)

        invalidate(tmp_path, status, "onnx/model.onnx", policy="snapshot")

        assert not (tmp_path / "snapshots" / OLD / "onnx").exists()
        assert (tmp_path / "snapshots" / OLD / "config.json").is_symlink()
        assert (tmp_path / "blobs" / "k1").exists()
        assert (tmp_path / "blobs" / "k2").exists()
        assert read_ref(tmp_path) == NEW

    def test_snapshot_policy_prunes_empty_commit_dir(self, tmp_path):
        (tmp_path / "blobs").mkdir()
        (tmp_path / "snapshots" / OLD).mkdir(parents=True)
        (tmp_path / "blobs" / "k1").write_bytes(b"one")
        os.symlink("../../blobs/k1", tmp_path / "snapshots" / OLD / "model.gguf")
        write_ref(tmp_path, OLD)

        invalidate(tmp_path, reconcile_ref(tmp_path, NEW), "model.gguf", policy="snapshot")

        assert not (tmp_path / "snapshots" / OLD).exists()
        assert (tmp_path / "snapshots").is_dir()
        assert (tmp_path / "blobs" / "k1").exists()

    def test_snapshot_policy_targets_previous_commit(self, tmp_path):
        """Test only the entry under the previously recorded commit is touched."""
        self._populate(tmp_path)
        status = reconcile_ref(tmp_path, NEW)

        invalidate(tmp_path, status, "onnx/model.onnx", policy="snapshot")
        invalidate(tmp_path, reconcile_ref(tmp_path, OLD), "config.json", policy="snapshot")

        # Second call saw refs/main == NEW, so it removed NEW's (absent) entry
        assert (tmp_path / "snapshots" / OLD / "config.json").is_symlink()
        assert read_ref(tmp_path) == OLD

    def test_purge_policy_removes_everything(self, tmp_path):
        self._populate(tmp_path)
        status = reconcile_ref(tmp_path, NEW)

        invalidate(tmp_path, status, "onnx/model.onnx", policy="purge")

        assert os.listdir(tmp_path / "blobs") == []
        assert os.listdir(tmp_path / "snapshots") == []
        assert read_ref(tmp_path) == NEW

    def test_fresh_status_is_noop(self, tmp_path):
        self._populate(tmp_path)
        status = reconcile_ref(tmp_path, OLD)

        invalidate(tmp_path, status, "config.json", policy="purge")

        assert (tmp_path / "blobs" / "k1").exists()
        assert read_ref(tmp_path) == OLD

    def test_unknown_policy_raises(self, tmp_path):
        self._populate(tmp_path)
        status = reconcile_ref(tmp_path, NEW)
        with pytest.raises(ValueError, match="Unknown invalidation policy"):
            invalidate(tmp_path, status, "config.json", policy="bogus")


class TestSnapshotPath:
    def test_commit_scoped(self, tmp_path):
        assert snapshot_path(tmp_path, NEW, "model.gguf") == tmp_path / "snapshots" / NEW / "model.gguf"
