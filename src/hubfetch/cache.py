"""
On-disk cache layout.

Owns the directory structure shared with other Hub clients:

    <cache_root>/models--<org>--<name>/
        refs/<revision>                      last commit id seen for the revision
        blobs/<content_key>                  complete, immutable objects
        blobs/<content_key>.incomplete       partial objects during transfer
        snapshots/<commit>/<relative_path>   links into blobs/

Path derivations are pure; only ensure_layout, reconcile_ref and invalidate
touch the filesystem.
"""
from __future__ import annotations

import enum
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import CacheLayoutError
from .path_safety import safe_relpath

logger = logging.getLogger(__name__)

__all__ = [
    "INCOMPLETE_SUFFIX",
    "RefState",
    "RefStatus",
    "repo_folder_name",
    "model_cache_dir",
    "ensure_layout",
    "blob_path",
    "incomplete_path",
    "snapshot_path",
    "ref_path",
    "read_ref",
    "write_ref",
    "reconcile_ref",
    "invalidate",
]

INCOMPLETE_SUFFIX = ".incomplete"

PathLike = Union[str, os.PathLike]


class RefState(enum.Enum):
    NEW = "new"        # no ref recorded yet; the new commit was written
    FRESH = "fresh"    # recorded commit equals the resolved one
    STALE = "stale"    # recorded commit differs; the branch moved


@dataclass(frozen=True)
class RefStatus:
    """Staleness decision for one revision ref."""
    state: RefState
    commit: str
    previous: Optional[str] = None

    @property
    def stale(self) -> bool:
        return self.state is RefState.STALE


def repo_folder_name(repo_id: str) -> str:
    """
    Folder name for a repository id.

    Examples:
        >>> repo_folder_name("org/name")
        'models--org--name'
    """
    if not repo_id or repo_id.startswith("/") or ".." in repo_id.split("/"):
        raise ValueError(f"Invalid repo_id: {repo_id!r}")
    return "models--" + repo_id.replace("/", "--")


def model_cache_dir(cache_root: PathLike, repo_id: str) -> Path:
    """Cache directory for repo_id under the (home-expanded) cache root."""
    return Path(os.path.expanduser(os.fspath(cache_root))) / repo_folder_name(repo_id)


def ensure_layout(cache_root: PathLike, repo_id: str) -> Path:
    """
    Create refs/, blobs/ and snapshots/ for repo_id if missing.

    Idempotent; returns the model cache directory.

    Raises:
        CacheLayoutError: If a directory cannot be created
    """
    model_dir = model_cache_dir(cache_root, repo_id)
    try:
        for sub in ("refs", "blobs", "snapshots"):
            (model_dir / sub).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CacheLayoutError(f"Cannot create cache layout at {model_dir}: {e}") from e
    logger.debug(f"Cache directory: {model_dir}")
    return model_dir


def blob_path(model_dir: Path, content_key: str) -> Path:
    return Path(model_dir) / "blobs" / content_key


def incomplete_path(model_dir: Path, content_key: str) -> Path:
    return Path(model_dir) / "blobs" / f"{content_key}{INCOMPLETE_SUFFIX}"


def snapshot_path(model_dir: Path, commit: str, relative_file: str) -> Path:
    """
    Snapshot path for a repository file at a commit.

    Raises:
        ValueError: If relative_file would escape the snapshot directory
    """
    return Path(model_dir) / "snapshots" / commit / safe_relpath(relative_file)


def ref_path(model_dir: Path, revision: str = "main") -> Path:
    return Path(model_dir) / "refs" / revision


def read_ref(model_dir: Path, revision: str = "main") -> Optional[str]:
    """Recorded commit for revision, or None when no ref exists."""
    path = ref_path(model_dir, revision)
    try:
        return path.read_text(encoding="utf-8").strip() or None
    except FileNotFoundError:
        return None
    except OSError as e:
        raise CacheLayoutError(f"Cannot read ref {path}: {e}") from e


def write_ref(model_dir: Path, commit: str, revision: str = "main") -> None:
    """Atomically record commit as the last seen commit for revision."""
    path = ref_path(model_dir, revision)
    tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(commit)
        os.replace(tmp, path)
    except OSError as e:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise CacheLayoutError(f"Cannot write ref {path}: {e}") from e


def reconcile_ref(model_dir: Path, new_commit: str, revision: str = "main") -> RefStatus:
    """
    Compare the recorded ref with a freshly resolved commit.

    A missing ref is written immediately (NEW). A differing ref is reported
    as STALE and left untouched; the caller invalidates and then rewrites it.
    """
    previous = read_ref(model_dir, revision)
    if previous is None:
        write_ref(model_dir, new_commit, revision)
        return RefStatus(RefState.NEW, new_commit)
    if previous == new_commit:
        return RefStatus(RefState.FRESH, new_commit)
    logger.debug(f"refs/{revision} moved from {previous} to {new_commit}")
    return RefStatus(RefState.STALE, new_commit, previous=previous)


def invalidate(model_dir: Path, status: RefStatus, relative_file: str, *,
               policy: str = "snapshot", revision: str = "main") -> None:
    """
    Apply the invalidation policy for a stale ref, then record the new commit.

    Policies:
        snapshot: remove only snapshots/<previous>/<relative_file> (and the
                  snapshot directory if it became empty). Blobs are content
                  addressed and stay valid across commits.
        purge:    remove every blob and snapshot of the repository. Discards
                  content that other commits may still reference.
    """
    if not status.stale:
        return

    if policy == "purge":
        logger.warning(f"Purging all blobs and snapshots in {model_dir} after ref change")
        for sub in ("blobs", "snapshots"):
            target = Path(model_dir) / sub
            try:
                shutil.rmtree(target, ignore_errors=False)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise CacheLayoutError(f"Cannot purge {target}: {e}") from e
            target.mkdir(parents=True, exist_ok=True)
    elif policy == "snapshot":
        _remove_snapshot_entry(Path(model_dir), status.previous, relative_file)
    else:
        raise ValueError(f"Unknown invalidation policy: {policy}")

    write_ref(model_dir, status.commit, revision)


def _remove_snapshot_entry(model_dir: Path, commit: Optional[str], relative_file: str) -> None:
    if not commit:
        return
    stale = snapshot_path(model_dir, commit, relative_file)
    try:
        if stale.is_symlink() or stale.is_file():
            stale.unlink()
            logger.debug(f"Removed stale snapshot entry {stale}")
    except OSError as e:
        raise CacheLayoutError(f"Cannot remove stale snapshot {stale}: {e}") from e

    # Prune directories emptied by the removal, up to snapshots/
    snapshots_root = model_dir / "snapshots"
    parent = stale.parent
    while parent != snapshots_root and snapshots_root in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            break
        parent = parent.parent
