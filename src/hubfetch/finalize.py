"""
Promotion of completed transfers into the cache.

A finished `.incomplete` file is renamed onto its content-addressed blob path
and the commit-scoped snapshot entry is (re)linked to it. The rename is atomic
because both paths live in the same blobs/ directory. Removing and relinking
the snapshot entry is not atomic: for a brief moment the snapshot path does
not exist, which is acceptable for a single writer.
"""
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Union

from .errors import FinalizationError

logger = logging.getLogger(__name__)

__all__ = ["finalize", "link_snapshot"]

PathArg = Union[str, Path]


def finalize(incomplete_path: PathArg, blob_path: PathArg, snapshot_path: PathArg) -> Path:
    """
    Promote a completed transfer and link it into its snapshot.

    Steps, in order:
    1. Rename incomplete_path -> blob_path
    2. Ensure the snapshot's parent directory exists
    3. Remove any existing entry at snapshot_path
    4. Link snapshot_path -> blob_path

    Args:
        incomplete_path: Completed partial file
        blob_path: Permanent content-addressed location
        snapshot_path: Commit-scoped path to expose the file under

    Returns:
        The snapshot path

    Raises:
        FinalizationError: If the rename or the link fails
    """
    incomplete_path = Path(incomplete_path)
    blob_path = Path(blob_path)

    try:
        os.replace(incomplete_path, blob_path)
    except OSError as e:
        raise FinalizationError(f"Cannot move {incomplete_path} to {blob_path}: {e}") from e
    logger.debug(f"Promoted {incomplete_path.name} to blob {blob_path.name}")

    return link_snapshot(blob_path, snapshot_path)


def link_snapshot(blob_path: PathArg, snapshot_path: PathArg) -> Path:
    """
    Point snapshot_path at an existing blob, replacing whatever is there.

    A relative symlink is preferred so the cache can be moved as a whole;
    where symlinks are unavailable a hard link is used instead.

    Raises:
        FinalizationError: If the blob is missing or no link can be created
    """
    blob_path = Path(blob_path)
    snapshot_path = Path(snapshot_path)

    if not blob_path.is_file():
        raise FinalizationError(f"Blob does not exist: {blob_path}")

    try:
        snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        if snapshot_path.is_symlink() or snapshot_path.is_file():
            logger.debug(f"Snapshot file exists. Deleting {snapshot_path}")
            snapshot_path.unlink()
        elif snapshot_path.is_dir():
            shutil.rmtree(snapshot_path)
    except OSError as e:
        raise FinalizationError(f"Cannot replace snapshot entry {snapshot_path}: {e}") from e

    target = os.path.relpath(blob_path, snapshot_path.parent)
    try:
        os.symlink(target, snapshot_path)
    except OSError as symlink_error:
        logger.debug(f"Symlink failed for {snapshot_path} ({symlink_error}), trying hard link")
        try:
            os.link(blob_path, snapshot_path)
        except OSError as e:
            raise FinalizationError(
                f"Cannot link {snapshot_path} to {blob_path}: {symlink_error}; {e}"
            ) from e

    return snapshot_path
