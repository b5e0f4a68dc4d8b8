"""
Path safety utilities for hubfetch.

Repository file paths end up joined under snapshots/<commit>/, so they are
validated before any path derivation to prevent directory traversal.
"""
from __future__ import annotations

from pathlib import PurePosixPath


def safe_relpath(path: str) -> str:
    """
    Validate and normalize a repository file path.

    This function enforces the following safety rules:
    - No empty strings or "." (would address the snapshot directory itself)
    - No absolute paths (starting with '/')
    - No parent directory references ('..' components)
    - No backslashes (Windows separators would escape on some platforms)

    Args:
        path: Repository-relative file path

    Returns:
        Normalized POSIX relative path

    Raises:
        ValueError: If path violates safety rules

    Examples:
        >>> safe_relpath("onnx/model.onnx")
        'onnx/model.onnx'

        >>> safe_relpath("../secrets.txt")
        ValueError: unsafe path: ../secrets.txt
    """
    rel = PurePosixPath(path)
    s = str(rel)
    if not path or not s or s == ".":
        raise ValueError(f"unsafe path: {path}")
    if "\\" in s:
        raise ValueError(f"unsafe path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe path: {path}")
    return s
