"""
Shard file name grammar.

Large files are often split into numbered parts named

    <base>-<NNNNN>-of-<MMMMM>.<ext>

with fixed-width, zero-padded 5-digit index and count groups, e.g.
`model-00002-of-00005.gguf`. Parsing is pure; the download driver lives in
hub.hub_download_with_shards.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

__all__ = ["ShardName", "parse_shard_name", "SHARD_WIDTH"]

SHARD_WIDTH = 5

_SHARD_RE = re.compile(
    rf"^(?P<base>.+)-(?P<index>\d{{{SHARD_WIDTH}}})-of-(?P<count>\d{{{SHARD_WIDTH}}})\.(?P<extension>\w+)$"
)


@dataclass(frozen=True)
class ShardName:
    """One shard of a multi-part file."""
    base: str
    index: int
    count: int
    extension: str

    def __post_init__(self) -> None:
        if not self.base:
            raise ValueError("base must be non-empty")
        if self.count < 1:
            raise ValueError(f"shard count must be positive, got {self.count}")
        if not 1 <= self.index <= self.count:
            raise ValueError(f"shard index {self.index} outside 1..{self.count}")

    @property
    def filename(self) -> str:
        return self.shard_filename(self.index)

    def shard_filename(self, index: int) -> str:
        """File name of shard `index` of this set."""
        return f"{self.base}-{index:0{SHARD_WIDTH}d}-of-{self.count:0{SHARD_WIDTH}d}.{self.extension}"

    def shard_filenames(self) -> List[str]:
        """All shard file names of this set, in index order."""
        return [self.shard_filename(i) for i in range(1, self.count + 1)]


def parse_shard_name(filename: str) -> Optional[ShardName]:
    """
    Parse a shard file name.

    Returns:
        ShardName, or None when filename does not follow the shard grammar
        or its numbers are inconsistent (index 0, index > count)

    Examples:
        >>> parse_shard_name("model-00002-of-00005.gguf")
        ShardName(base='model', index=2, count=5, extension='gguf')
        >>> parse_shard_name("model.gguf") is None
        True
    """
    match = _SHARD_RE.match(filename)
    if not match:
        return None
    index = int(match.group("index"))
    count = int(match.group("count"))
    if count < 1 or not 1 <= index <= count:
        return None
    return ShardName(
        base=match.group("base"),
        index=index,
        count=count,
        extension=match.group("extension"),
    )
