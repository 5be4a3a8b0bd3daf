"""File statistics including on-disk size and access/change times."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass

__all__ = ["FileStats", "get_stat"]

_NS = 1_000_000_000


@dataclass
class FileStats:
    """Subset of a stat result plus the real (block-allocated) size.

    Where access time is unavailable it is 0; where change time is
    unavailable it equals the modification time.
    """

    size: int = 0
    real_size: int = 0
    atime: int = 0
    atime_ns: int = 0
    ctime: int = 0
    ctime_ns: int = 0
    mtime: int = 0
    mtime_ns: int = 0


def _split(ns: int) -> tuple[int, int]:
    return divmod(ns, _NS)


def get_stat(stat_result: os.stat_result) -> FileStats:
    """Build FileStats from an ``os.stat`` result."""
    res = FileStats(size=stat_result.st_size)
    blocks = getattr(stat_result, "st_blocks", None)
    if blocks is not None:
        res.real_size = blocks * 512

    if sys.platform.startswith("linux"):
        res.mtime, res.mtime_ns = _split(stat_result.st_mtime_ns)
        res.atime, res.atime_ns = _split(stat_result.st_atime_ns)
        res.ctime, res.ctime_ns = _split(stat_result.st_ctime_ns)
    else:
        res.mtime = stat_result.st_mtime_ns // _NS
        res.ctime = res.mtime
    return res