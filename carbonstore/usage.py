"""Quota application, usage refresh and throttling decisions for a TrieIndex."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from .quota import (
    Point,
    Points,
    Quota,
    QuotaDroppingPolicy,
    ThroughputUsagePerQuota,
    ThroughputUsages,
)
from .trie import DirMeta, FileMeta, TrieIndex, TrieNode

__all__ = [
    "apply_quotas",
    "refresh_usage",
    "generate_quota_and_usage_metrics",
    "throttle",
]

_MAX_INT32 = (1 << 31) - 1
_DOT = ord(".")
# Keep stat metric file names under the usual 255-byte limit, with room for
# a file extension.
_MAX_NAME = 250
_MD5_HEX = 32


def apply_quotas(index: TrieIndex, *args: Quota) -> Optional[ThroughputUsages]:
    """Attach each quota in ``args`` to the directories its pattern matches.

    Installs fresh throughput counters on the index and returns the previous
    ones (None if there were none). Must not run alongside inserts.
    """
    throughputs = ThroughputUsages()
    for quota in args:
        if quota.pattern == "/":
            meta = index.root.meta
            if not isinstance(meta, DirMeta):
                meta = DirMeta()
                index.root.meta = meta
            meta.update(quota)
            throughputs.entries["/"] = ThroughputUsagePerQuota(quota=quota, usage=meta.usage)
            continue

        for match in index.query(quota.pattern.replace(".", "/"), _MAX_INT32, None):
            node = match.node
            if node.meta is None:
                node.meta = DirMeta()
            meta = node.meta
            if not isinstance(meta, DirMeta):
                continue
            throughputs.entries[match.path] = ThroughputUsagePerQuota(quota=quota, usage=meta.usage)
            throughputs.depth = max(throughputs.depth, match.path.count("."))
            meta.update(quota)

    previous = index.throughputs
    index.throughputs = throughputs
    return previous


@dataclass(eq=False)
class _Frame:
    node: TrieNode
    parents: tuple
    owner: Optional["_Frame"]
    pos: int = 0
    files: int = 0
    logical_size: int = 0
    physical_size: int = 0
    data_points: int = 0
    namespaces: int = 0


def _finish_dir(index: TrieIndex, frame: _Frame, throughputs: ThroughputUsages) -> None:
    node = frame.node
    meta = node.meta
    if not isinstance(meta, DirMeta) or meta.usage is None:
        return
    usage = meta.usage
    usage.namespaces = frame.namespaces
    usage.metrics = frame.files
    usage.logical_size = frame.logical_size
    usage.physical_size = frame.physical_size
    usage.data_points = frame.data_points

    if node is index.root:
        name, tname = "root", "/"
    else:
        name = index.root.full_path(".", frame.parents)
        tname = name
    prefix = meta.quota.stat_metric_prefix if meta.quota is not None else ""
    entry = throughputs.entries.get(tname)
    throughput = entry.counter if entry is not None else 0

    generate_quota_and_usage_metrics(index, prefix, name.replace(".", "-"), node, throughput)

    if usage.throttled > 0:
        usage.throttled = 0


def refresh_usage(index: TrieIndex, throughputs: Optional[ThroughputUsages]) -> int:
    """Recompute usage of every quota directory and regenerate stat metrics.

    Returns the number of metric files seen. Must not run alongside inserts.
    """
    if throughputs is None:
        throughputs = ThroughputUsages()

    # Unflushed stats are stale by now; the collector stamps fresh ones.
    index.qau_metrics = []

    root = index.root
    files = 0
    stack = [_Frame(node=root, parents=(), owner=None)]
    while stack:
        frame = stack[-1]
        children = frame.node.children
        if frame.pos < len(children):
            child = children[frame.pos]
            frame.pos += 1
            if child.is_file():
                frame.files += 1
                meta = child.meta
                if isinstance(meta, FileMeta):
                    frame.logical_size += meta.logical_size
                    frame.physical_size += meta.physical_size
                    frame.data_points += meta.data_points
                files += 1
                continue
            owner = frame if (frame.node.is_dir() or frame.node is root) else frame.owner
            if child.is_dir() and owner is not None:
                owner.namespaces += 1
            stack.append(_Frame(node=child, parents=frame.parents + (frame.node,), owner=owner))
            continue

        stack.pop()
        if frame.node.is_dir() or frame.node is root:
            _finish_dir(index, frame, throughputs)
        if stack:
            parent = stack[-1]
            parent.files += frame.files
            parent.logical_size += frame.logical_size
            parent.physical_size += frame.physical_size
            parent.data_points += frame.data_points
    return files


def _shorten(name: str) -> str:
    data = name.encode("utf-8", "surrogateescape")
    if len(data) < _MAX_NAME:
        return name
    head = data[: _MAX_NAME - _MD5_HEX - 1].decode("utf-8", "surrogateescape")
    return f"{head}-{hashlib.md5(data).hexdigest()}"


def generate_quota_and_usage_metrics(
    index: TrieIndex, prefix: str, name: str, node: TrieNode, throughput: int
) -> None:
    """Append quota, usage and throttle stat points for ``node`` to the index."""
    meta = node.meta
    if not isinstance(meta, DirMeta) or meta.quota is None:
        return
    name = _shorten(name)
    quota = meta.quota
    usage = meta.usage

    def emit(kind: str, limit: int, used: int) -> None:
        if limit > 0:
            index.qau_metrics.append(Points(f"quota.{kind}.{prefix}{name}", [Point(float(limit))]))
            index.qau_metrics.append(Points(f"usage.{kind}.{prefix}{name}", [Point(float(used))]))

    emit("namespaces", quota.namespaces, usage.namespaces)
    emit("metrics", quota.metrics, usage.metrics)
    emit("data_points", quota.data_points, usage.data_points)
    emit("logical_size", quota.logical_size, usage.logical_size)
    emit("physical_size", quota.physical_size, usage.physical_size)
    emit("throughput", quota.throughput, throughput)

    index.qau_metrics.append(Points(f"throttle.{prefix}{name}", [Point(float(usage.throttled))]))


def _check_throughput(entry: ThroughputUsagePerQuota, count: int, throughput: int) -> bool:
    """Account ``count`` points to ``entry``; report whether they are throttled."""
    if entry.quota.dropping_policy != QuotaDroppingPolicy.NONE and not entry.within_quota(count):
        if entry.usage is not None:
            entry.usage.throttled += throughput
        return True
    entry.increase(count)
    return False


def _find_new(index: TrieIndex, metric: bytes) -> tuple[bool, list[TrieNode]]:
    """Walk the trie along ``metric``; return whether it is new and the dirs passed."""
    node = index.root
    dirs = [index.root]
    mindex = 0
    n = len(metric)
    while True:
        c = node.c or b""
        cindex = 0
        while cindex < len(c) and mindex < n:
            if c[cindex] != metric[mindex]:
                return True, dirs
            mindex += 1
            cindex += 1
        if cindex < len(c):
            return True, dirs

        children = node.children
        if mindex < n and metric[mindex] == _DOT:
            dir_node = next((ch for ch in children if ch.is_dir()), None)
            if dir_node is None:
                return True, dirs
            dirs.append(dir_node)
            node = dir_node
            children = dir_node.children
            mindex += 1

        for child in children:
            if mindex >= n:
                if child.is_file():
                    return False, dirs
                continue
            if child.c and child.c[0] == metric[mindex]:
                node = child
                break
        else:
            return True, dirs


def throttle(index: TrieIndex, points: Points, in_cache: bool) -> bool:
    """Decide whether ``points`` must be dropped under the index's quotas."""
    count = len(points.data)
    # A metric without data points still counts as one for throttling.
    throughput = count or 1

    throughputs = index.throughputs
    if throughputs is not None:
        root_entry = throughputs.entries.get("/")
        if root_entry is not None and _check_throughput(root_entry, count, throughput):
            return True

        metric = points.metric
        depth = 0
        for i, ch in enumerate(metric):
            if depth > throughputs.depth:
                break
            if ch != ".":
                continue
            entry = throughputs.entries.get(metric[:i])
            if entry is not None and _check_throughput(entry, count, throughput):
                return True
            depth += 1

    if in_cache:
        return False

    metric_bytes = points.metric.encode("utf-8", "surrogateescape")
    is_new, dirs = _find_new(index, metric_bytes)
    if not is_new:
        return False

    if index.estimate_size is not None:
        size, data_points = index.estimate_size(points.metric)
    else:
        size, data_points = 0, 0

    last = len(dirs) - 1
    for i, node in enumerate(dirs):
        namespaces = 1 if i == last else 0
        meta = node.meta
        if not isinstance(meta, DirMeta) or meta.within_quota(1, namespaces, size, size, data_points):
            continue
        if meta.usage is not None:
            meta.usage.throttled += throughput
        if meta.quota is not None and meta.quota.dropping_policy == QuotaDroppingPolicy.NONE:
            continue
        return True
    return False