"""Prefix trie of metric paths with glob queries and per-directory quota metadata."""

from __future__ import annotations

import posixpath
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from .glob import Expander, GlobMatcher, compile_glob
from .quota import Points, Quota, QuotaUsage, ThroughputUsages

__all__ = [
    "NilFilenameError",
    "TrieInsertError",
    "FileMeta",
    "DirMeta",
    "TrieNode",
    "QueryMatch",
    "TrieIndex",
]

SizeEstimator = Callable[[str], "tuple[int, int]"]

_SLASH = ord("/")


def _to_bytes(text: Union[str, bytes]) -> bytes:
    if isinstance(text, str):
        return text.encode("utf-8", "surrogateescape")
    return bytes(text)


def _to_str(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


class NilFilenameError(ValueError):
    """Raised when a path names a metric with an empty file name."""


class TrieInsertError(RuntimeError):
    """Raised when a path cannot be placed in the trie."""

    def __init__(self, typ: str, info: str = "") -> None:
        super().__init__(typ)
        self.typ = typ
        self.info = info


@dataclass
class FileMeta:
    """Sizes recorded for one metric file."""

    logical_size: int = 0
    physical_size: int = 0
    data_points: int = 0


@dataclass(eq=False)
class DirMeta:
    """Quota and usage attached to a directory node."""

    quota: Optional[Quota] = None
    usage: QuotaUsage = field(default_factory=QuotaUsage)

    def update(self, quota: Quota) -> None:
        """Attach ``quota`` to this directory."""
        self.quota = quota

    def within_quota(
        self, metrics: int, namespaces: int, logical: int, physical: int, data_points: int
    ) -> bool:
        """Report whether adding the given amounts keeps usage within the quota."""
        quota = self.quota
        if quota is None:
            return True
        usage = self.usage
        checks = (
            (quota.metrics, usage.metrics, metrics),
            (quota.namespaces, usage.namespaces, namespaces),
            (quota.logical_size, usage.logical_size, logical),
            (quota.physical_size, usage.physical_size, physical),
            (quota.data_points, usage.data_points, data_points),
        )
        return all(not (limit > 0 and used + extra > limit) for limit, used, extra in checks)


@dataclass(eq=False)
class TrieNode:
    """A trie node; ``c`` is None for the root and for file leaves, b'/' for dirs."""

    c: Optional[bytes] = None
    children: list["TrieNode"] = field(default_factory=list)
    gen: int = 0
    meta: Union[FileMeta, DirMeta, None] = None

    def is_dir(self) -> bool:
        return self.c == b"/"

    def is_file(self) -> bool:
        return self.c is None

    def add_child(self, node: "TrieNode") -> None:
        # Replace rather than mutate so concurrent readers keep a consistent list.
        self.children = self.children + [node]

    def set_child(self, index: int, node: "TrieNode") -> None:
        self.children[index] = node

    def full_path(self, sep: Union[str, int], parents: Sequence["TrieNode"]) -> str:
        """Join the names of ``parents`` and this node, dirs becoming ``sep``."""
        sep_b = _to_bytes(sep) if isinstance(sep, str) else bytes([sep])
        parts = []
        for node in parents:
            if node.is_dir():
                parts.append(sep_b)
            elif node.c:
                parts.append(node.c)
        if self.c:
            parts.append(self.c)
        return _to_str(b"".join(parts))


@dataclass(frozen=True)
class QueryMatch:
    """One query result: dotted path, whether it is a metric, and its node."""

    path: str
    is_leaf: bool
    node: TrieNode


class TrieIndex:
    """Index of metric files, queried with graphite globs."""

    def __init__(self, file_ext: str = ".wsp", estimate_size: Optional[SizeEstimator] = None) -> None:
        self.root = TrieNode(meta=DirMeta())
        self.file_ext = _to_bytes(file_ext)
        self.file_count = 0
        self.depth = 0
        self.longest_metric = ""
        self.trigrams: dict[TrieNode, list[int]] = {}
        self.qau_metrics: list[Points] = []
        self.estimate_size = estimate_size
        self.throughputs: Optional[ThroughputUsages] = None
        self.lock = threading.Lock()

    def _new_node(self, c: bytes) -> TrieNode:
        return TrieNode(c=c, gen=self.root.gen)

    def _new_dir(self) -> TrieNode:
        return TrieNode(c=b"/", gen=self.root.gen)

    def insert(self, path: Union[str, bytes], logical_size: int = 0,
               physical_size: int = 0, data_points: int = 0) -> None:
        """Insert a '/'-separated path; a name ending in the file extension is a metric."""
        data = posixpath.normpath(_to_bytes(path)).lstrip(b"/")
        if data in (b"", b"."):
            return
        is_file = data.endswith(self.file_ext)
        if is_file:
            data = data[: len(data) - len(self.file_ext)]
        if not data or data[-1] == _SLASH:
            raise NilFilenameError("metric filename is nil")

        if len(data) > self.depth:
            self.depth = len(data)
            self.longest_metric = _to_str(data)

        gen = self.root.gen
        n = len(data)
        start = 0
        cur = self.root
        i = 0
        while i <= n:
            if i < n and data[i] != _SLASH:
                i += 1
                continue

            reached = False
            ci = 0
            while ci < len(cur.children):
                child = cur.children[ci]
                if not child.c or child.c[0] != data[start]:
                    ci += 1
                    continue
                nlen = i - start
                start += 1
                match = 1
                while match < len(child.c) and match < nlen:
                    if child.c[match] != data[start]:
                        break
                    start += 1
                    match += 1

                if match == nlen and len(child.c) == match:
                    child.gen = gen
                    cur = child
                    reached = True
                    break
                if match != nlen and match == len(child.c) and len(child.c) < nlen:
                    child.gen = gen
                    cur = child
                    ci = 0
                    continue

                suffix_node = TrieNode(c=child.c[match:], children=child.children, gen=child.gen)
                prefix_node = TrieNode(c=child.c[:match], children=[suffix_node], gen=gen)
                cur.set_child(ci, prefix_node)
                cur = prefix_node
                if nlen - match > 0:
                    new = self._new_node(data[start:i])
                    cur.add_child(new)
                    cur = new
                reached = True
                break

            if not reached and i - start > 0:
                new = self._new_node(data[start:i])
                cur.add_child(new)
                cur = new

            if i == n:
                break
            start = i + 1
            dir_child = next((ch for ch in cur.children if ch.is_dir()), None)
            if dir_child is not None:
                dir_child.gen = gen
                cur = dir_child
            else:
                new = self._new_dir()
                cur.add_child(new)
                cur = new
            i += 1

        if not is_file:
            if not cur.is_dir() and not any(ch.is_dir() for ch in cur.children):
                cur.add_child(self._new_dir())
            return

        for child in cur.children:
            if child.is_file():
                child.gen = gen
                if logical_size > 0 or physical_size > 0 or data_points > 0:
                    meta = child.meta
                    if isinstance(meta, FileMeta):
                        meta.logical_size = logical_size
                        meta.physical_size = physical_size
                        meta.data_points = data_points
                return

        if self.estimate_size is not None and logical_size == 0 and physical_size == 0 and data_points == 0:
            logical_size, data_points = self.estimate_size(_to_str(data).replace("/", "."))
            physical_size = logical_size
        cur.add_child(TrieNode(gen=gen, meta=FileMeta(logical_size, physical_size, data_points)))
        self.file_count += 1

    def query(self, expr: Union[str, bytes], limit: int = 1 << 62,
              expand: Optional[Expander] = None) -> list[QueryMatch]:
        """Return paths matching a '/'-separated glob, depth first, up to ``limit``."""
        data = _to_bytes(expr).strip()
        if not data:
            data = b"*"
        matchers: list[GlobMatcher] = [
            compile_glob(part if isinstance(expr, bytes) else _to_str(part), expand)
            for part in data.split(b"/")
            if part
        ]
        if not matchers:
            return []

        results: list[QueryMatch] = []
        last = len(matchers) - 1
        root = self.root
        stack = [(child, (root,), 0, matchers[0].dstates[0]) for child in reversed(root.children)]
        while stack:
            node, parents, mi, ds = stack.pop()
            if node.is_file():
                continue
            children = node.children
            below = parents + (node,)

            if node.is_dir():
                if mi >= last or not ds.matched():
                    continue
                initial = matchers[mi + 1].dstates[0]
                stack.extend((ch, below, mi + 1, initial) for ch in reversed(children))
                continue

            m = matchers[mi]
            if m.ls_complex and m.trigrams and node in self.trigrams:
                node_trigrams = self.trigrams[node]
                if any(t not in node_trigrams for t in m.trigrams):
                    continue

            for byte in node.c:
                ds = ds.step(byte)
                if not ds.gstates:
                    break
            else:
                descend = [(ch, below, mi, ds) for ch in reversed(children)]
                if mi < last:
                    stack.extend(descend)
                    continue

                file_node = dir_node = None
                has_more = False
                for ch in children:
                    if ch.is_file():
                        file_node = ch
                    elif ch.is_dir():
                        dir_node = ch
                    else:
                        has_more = True

                if file_node is None and dir_node is None:
                    stack.extend(descend)
                    continue
                if ds.matched():
                    path = node.full_path(".", parents)
                    if file_node is not None:
                        results.append(QueryMatch(path, True, file_node))
                    if dir_node is not None:
                        results.append(QueryMatch(path, False, dir_node))
                    if len(results) >= limit:
                        return results
                if has_more:
                    stack.extend(descend)
        return results

    def all_metrics(self, sep: Union[str, int] = ".") -> list[str]:
        """Return every metric path, sorted by bytes."""
        files: list[str] = []
        stack = [(ch, (self.root,)) for ch in reversed(self.root.children)]
        while stack:
            node, parents = stack.pop()
            if node.is_file():
                files.append(node.full_path(sep, parents))
                continue
            below = parents + (node,)
            stack.extend((ch, below) for ch in reversed(node.children))
        files.sort(key=_to_bytes)
        return files

    def all_metrics_node(self, node: TrieNode, sep: Union[str, int], prefix: str,
                         limit: int, stats_only: bool):
        """Walk metrics under ``node``.

        Returns (paths, file nodes, count, physical size, logical size); ``limit``
        bounds the listed paths only when ``stats_only`` is false.
        """
        files: list[str] = []
        file_nodes: list[TrieNode] = []
        count = physical = logical = 0
        stack = [(ch, (node,)) for ch in reversed(node.children)]
        while stack:
            cur, parents = stack.pop()
            if cur.is_file():
                count += 1
                if isinstance(cur.meta, FileMeta):
                    physical += cur.meta.physical_size
                    logical += cur.meta.logical_size
                if not stats_only:
                    files.append(prefix + cur.full_path(sep, parents))
                    file_nodes.append(cur)
                if len(files) >= limit:
                    break
                continue
            below = parents + (cur,)
            stack.extend((ch, below) for ch in reversed(cur.children))
        return files, file_nodes, count, physical, logical