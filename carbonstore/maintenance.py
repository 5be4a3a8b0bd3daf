"""Whole-index walks over a TrieIndex: pruning, counting, trigram setup and dumps."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TextIO

from .trie import DirMeta, TrieIndex, TrieNode

__all__ = [
    "NodeCounts",
    "prune",
    "count_nodes",
    "stat_nodes",
    "set_trigrams",
    "dump",
    "quota_tree",
]

# Directories with more direct entries than this get trigram hints.
_TRIGRAM_FACTOR = 10


@dataclass
class NodeCounts:
    """Shape statistics of a trie."""

    count: int = 0
    files: int = 0
    dirs: int = 0
    one_child: int = 0
    one_file_child: int = 0
    one_node_child: int = 0
    count_by_children: Counter = field(default_factory=Counter)
    nodes_by_gen: Counter = field(default_factory=Counter)


def prune(index: TrieIndex) -> None:
    """Drop nodes whose generation differs from the root's and re-merge chains.

    Must run after all inserts of the current generation are done.
    """
    root = index.root
    gen = root.gen
    # Frames: [node, parent, snapshot of children, next position]
    stack: list[list] = [[root, None, list(root.children), 0]]
    while stack:
        frame = stack[-1]
        node, parent, snapshot, pos = frame
        if pos >= len(snapshot):
            stack.pop()
            if parent is not None and not node.is_dir():
                only = node.children
                if len(only) == 1 and not only[0].is_file() and not only[0].is_dir():
                    merged = TrieNode(
                        c=(node.c or b"") + (only[0].c or b""),
                        children=only[0].children,
                        gen=gen,
                    )
                    parent.children = [merged if ch is node else ch for ch in parent.children]
            if stack:
                stack[-1][3] += 1
            continue

        child = snapshot[pos]
        if child.gen != gen:
            node.children = [ch for ch in node.children if ch is not child]
            frame[3] += 1
            continue
        stack.append([child, node, list(child.children), 0])


def count_nodes(index: TrieIndex) -> NodeCounts:
    """Count nodes, files, dirs and single-child chains in the trie."""
    counts = NodeCounts()

    def check_single(node: TrieNode) -> None:
        if len(node.children) == 1 and not node.is_dir():
            counts.one_child += 1
            child = node.children[0]
            if child.is_file():
                counts.one_file_child += 1
            elif not child.is_dir():
                counts.one_node_child += 1

    check_single(index.root)
    stack = list(reversed(index.root.children))
    while stack:
        node = stack.pop()
        counts.count += 1
        counts.count_by_children[len(node.children) % 256] += 1
        counts.nodes_by_gen[node.gen % 256] += 1
        if node.is_file():
            counts.files += 1
            continue
        if node.is_dir():
            counts.dirs += 1
        check_single(node)
        stack.extend(reversed(node.children))
    return counts


def stat_nodes(index: TrieIndex) -> dict[TrieNode, int]:
    """Map each dir node to its number of files and dirs, not crossing dir boundaries."""
    stats: dict[TrieNode, int] = {}
    stack: list[tuple[TrieNode, TrieNode | None]] = [
        (ch, None) for ch in reversed(index.root.children)
    ]
    while stack:
        node, owner = stack.pop()
        if (node.is_file() or node.is_dir()) and owner is not None:
            stats[owner] = stats.get(owner, 0) + 1
        if node.is_file():
            continue
        if node.is_dir():
            stats.setdefault(node, 0)
            stack.extend((ch, node) for ch in reversed(node.children))
        else:
            stack.extend((ch, owner) for ch in reversed(node.children))
    return stats


def _trigram(a: int, b: int, c: int) -> int:
    return (a << 16) | (b << 8) | c


def set_trigrams(index: TrieIndex) -> None:
    """Record trigram hints on the first node under crowded directories."""
    stats = stat_nodes(index)
    stack: list[tuple[TrieNode, tuple[TrieNode, ...]]] = [
        (ch, (index.root,)) for ch in reversed(index.root.children)
    ]
    while stack:
        cur, parents = stack.pop()
        depth = len(parents)
        found: list[int] = []

        if depth > 1 and cur.c and not cur.is_dir():
            p1 = parents[-1]
            if not p1.is_dir() and p1.c:
                if len(p1.c) > 1:
                    found.append(_trigram(p1.c[-2], p1.c[-1], cur.c[0]))
                else:
                    p2 = parents[-2]
                    if not p2.is_dir() and p2.c:
                        found.append(_trigram(p2.c[-1], p1.c[-1], cur.c[0]))
                if len(cur.c) > 1:
                    found.append(_trigram(p1.c[-1], cur.c[0], cur.c[1]))

        if not cur.is_dir() and cur.c and len(cur.c) > 2:
            found.extend(_trigram(a, b, c) for a, b, c in zip(cur.c, cur.c[1:], cur.c[2:]))

        if found:
            for i in range(depth - 1, -1, -1):
                ancestor = parents[i]
                if not ancestor.is_dir():
                    continue
                if stats.get(ancestor, 0) > _TRIGRAM_FACTOR and i + 1 < depth:
                    known = index.trigrams.setdefault(parents[i + 1], [])
                    for t in found:
                        if t not in known:
                            known.append(t)
                break

        if cur.is_file():
            continue
        below = parents + (cur,)
        stack.extend((ch, below) for ch in reversed(cur.children))


def _node_id(node: TrieNode) -> str:
    return hex(id(node))


def _dir_info(meta: DirMeta) -> str:
    quota = "<nil>" if meta.quota is None else str(meta.quota)
    return f"(quota:{quota} usage:{meta.usage})"


def _root_line(index: TrieIndex) -> str:
    root = index.root
    info = _dir_info(root.meta) if isinstance(root.meta, DirMeta) else "(quota:<nil> usage:<nil>)"
    return f"/ ({len(root.children)}/{root.gen}) {info} {_node_id(root)}\n"


def _name(node: TrieNode) -> str:
    return (node.c or b"").decode("utf-8", "surrogateescape")


def _walk(index: TrieIndex):
    """Yield (node, ancestors) depth first, ancestors starting with the root."""
    stack = [(ch, (index.root,)) for ch in reversed(index.root.children)]
    while stack:
        node, parents = stack.pop()
        yield node, parents
        if node.is_file():
            continue
        below = parents + (node,)
        stack.extend((ch, below) for ch in reversed(node.children))


def dump(index: TrieIndex, out: TextIO) -> None:
    """Write every node, indented by depth, to ``out``."""
    out.write(_root_line(index))
    for node, parents in _walk(index):
        indent = "  " * len(parents)
        head = f"({len(node.children)}/{node.gen})"
        if node.is_file():
            out.write(f"{indent}$ {head} {_node_id(node)}\n")
        elif node.is_dir() and isinstance(node.meta, DirMeta):
            out.write(f"{indent}{_name(node)} {head} {_dir_info(node.meta)} {_node_id(node)}\n")
        else:
            out.write(f"{indent}{_name(node)} {head} {_node_id(node)}\n")


def quota_tree(index: TrieIndex, out: TextIO) -> None:
    """Write the directories carrying quota metadata to ``out``."""
    out.write(_root_line(index))
    for node, parents in _walk(index):
        if node.is_dir() and isinstance(node.meta, DirMeta):
            indent = "  " * len(parents)
            name = index.root.full_path(".", parents)
            out.write(
                f"{indent}{_name(node)} {name} ({len(node.children)}/{node.gen}) "
                f"{_dir_info(node.meta)} {_node_id(node)}\n"
            )