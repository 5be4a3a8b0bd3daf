"""Graphite glob expressions compiled to a small NFA, stepped byte by byte."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

__all__ = [
    "GlobError",
    "GlobState",
    "DState",
    "GlobMatcher",
    "compile_glob",
    "extract_trigrams",
]

SPLIT = 256
_STAR = ord("*")

Expander = Callable[[Sequence[str]], Sequence[str]]


class GlobError(ValueError):
    """Raised for a malformed glob expression."""


@dataclass(eq=False)
class GlobState:
    """An NFA state: the bytes it accepts (SPLIT marks an epsilon state)."""

    c: set[int] = field(default_factory=set)
    next: list["GlobState"] = field(default_factory=list)


END = GlobState()


@dataclass(eq=False)
class DState:
    """A set of NFA states reached after some input."""

    gstates: list[GlobState] = field(default_factory=list)

    def _add(self, state: GlobState) -> None:
        if SPLIT in state.c:
            for nxt in state.next:
                self._add(nxt)
            return
        self.gstates.append(state)

    def step(self, c: int) -> "DState":
        """Return the states reached by consuming byte ``c``."""
        result = DState()
        for state in self.gstates:
            if c in state.c or _STAR in state.c:
                for nxt in state.next:
                    result._add(nxt)
        return result

    def matched(self) -> bool:
        """Report whether the final state is among these states."""
        return any(state is END for state in self.gstates)


@dataclass(eq=False)
class GlobMatcher:
    """A compiled glob with a stack of states for incremental matching."""

    expr: Union[str, bytes]
    root: GlobState
    exact: bool = True
    ls_complex: bool = False
    trigrams: list[int] = field(default_factory=list)
    dstates: list[DState] = field(default_factory=list)

    def dstate(self) -> DState:
        """Return the current state set."""
        return self.dstates[-1]

    def push(self, state: DState) -> None:
        """Push a new current state set."""
        self.dstates.append(state)

    def pop(self, count: int) -> None:
        """Drop ``count`` state sets, never the initial one."""
        if len(self.dstates) <= count:
            del self.dstates[1:]
            return
        del self.dstates[len(self.dstates) - count:]

    def reset(self) -> None:
        """Rebuild the initial state set from the root and make it current."""
        initial = DState()
        for state in self.root.next:
            initial._add(state)
        self.dstates[:] = [initial]

    def matches(self, name: Union[str, bytes]) -> bool:
        """Report whether the whole of ``name`` matches, without changing state."""
        data = name.encode("utf-8") if isinstance(name, str) else bytes(name)
        current = self.dstates[0]
        for c in data:
            current = current.step(c)
            if not current.gstates:
                return False
        return current.matched()


def extract_trigrams(text: Union[str, bytes]) -> list[int]:
    """Return the distinct byte trigrams of ``text`` in order of appearance."""
    data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    result: list[int] = []
    for a, b, c in zip(data, data[1:], data[2:]):
        t = (a << 16) | (b << 8) | c
        if t not in result:
            result.append(t)
    return result


def compile_glob(expr: Union[str, bytes], expand: Optional[Expander] = None) -> GlobMatcher:
    """Compile one path node of a glob expression.

    ``expand`` is used for expressions with a leading star to gather trigrams
    of their brace expansions; failures there are ignored.
    """
    data = expr.encode("utf-8") if isinstance(expr, str) else bytes(expr)
    m = GlobMatcher(expr=expr, root=GlobState())
    cur = m.root
    alters: list[tuple[GlobState, GlobState]] = []
    n = len(data)
    i = 0
    while i < n:
        c = data[i]
        if c == ord("["):
            m.exact = False
            s = GlobState()
            i += 1
            if i >= n:
                raise GlobError("glob: broken range syntax")
            negative = data[i] == ord("^")
            if negative:
                i += 1
            while i < n and data[i] != ord("]"):
                if data[i] == ord("-"):
                    if i + 1 >= n:
                        raise GlobError("glob: missing closing range")
                    lo, hi = data[i - 1], data[i + 1]
                    if lo > hi:
                        raise GlobError("glob: range start is bigger than range end")
                    if lo > 128 or hi > 128:
                        raise GlobError("glob: range overflow")
                    s.c.update(j for j in range(lo + 1, hi + 1) if j != _STAR)
                    i += 2
                    continue
                s.c.add(data[i])
                i += 1
            if i >= n or data[i] != ord("]"):
                raise GlobError("glob: missing ]")
            if negative:
                for j in range(32, 127):
                    if j != _STAR:
                        s.c.symmetric_difference_update({j})
            cur.next.append(s)
            cur = s
            m.ls_complex = False
        elif c == ord("?"):
            m.exact = False
            star = GlobState(c={_STAR})
            cur.next.append(star)
            cur = star
            m.ls_complex = False
        elif c == _STAR:
            m.exact = False
            if i == 0 and n > 2:
                m.ls_complex = True
            while i + 1 < n and data[i + 1] == _STAR:
                i += 1
            split = GlobState(c={SPLIT})
            star = GlobState(c={_STAR})
            split.next.append(star)
            cur.next.append(split)
            star.next.append(split)
            cur = split
        elif c == ord("{"):
            start = GlobState(c={SPLIT})
            end = GlobState(c={SPLIT})
            cur.next.append(start)
            cur = start
            alters.append((start, end))
            m.ls_complex = False
        elif c == ord("}"):
            if not alters:
                raise GlobError("glob: missing {")
            _, end = alters.pop()
            cur.next.append(end)
            cur = end
            m.ls_complex = False
        elif c == ord(",") and alters:
            cur.next.append(alters[-1][1])
            cur = alters[-1][0]
        else:
            s = GlobState(c={c})
            cur.next.append(s)
            cur = s
        i += 1

    cur.next.append(END)
    if alters:
        raise GlobError("glob: missing }")

    m.reset()

    if m.ls_complex and expand is not None:
        try:
            expanded = expand([expr if isinstance(expr, str) else data.decode("utf-8", "replace")])
        except Exception:
            return m
        for e in expanded:
            for t in extract_trigrams(e):
                if t not in m.trigrams:
                    m.trigrams.append(t)
    return m