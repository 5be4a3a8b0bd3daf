"""Pickled interval sets in the shape graphite-web expects."""

from __future__ import annotations

import struct
from dataclasses import dataclass

__all__ = ["IntervalSet"]

# Protocol-1 pickle of graphite.intervals.IntervalSet holding one Interval,
# without the trailing STOP opcode; floats are patched in place.
_TEMPLATE = (
    b"(cgraphite.intervals\nIntervalSet\no}(U\tintervals]"
    b"(cgraphite.intervals\nInterval\no}(U\x05startGA\xd3\xb3]\x8f\x99)\x02"
    b"U\x04sizeGA\xa2\xcc\x02\xd2K\x8f\x18U\x03endGA\xd6\x0c\xdd\xe9\xe2\x9a\xe5"
    b"U\x05tupleGA\xd3\xb3]\x8f\x99)\x02GA\xd6\x0c\xdd\xe9\xe2\x9a\xe5\x86uba"
    b"U\x04sizeGA\xa2\xcc\x02\xd2K\x8f\x18ub"
)

_START_OFFSETS = (89, 134)
_END_OFFSETS = (118, 143)
_SIZE_OFFSETS = (104, 162)


def _int32(value: int) -> int:
    return ((value + 2**31) % 2**32) - 2**31


@dataclass(frozen=True)
class IntervalSet:
    """A single-interval set covering ``start`` to ``end``."""

    start: int
    end: int

    def marshal_pickle(self) -> bytes:
        """Encode the set as graphite-compatible pickle bytes."""
        start = _int32(self.start)
        end = _int32(self.end)
        size = _int32(end - start)
        buf = bytearray(_TEMPLATE)
        for offsets, value in (
            (_START_OFFSETS, start),
            (_SIZE_OFFSETS, size),
            (_END_OFFSETS, end),
        ):
            for offset in offsets:
                struct.pack_into(">d", buf, offset, float(value))
        return bytes(buf)