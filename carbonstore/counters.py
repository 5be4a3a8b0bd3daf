"""Thread-safe unsigned counters and helpers that report them."""

from __future__ import annotations

import threading
from typing import Callable

__all__ = [
    "AtomicCounter",
    "StatCallback",
    "send_and_subtract",
    "send_value",
    "send_and_zero_if_not_updated",
]

StatCallback = Callable[[str, float], None]


class AtomicCounter:
    """An unsigned integer of fixed width, updated under a lock."""

    def __init__(self, value: int = 0, bits: int = 64) -> None:
        if bits <= 0:
            raise ValueError("bits must be positive")
        self._mask = (1 << bits) - 1
        self._value = value & self._mask
        self._lock = threading.Lock()

    @property
    def bits(self) -> int:
        return self._mask.bit_length()

    def load(self) -> int:
        """Return the current value."""
        with self._lock:
            return self._value

    def add(self, delta: int) -> int:
        """Add ``delta`` with wrap-around and return the new value."""
        with self._lock:
            self._value = (self._value + delta) & self._mask
            return self._value

    def compare_and_swap(self, old: int, new: int) -> bool:
        """Set the value to ``new`` if it equals ``old``; report success."""
        with self._lock:
            if self._value != old & self._mask:
                return False
            self._value = new & self._mask
            return True

    def __repr__(self) -> str:
        return f"AtomicCounter({self.load()}, bits={self.bits})"


def send_and_subtract(metric: str, counter: AtomicCounter, send: StatCallback) -> None:
    """Report the counter and subtract the reported amount from it."""
    value = counter.load()
    counter.add(-value)
    send(metric, float(value))


def send_value(metric: str, counter: AtomicCounter, send: StatCallback) -> None:
    """Report the counter without changing it."""
    send(metric, float(counter.load()))


def send_and_zero_if_not_updated(
    metric: str, counter: AtomicCounter, send: StatCallback
) -> None:
    """Report the counter and reset it unless it changed in between."""
    value = counter.load()
    counter.compare_and_swap(value, 0)
    send(metric, float(value))