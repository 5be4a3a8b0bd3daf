"""Quota definitions, usage records and throughput accounting for the index."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Optional

__all__ = [
    "QuotaDroppingPolicy",
    "Quota",
    "QuotaUsage",
    "ThroughputUsagePerQuota",
    "ThroughputUsages",
    "Point",
    "Points",
    "parse_quota_dropping_policy",
]


class QuotaDroppingPolicy(enum.IntEnum):
    """What happens to data points that exceed a quota."""

    NEW = 0
    NONE = 1

    def __str__(self) -> str:
        return "none" if self is QuotaDroppingPolicy.NONE else "new"


def parse_quota_dropping_policy(policy: str) -> QuotaDroppingPolicy:
    """Parse a policy name; anything other than ``none`` means ``new``."""
    if policy == "none":
        return QuotaDroppingPolicy.NONE
    return QuotaDroppingPolicy.NEW


@dataclass
class Quota:
    """Limits applied to the namespaces matching ``pattern``.

    A limit of zero or less means unlimited.
    """

    pattern: str = ""
    namespaces: int = 0
    metrics: int = 0
    logical_size: int = 0
    physical_size: int = 0
    data_points: int = 0
    throughput: int = 0
    dropping_policy: QuotaDroppingPolicy = QuotaDroppingPolicy.NEW
    stat_metric_prefix: str = ""

    def __str__(self) -> str:
        return (
            f"pattern:{self.pattern},dirs:{self.namespaces},files:{self.metrics},"
            f"points:{self.data_points},logical:{self.logical_size},"
            f"physical:{self.physical_size},throughput:{self.throughput},"
            f"policy:{self.dropping_policy}"
        )


@dataclass
class QuotaUsage:
    """Current usage of a namespace; throughput is tracked separately."""

    namespaces: int = 0
    metrics: int = 0
    logical_size: int = 0
    physical_size: int = 0
    data_points: int = 0
    throttled: int = 0

    def __str__(self) -> str:
        return (
            f"dirs:{self.namespaces},files:{self.metrics},points:{self.data_points},"
            f"logical:{self.logical_size},physical:{self.physical_size},"
            f"throttled:{self.throttled}"
        )


@dataclass(eq=False)
class ThroughputUsagePerQuota:
    """Data points received for one quota entry since the last refresh."""

    quota: Quota
    usage: Optional[QuotaUsage] = None
    counter: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def within_quota(self, count: int) -> bool:
        """Report whether ``count`` more points stay below the throughput limit."""
        if self.quota.throughput > 0:
            with self._lock:
                if self.counter + count >= self.quota.throughput:
                    return False
        return True

    def increase(self, count: int) -> None:
        """Account for ``count`` more received points."""
        with self._lock:
            self.counter += count


@dataclass
class ThroughputUsages:
    """Throughput entries keyed by namespace, with the deepest key's dot count."""

    depth: int = 0
    entries: dict[str, ThroughputUsagePerQuota] = field(default_factory=dict)


@dataclass
class Point:
    """A single data point."""

    value: float = 0.0
    timestamp: int = 0


@dataclass
class Points:
    """A metric name with its data points."""

    metric: str = ""
    data: list[Point] = field(default_factory=list)