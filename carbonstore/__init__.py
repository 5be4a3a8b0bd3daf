"""Metric-name trie index with glob queries, quotas and throttling, plus small helpers."""

__version__ = "0.15.6"

__all__ = [
    "atomicfiles",
    "counters",
    "filestat",
    "formats",
    "glob",
    "intervals",
    "maintenance",
    "quota",
    "stoppable",
    "trie",
    "usage",
]