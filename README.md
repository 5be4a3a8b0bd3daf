# carbonstore

Building blocks for a Graphite-style metric store. The package has an
in-memory trie index of metric file paths with glob queries, quotas for each
namespace, throughput throttling, and a few small helpers that go with them.

## Install

```
pip install .
pip install ".[test]"   # with test dependencies
```

The package depends only on the standard library.

## Indexing and querying metrics

`carbonstore.trie.TrieIndex` stores metric file paths separated by `/`, such
as `sys/app/host-01/cpu.wsp`. A path that ends in the index's file extension
is a metric. Any other path is a namespace.

```python
from carbonstore.trie import TrieIndex

index = TrieIndex(".wsp")
index.insert("/sys/app/host-01/cpu.wsp", 0, 0, 0)
index.insert("/sys/app/host-02/cpu.wsp", 0, 0, 0)

for match in index.query("sys/app/host-0[1-2]/*", 1000, None):
    print(match.path, match.is_leaf)

print(index.all_metrics("."))   # ['sys.app.host-01.cpu', 'sys.app.host-02.cpu']
```

- `insert(path, logical_size, physical_size, data_points)` adds a path and records
  the sizes of a metric. It raises `NilFilenameError` when a metric has an empty
  file name.
- `query(expr, limit, expand)` returns up to `limit` `QueryMatch` objects. Each one
  holds the dotted `path`, an `is_leaf` flag and the matching `node`.
- `all_metrics(sep)` returns every metric path, sorted.
- `all_metrics_node(node, sep, prefix, limit, stats_only)` walks the metrics
  under one node. It returns the paths, the file nodes, the count, the physical
  size and the logical size.

Globs support `*`, `?`, the ranges `[a-z]` and `[^...]`, and alternatives
`{a,b}`. A malformed pattern raises `carbonstore.glob.GlobError`. To compile
the pattern for a single path node, use `carbonstore.glob.compile_glob`. It
returns a `GlobMatcher`, and `GlobMatcher.matches(name)` tests a whole name.

## Maintenance

`carbonstore.maintenance` works on a whole index:

- `prune(index)` removes the nodes whose generation differs from the root's. It
  then merges single-child chains.
- `count_nodes(index)` returns a `NodeCounts` summary of the trie's shape.
- `stat_nodes(index)` maps each directory node to the number of files and
  directories directly under it. The count does not cross into nested
  directories.
- `set_trigrams(index)` records trigram hints under crowded directories.
  Queries use these hints when a pattern starts with a star.
- `dump(index, out)` and `quota_tree(index, out)` write the tree as indented text.

## Quotas and throttling

```python
from carbonstore.quota import Quota, Points, Point
from carbonstore.usage import apply_quotas, refresh_usage, throttle

apply_quotas(index, Quota(pattern="/", metrics=100), Quota(pattern="sys.app.*", throughput=5))
refresh_usage(index, None)
throttle(index, Points(metric="sys.app.host-03.cpu", data=[Point()]), False)
```

- `apply_quotas` attaches each quota to the namespaces that its pattern
  matches. It installs fresh throughput counters and returns the previous ones.
- `refresh_usage` recomputes the usage of each namespace and returns the number
  of metric files. It also rebuilds `index.qau_metrics`, the list of quota,
  usage and throttle stat points.
- `throttle` returns `True` when the points would go over a quota for
  throughput, metrics, namespaces, size or data points. It does not do so for a
  quota whose dropping policy is `QuotaDroppingPolicy.NONE`.

## Helpers

- `carbonstore.formats`: `ResponseFormat` and `parse_format` for response format names.
- `carbonstore.intervals.IntervalSet`: `marshal_pickle()` encodes a single interval
  set as graphite-compatible pickle bytes.
- `carbonstore.counters`: `AtomicCounter`, plus `send_value`, `send_and_subtract`
  and `send_and_zero_if_not_updated`. These functions report a counter to a
  callback.
- `carbonstore.stoppable.Stoppable`: starts worker threads and stops them as a
  group. Each worker gets an exit event.
- `carbonstore.atomicfiles.write_file`: replaces a file atomically through a
  temporary file and a rename.
- `carbonstore.filestat`: `get_stat` turns an `os.stat_result` into `FileStats`.

## What it does not do

This is a library only. It has no command-line program and no network
listener. It has no HTTP find, render, info or list endpoints. It does not
read or write metric data files. The index lives in memory, and you fill it
yourself with `insert`.