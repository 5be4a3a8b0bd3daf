import pytest

from carbonstore.glob import GlobError
from carbonstore.quota import Quota
from carbonstore.trie import DirMeta, FileMeta, NilFilenameError, TrieIndex, TrieNode

# Rows: service, server, namespace, metric.
_COMMON_ROWS = """
00 000 namespace-000 43081e003a315b88
00 000 namespace-000 cpu
00 000 namespace-001 d218bc1539f2cf8
00 000 namespace-001 cpu
00 000 namespace-005 cpu
00 000 namespace-002 29370bc791c0fccb
00 000 namespace-002 cpu
00 001 namespace-002 cpu
00 001 namespace-005 cpu
01 000 namespace-004 6f31f9305c67895c
01 000 namespace-004 cpu
01 000 namespace-005 cpu
00 002 namespace-003 64cd3228c99afc54
00 002 namespace-003 cpu
00 002 namespace-005 cpu
00 002 namespace-004 6f31f9305c67895c
00 002 namespace-004 cpu
01 110 namespace-007 cpu
01 120 namespace-007 cpu
01 170 namespace-007 cpu
01 114 namespace-007 cpu
01 125 namespace-007 cpu
01 12a namespace-007 cpu
01 149 namespace-007 cpu
01 125 namespzce-007 cpu
01 170 namespace-004-007-xdp cpu
01 170 namespace-007-007-xdp cpu
01 170 namespace-007-005-xdp cpu
01 170 namespace-007-008-xdp cpu
01 170 namespace-006-xdp cpu
"""


def _m(svc, srv, ns, metric="cpu"):
    return f"service-{svc}.server-{srv}.metric-{ns}.{metric}"


def _wsp(dotted):
    return "/" + dotted.replace(".", "/") + ".wsp"


COMMON = [_wsp("something.else.server")] + [
    _wsp(_m(*row.split())) for row in _COMMON_ROWS.strip().splitlines()
]

NGINX_BASE = "services.groups.xyz.xxx_404.nginx.type.prod"
NGINX_FRONT = f"{NGINX_BASE}.frontend.random-404_xoxo"
NGINX = [_wsp(f"{NGINX_FRONT}.{leaf}") for leaf in ("http_3xx", "http_5xx", "http_other", "http_4xx", "tcp", "udp")]

HAPROXY_BASE = "fe.series.abc_101.xyz.haproxy.host"
_HOSTS = ["cjk-1018_main7", "cjk-1019_main7", "cjk-1020_main7", "cjk-2022_expr1", "mno-2022_expr1"]
HAPROXY = [_wsp(f"{HAPROXY_BASE}.{h}_internet_com.traffic") for h in _HOSTS]
HAPROXY_EXPECT = [f"{HAPROXY_BASE}.{h}_internet_com.traffic" for h in _HOSTS[:4]]

NS5 = ".".join(f"ns{i}" for i in range(1, 6))
NS6 = f"{NS5}.ns6"
TOP = ["service-00", "service-01", "something"]


def build(files, estimate=None):
    index = TrieIndex(".wsp", estimate)
    for f in files:
        try:
            index.insert(f, 0, 0, 0)
        except NilFilenameError:
            pass
    return index


def expand(index, query, leafs=False):
    matches = index.query(query.replace(".", "/"), 1 << 62, None)
    if leafs:
        return sorted(f"{m.path} {str(m.is_leaf).lower()}" for m in matches)
    return sorted(m.path for m in matches)


@pytest.mark.parametrize(
    "files,query,expect",
    [
        (COMMON, "service-00", ["service-00"]),
        (COMMON, _m("00", "000", "namespace-000"), [_m("00", "000", "namespace-000")]),
        (COMMON, "service-00.server-000.metric-namespace-00[0-2].cpu",
         [_m("00", "000", f"namespace-00{i}") for i in "012"]),
        (COMMON, "service-00.server-00[0-2].metric-namespace-00[0-2].cpu",
         [_m("00", "000", f"namespace-00{i}") for i in "012"] + [_m("00", "001", "namespace-002")]),
        (COMMON, "service-01.server-1[0-2]0.metric-namespace-007.cpu",
         [_m("01", s, "namespace-007") for s in ("110", "120")]),
        (COMMON, "service-01.server-1[0-5][4-5a-z].metric-namespace-007.cpu",
         [_m("01", s, "namespace-007") for s in ("114", "125", "12a")]),
        (COMMON, "service-01.server-1[1]4.metric-namespace-007.cpu", [_m("01", "114", "namespace-007")]),
        (
            [_wsp(_m("01", s, ns)) for s, ns in (
                ("114", "namespace-007"), ("125", "namespace-007"), ("125", "namespace-006"),
                ("111", "namespace-007"), ("11a", "namespace-007"),
            )] + [_wsp("service-01.something-125.metric-namespace-007.cpu")],
            "service-01.server-1[0-2][^4-5].metric-namespace-007.cpu",
            [_m("01", s, "namespace-007") for s in ("111", "11a")],
        ),
        (COMMON, "service-01.server-1[0-2][4-5].metric-n[a-z]mesp[a-z1-9]ce-007.cpu",
         [_m("01", "114", "namespace-007"), _m("01", "125", "namespace-007"), _m("01", "125", "namespzce-007")]),
        (COMMON, "service-00.*.metric-namespace-005.cpu",
         [_m("00", s, "namespace-005") for s in ("000", "001", "002")]),
        (COMMON, "*", TOP),
        (COMMON, "", TOP),
        (COMMON, "\t", TOP),
        (COMMON, " ", TOP),
        (COMMON, "service-0*.*.metric-*-00[5-7]-xdp.cpu",
         [_m("01", "170", f"namespace-{n}-xdp") for n in ("004-007", "006", "007-005", "007-007")]),
        (COMMON, "service-0*.*.{metric-namespace-004-007-xdp,metric-namespace-007-007-xdp}.cpu",
         [_m("01", "170", f"namespace-{n}-xdp") for n in ("004-007", "007-007")]),
        (COMMON, "service-0*.*.metric-namespace-{{004,007}}{-007}-xdp.cpu",
         [_m("01", "170", f"namespace-{n}-xdp") for n in ("004-007", "007-007")]),
        (NGINX, "services.groups.*.*.nginx.type.*.frontend.random-404_xoxo.http*",
         [f"{NGINX_FRONT}.http_{s}" for s in ("3xx", "4xx", "5xx", "other")]),
        (HAPROXY, "fe.series.*.*.haproxy.host.*cjk-*_internet_com.traffic", HAPROXY_EXPECT),
        (HAPROXY, "fe.series.*.*...haproxy.host.*cjk-*_internet_com.traffic", HAPROXY_EXPECT),
        (HAPROXY, "fe.series.*.*.haproxy.host.*cjk-*_internet_com.traffic.", HAPROXY_EXPECT),
        (HAPROXY, "...fe.series.*.*.haproxy.host.*cjk-*_internet_com.traffic", HAPROXY_EXPECT),
    ],
)
def test_query_cases(files, query, expect):
    assert expand(build(files), query) == sorted(expect)


def test_query_star_star_with_prefix_variants():
    extra = ["abc.wsp", "abc/xxx.wsp", "abd/xxx.wsp", "ab/xxx.wsp", "abcd/xxx.wsp", "xyz/xxx.wsp", "xy/xxx.wsp"]
    files = COMMON + [f"/ooo/{name}" for name in extra]
    expect = (
        ["ooo." + s for s in ("ab", "abc", "abc", "abcd", "abd", "xy", "xyz")]
        + [f"service-00.server-00{i}" for i in "012"]
        + [f"service-01.server-{s}" for s in ("000", "110", "114", "120", "125", "12a", "149", "170")]
        + ["something.else"]
    )
    assert expand(build(files), "*.*") == sorted(expect)


def test_query_nested_braces():
    files = NGINX + [_wsp(f"{NGINX_BASE}.{d}.random-404_xoxo.http_xxx") for d in ("backend", "os")]
    got = expand(build(files), "services.groups.*.*.nginx.type.*.{{frontend,backend},os}.random-404_xoxo.http*")
    expect = [f"{NGINX_FRONT}.http_{s}" for s in ("3xx", "4xx", "5xx", "other")] + [
        f"{NGINX_BASE}.{d}.random-404_xoxo.http_xxx" for d in ("backend", "os")
    ]
    assert got == sorted(expect)


def test_query_broken_range_raises():
    with pytest.raises(GlobError):
        build(COMMON).query("service-01/server-170/metric-namespace-004-007-xdp/cp[u")


@pytest.mark.parametrize(
    "files,query,expect",
    [
        ([_wsp(f"{NS6}.ns7_handle.val"), _wsp(f"{NS6}.ns7_handle")], f"{NS6}.*",
         [f"{NS6}.ns7_handle false", f"{NS6}.ns7_handle true"]),
        ([_wsp(f"{NS6}.ns7_handle"), _wsp(f"{NS6}.ns7")], f"{NS6}.*",
         [f"{NS6}.ns7 true", f"{NS6}.ns7_handle true"]),
        (["/系统/核心/cpu.wsp", "/系统/核心/memory.wsp", _wsp(f"{NS6}.ns7")],
         "系统.核心.*", ["系统.核心.cpu true", "系统.核心.memory true"]),
        ([_wsp(f"{NS6}.ns7_handle"), "/" + NS6.replace(".", "/") + "/.wsp"], "*", ["ns1 false"]),
        ([_wsp(f"{NS6}.ns7_handle"), "./..wsp", "..wsp"], "*", [". true", "ns1 false"]),
        (
            [_wsp(f"{NS6}.ns7_handle")]
            + ["/" + NS5.replace(".", "/") + suffix
               for suffix in ("/ns6_1/", "/ns6_2", "/ns6_3/", "/ns6_3/", "/ns6_3/metric.wsp")],
            f"{NS5}.*",
            [f"{NS5}.{n} false" for n in ("ns6", "ns6_1", "ns6_2", "ns6_3")],
        ),
    ],
)
def test_query_leafs(files, query, expect):
    assert expand(build(files), query, leafs=True) == expect


def test_range_overflow_error():
    index = TrieIndex(".wsp")
    with pytest.raises(GlobError, match="glob: range overflow"):
        index.query(b"[\xff\xff-\xff", 1000, lambda globs: [])


def test_insert_folder_and_nil_filename():
    index = TrieIndex(".wsp")
    index.insert("/".join(f"ns{i}" for i in (1, 2, 3, 4, 5, 7)) + "/", 0, 0, 0)
    assert expand(index, "ns1.*", leafs=True) == ["ns1.ns2 false"]
    with pytest.raises(NilFilenameError):
        index.insert("a/.wsp", 0, 0, 0)


def test_query_opts_all_metrics_node():
    index = TrieIndex(".wsp")
    names = [
        "host-01", "host-01.cpu.user", "host-01.cpu.system", "host-01.memory.cache",
        "host-02.cpu.user", "host-02.cpu.system", "host-03.cpu.system",
    ]
    for name in names:
        index.insert(_wsp("sys.app." + name), 0, 0, 0)
    metrics = []
    for m in index.query("sys/app/host-0{1,2}", 1000, None):
        if m.node.is_file():
            metrics.append(m.path)
            continue
        files, _, _, _, _ = index.all_metrics_node(m.node, ".", m.path, 65536, False)
        metrics.extend(files)
    assert metrics == ["sys.app." + n for n in names[:6]]


def test_all_metrics_node_stats():
    index = TrieIndex(".wsp")
    index.insert("/a/b/x.wsp", 10, 20, 1)
    index.insert("/a/b/y.wsp", 1, 2, 1)
    (match,) = index.query("a/b", 10)
    files, nodes, count, physical, logical = index.all_metrics_node(match.node, ".", "a.b", 100, True)
    assert (files, nodes, count, physical, logical) == ([], [], 2, 22, 11)


def test_all_metrics_dump():
    extra = ["bobo", "bobododo.xxx", "something", "somet.xxx", "service-01.switch-000.metric-namespace-002.cpu"]
    files = [_wsp(n) for n in extra] + COMMON + NGINX + [
        _wsp(f"{NGINX_BASE}.frontend.random-404_koko_abc.xoxo.udp")
    ]
    files = list(dict.fromkeys(files))
    index = build(files)
    want = sorted(f[1:-4].replace("/", ".") for f in files)
    assert sorted(index.all_metrics(".")) == want
    assert index.file_count == len(files)


def test_insert_estimates_size_and_updates():
    index = TrieIndex(".wsp", lambda metric: (100 if metric == "a.b" else 0, 7))
    index.insert("/a/b.wsp")
    (match,) = index.query("a/b")
    assert match.node.meta == FileMeta(100, 100, 7)
    index.insert("/a/b.wsp", 5, 6, 8)
    assert match.node.meta == FileMeta(5, 6, 8)
    assert index.longest_metric == "a/b"


def test_dir_meta_within_quota():
    meta = DirMeta()
    assert meta.within_quota(100, 100, 100, 100, 100)
    meta.update(Quota(pattern="x", metrics=2))
    meta.usage.metrics = 1
    assert meta.within_quota(1, 0, 0, 0, 0)
    assert not meta.within_quota(2, 0, 0, 0, 0)


def test_full_path_uses_separator_for_dirs():
    parents = [TrieNode(), TrieNode(c=b"ab"), TrieNode(c=b"/"), TrieNode(c=b"cd")]
    assert TrieNode(c=b"e").full_path(":", parents) == "ab:cde"