"""
Line diff of one captured resource between two snapshots of the same host.
"""

import difflib

DEFAULT_CONTEXT = 3


def _lines(data):
    if data is None:
        return []
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def diff_resource(store, host, ts_a, ts_b, rel_path, context=DEFAULT_CONTEXT):
    """
    Unified diff of <ts_a>/<rel_path> against <ts_b>/<rel_path>.
    A resource missing from one side is compared with empty content.
    """
    a_lines = _lines(store.read_raw(host, ts_a, rel_path))
    b_lines = _lines(store.read_raw(host, ts_b, rel_path))
    return list(difflib.unified_diff(
        a_lines,
        b_lines,
        fromfile=f"{ts_a}/{rel_path}",
        tofile=f"{ts_b}/{rel_path}",
        n=context,
    ))
