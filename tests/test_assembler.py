from project_console.core.engine.assembler import assemble, paginate
from project_console.core.engine.fetcher import ChildIndex, RemoteRecord

from fakes import make_id


def parent(n: int, name: str) -> RemoteRecord:
    return RemoteRecord(id=make_id("a04", n), fields={"Name": name})


def child(n: int) -> RemoteRecord:
    return RemoteRecord(id=make_id("a02", n), fields={})


def build(parent_record, children, metric):
    return {"name": parent_record.fields["Name"], "count": metric}


def test_zero_metrics_dropped_and_sorted_with_name_tie_break():
    parents = [parent(1, "Gamma"), parent(2, "alpha"), parent(3, "Beta"), parent(4, "Empty")]
    index = ChildIndex()
    for n in range(3):
        index.add(make_id("a04", 1), child(n))
    for n in range(3, 6):
        index.add(make_id("a04", 2), child(n))
    index.add(make_id("a04", 3), child(6))

    rows = assemble(
        parents,
        index,
        count_fn=lambda p, children: len(children),
        name_fn=lambda p: p.fields["Name"],
        build_fn=build,
    )

    assert rows == [
        {"name": "alpha", "count": 3},
        {"name": "Gamma", "count": 3},
        {"name": "Beta", "count": 1},
    ]
    assert all(r["count"] > 0 for r in rows)


def test_child_index_deduplicates_children():
    index = ChildIndex()
    index.add("p", child(1))
    index.add("p", child(1))
    index.add("p", child(2))

    assert [c.id for c in index.get("p")] == [make_id("a02", 1), make_id("a02", 2)]
    assert index.get("missing") == []


def test_paginate_window_and_has_more():
    items = list(range(5))

    first = paginate(items, offset=0, limit=2)
    assert first["items"] == [0, 1]
    assert first["total"] == 5
    assert first["hasMore"] is True

    last = paginate(items, offset=4, limit=2)
    assert last["items"] == [4]
    assert last["hasMore"] is False

    beyond = paginate(items, offset=10, limit=2)
    assert beyond["items"] == []
    assert beyond["hasMore"] is False


def test_child_index_large_bucket_keeps_first_occurrence():
    index = ChildIndex()
    for n in list(range(5000)) + list(range(0, 5000, 2)):
        index.add("p", child(n))

    ids = [c.id for c in index.get("p")]
    assert len(ids) == 5000
    assert ids[:2] == [make_id("a02", 0), make_id("a02", 1)]
