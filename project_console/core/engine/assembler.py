"""
AGGREGATION ASSEMBLER - Turn parents + child index into report rows

Rules:
    - parents whose metric is zero are dropped (never shown as zero rows)
    - rows sort by metric descending, ties by parent name ascending
    - paging is applied to the finished list, so total is exact
"""

from typing import Any, Callable, Dict, Iterable, List, TypeVar

from project_console.core.engine.fetcher import ChildIndex, RemoteRecord

T = TypeVar("T")


def assemble(
    parents: Iterable[RemoteRecord],
    child_index: ChildIndex,
    count_fn: Callable[[RemoteRecord, List[RemoteRecord]], int],
    name_fn: Callable[[RemoteRecord], str],
    build_fn: Callable[[RemoteRecord, List[RemoteRecord], int], Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Build one row per parent with a non-zero metric.

    Args:
        parents: parent records
        child_index: parent id -> children
        count_fn: metric for a parent given its children
        name_fn: display name used as the sort tie-break
        build_fn: row builder, called with (parent, children, metric)

    Returns:
        Rows sorted by metric descending, then name ascending
    """
    scored = []
    for parent in parents:
        children = child_index.get(parent.id)
        metric = count_fn(parent, children)
        if not metric:
            continue
        scored.append((metric, (name_fn(parent) or "").lower(), parent, children))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [build_fn(parent, children, metric) for metric, _, parent, children in scored]


def paginate(items: List[T], offset: int = 0, limit: int = 100) -> Dict[str, Any]:
    """
    Window over a finished list.

    Example:
        paginate(list(range(5)), offset=2, limit=2)
        -> {"items": [2, 3], "total": 5, "offset": 2, "limit": 2, "hasMore": True}
    """
    offset = max(0, offset)
    limit = max(0, limit)
    window = items[offset : offset + limit]
    return {
        "items": window,
        "total": len(items),
        "offset": offset,
        "limit": limit,
        "hasMore": offset + len(window) < len(items),
    }
