"""Parent/child relationships between processes."""

from collections.abc import Iterable, Iterator, Mapping

from pswtf.models import ProcessInfo

ChildIndex = dict[int, list[int]]


def build_child_index(processes: Iterable[ProcessInfo]) -> ChildIndex:
    """Map each parent PID to its direct children, in input order."""
    index: ChildIndex = {}
    for proc in processes:
        if proc.parent_pid is not None:
            index.setdefault(proc.parent_pid, []).append(proc.pid)
    return index


def collect_descendants(root_pid: int, index: Mapping[int, list[int]]) -> list[int]:
    """
    Every descendant of `root_pid`, deepest first.

    Each child's subtree is emitted before the child itself, so leaves come
    first and the root's direct children come last. Signalling in this order
    reaches children before their parents. The root itself is not included.
    """
    descendants: list[int] = []
    visited = {root_pid}
    # Stack of (pid, iterator over its remaining children)
    stack: list[tuple[int, Iterator[int]]] = [(root_pid, iter(index.get(root_pid, ())))]

    while stack:
        pid, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            if pid != root_pid:
                descendants.append(pid)
            continue
        if child in visited:
            continue
        visited.add(child)
        stack.append((child, iter(index.get(child, ()))))

    return descendants


def dedupe_pids(pids: Iterable[int]) -> list[int]:
    """Drop repeated PIDs, keeping first occurrence order."""
    return list(dict.fromkeys(pids))


def flatten_tree(processes: Iterable[ProcessInfo]) -> list[tuple[ProcessInfo, int]]:
    """
    Lay processes out as an indented tree of (process, depth) rows.

    Processes whose parent is not in `processes` become top-level rows.
    Sibling order follows the input order.
    """
    ordered = list(processes)
    by_pid = {proc.pid: proc for proc in ordered}
    children: dict[int | None, list[ProcessInfo]] = {}
    for proc in ordered:
        parent = proc.parent_pid if proc.parent_pid in by_pid else None
        children.setdefault(parent, []).append(proc)

    rows: list[tuple[ProcessInfo, int]] = []
    visited: set[int] = set()
    stack = [(proc, 0) for proc in reversed(children.get(None, []))]
    while stack:
        proc, depth = stack.pop()
        if proc.pid in visited:
            continue
        visited.add(proc.pid)
        rows.append((proc, depth))
        stack.extend((child, depth + 1) for child in reversed(children.get(proc.pid, [])))

    # Cycles leave processes unreachable from any top-level row
    rows.extend((proc, 0) for proc in ordered if proc.pid not in visited)
    return rows
