"""
Topological ordering shared by container start order and init container order.
"""
from typing import Callable, Dict, List


def topological_sort(nodes: List[str],
                     edges: Dict[str, List[str]],
                     on_cycle: Callable[[List[str]], Exception]) -> List[str]:
    """
    Orders nodes so that every node comes after the nodes it depends on.

    Ties keep the order of `nodes`. Edges pointing outside `nodes` are ignored.

    :param nodes: Node names in declaration order.
    :param edges: Node name -> names it depends on.
    :param on_cycle: Builds the exception to raise from the nodes forming the cycle.
    :return: Ordered node names.
    """
    known = set(nodes)
    ordered = []
    visited = set()
    processing = []

    def visit(name):
        if name in processing:
            raise on_cycle(processing[processing.index(name):] + [name])
        if name in visited:
            return
        processing.append(name)
        for dep in edges.get(name, []):
            if dep in known:
                visit(dep)
        processing.pop()
        visited.add(name)
        ordered.append(name)

    for name in nodes:
        visit(name)

    return ordered
