# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Cycle detection for workflow connection graphs.

Repair only prunes self-loops, so longer cycles are reported with their full
path and left for the workflow owner to resolve.
"""

from typing import Dict, Iterable, List, Optional, Tuple


def detect_cycle(
    node_ids: List[str],
    edges: Iterable[Tuple[str, str]],
    include_self_loops: bool = False,
) -> Optional[List[str]]:
    """Return an ordered list of node ids forming a cycle, or ``None``.

    Parameters
    ----------
    node_ids:
        All node ids in the workflow, in declaration order.
    edges:
        ``(source_id, target_id)`` pairs. Pairs that reference an id outside
        *node_ids* are ignored.
    include_self_loops:
        When False (default) an edge from a node to itself is not treated as
        a cycle.
    """
    graph: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}

    for src, dst in edges:
        if src == dst and not include_self_loops:
            continue
        if src in graph and dst in graph and dst not in graph[src]:
            graph[src].append(dst)

    WHITE, GRAY, BLACK = 0, 1, 2
    color: Dict[str, int] = {n: WHITE for n in graph}
    parent: Dict[str, Optional[str]] = {n: None for n in graph}

    for root in graph:
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        # Explicit stack of (node, index of the next neighbour to visit)
        stack: List[Tuple[str, int]] = [(root, 0)]
        while stack:
            node, i = stack[-1]
            if i == len(graph[node]):
                color[node] = BLACK
                stack.pop()
                continue
            stack[-1] = (node, i + 1)
            nbr = graph[node][i]
            if color[nbr] == GRAY:
                # Walk parents back to nbr to rebuild the path
                cycle = [nbr]
                cur: Optional[str] = node
                while cur is not None and cur != nbr:
                    cycle.append(cur)
                    cur = parent[cur]
                cycle.reverse()
                return cycle
            if color[nbr] == WHITE:
                parent[nbr] = node
                color[nbr] = GRAY
                stack.append((nbr, 0))
    return None
