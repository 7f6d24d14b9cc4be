"""Find the gateway(s) whose choosers belong on a node's form.

A *splitting* gateway is a gateway with more than one outgoing flow. Gateways
with a single outgoing flow are merges and are walked through. Any other node
ends the search on that path: the decision belongs to the nearest human step
in front of it.
"""

from __future__ import annotations

from collections import deque

from formgen.services.process_graph import GraphNode, NodeKind, ProcessGraph


def gateway_kind(node: GraphNode | None) -> NodeKind | None:
    if node is None or not node.is_gateway:
        return None
    return node.kind


def _is_splitting(graph: ProcessGraph, node: GraphNode) -> bool:
    return node.is_gateway and len(graph.outgoing(node.id)) > 1


def _nearest_from(graph: ProcessGraph, start: list[GraphNode]) -> GraphNode | None:
    """Breadth-first search from ``start`` for the first splitting gateway."""
    queue: deque[GraphNode] = deque(start)
    visited: set[str] = set()

    while queue:
        current = queue.popleft()
        if current.id in visited:
            continue
        visited.add(current.id)

        if not current.is_gateway:
            continue
        if _is_splitting(graph, current):
            return current
        # Merge gateway: keep walking
        for successor in graph.successors(current.id):
            if successor.id not in visited:
                queue.append(successor)

    return None


def nearest_splitting_gateway(graph: ProcessGraph, node: GraphNode) -> GraphNode | None:
    """Return the splitting gateway fewest hops downstream of ``node``, if any."""
    return _nearest_from(graph, graph.successors(node.id))


def resolve_splitting(graph: ProcessGraph, node: GraphNode) -> GraphNode | None:
    """``node`` itself when it splits, else the splitting gateway behind its merges."""
    return _nearest_from(graph, [node])


def fan_out_of(graph: ProcessGraph, gateway: GraphNode) -> list[GraphNode]:
    """Classify the branches of a parallel gateway.

    Returns the exclusive/inclusive gateways that open each branch (branch
    order, no duplicates), or ``[gateway]`` when no branch needs a chooser.
    """
    found: list[GraphNode] = []
    seen: set[str] = set()
    for branch in graph.successors(gateway.id):
        branch_gateway = _nearest_from(graph, [branch])
        if branch_gateway is None or branch_gateway.id == gateway.id:
            continue
        if branch_gateway.kind not in (NodeKind.EXCLUSIVE_GATEWAY, NodeKind.INCLUSIVE_GATEWAY):
            continue
        if branch_gateway.id in seen:
            continue
        seen.add(branch_gateway.id)
        found.append(branch_gateway)
    return found or [gateway]


def parallel_fan_out(graph: ProcessGraph, node: GraphNode) -> list[GraphNode]:
    """Gateways whose choosers must appear on ``node``'s form.

    ``[]`` means no downstream gateway; a single parallel gateway means the
    flows are written unconditioned and no chooser is needed.
    """
    nearest = nearest_splitting_gateway(graph, node)
    if nearest is None:
        return []
    if nearest.kind == NodeKind.PARALLEL_GATEWAY:
        return fan_out_of(graph, nearest)
    return [nearest]


def next_linear_task(graph: ProcessGraph, node: GraphNode) -> GraphNode | None:
    """The user task or call activity directly after ``node`` on a straight path."""
    successors = graph.successors(node.id)
    if not successors:
        return None
    first = successors[0]
    if first.kind in (NodeKind.USER_TASK, NodeKind.CALL_ACTIVITY):
        return first
    return None
