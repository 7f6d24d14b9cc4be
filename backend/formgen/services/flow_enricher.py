"""Write routing expressions onto gateway sequence flows.

The expressions read the variables submitted by the chooser components, so
the walk mirrors :mod:`formgen.services.chooser_builder` and takes variable
names from the gateway → variable mapping the choosers of the bundle built.
The level-based names are only a fallback for gateways no chooser saw.

Rules:

* exclusive: the last outgoing flow (document order) is the default and
  carries no expression; every other flow gets ``<var> = "<target id>"``
* inclusive: every flow gets ``list contains(<var>, "<target id>")``; no
  default
* parallel: no expressions, no default
"""

from __future__ import annotations

import logging

from formgen.services.chooser_builder import (
    ROOT_VARIABLE,
    branch_prefix,
    collect_leaf_tasks,
    inclusive_variable,
    level_variable,
)
from formgen.services.graph_classifier import fan_out_of, resolve_splitting
from formgen.services.process_graph import GraphNode, NodeKind, ProcessGraph

logger = logging.getLogger(__name__)


def exclusive_expression(variable: str, value: str) -> str:
    return f'{variable} = "{value}"'


def inclusive_expression(variable: str, value: str) -> str:
    return f'list contains({variable}, "{value}")'


class FlowEnricher:
    def __init__(self, graph: ProcessGraph, variables: dict[str, str] | None = None):
        self.graph = graph
        self.variables = variables or {}
        self._visited: set[str] = set()

    def enrich(
        self,
        gateway: GraphNode,
        level: int = 1,
        prefix: str = ROOT_VARIABLE,
    ) -> None:
        if gateway.id in self._visited:
            return
        self._visited.add(gateway.id)

        if gateway.kind == NodeKind.EXCLUSIVE_GATEWAY:
            self._exclusive(gateway, level, prefix)
        elif gateway.kind == NodeKind.INCLUSIVE_GATEWAY:
            self._inclusive(gateway, prefix)
        elif gateway.kind == NodeKind.PARALLEL_GATEWAY:
            self._parallel(gateway, level, prefix, branch_base=None)

    def enrich_fan_out(
        self,
        gateways: list[GraphNode],
        prefix: str = ROOT_VARIABLE,
        level: int = 1,
        branch_base: str | None = None,
    ) -> None:
        if len(gateways) == 1:
            self.enrich(gateways[0], level, prefix)
            return
        base = branch_base or prefix
        for index, gateway in enumerate(gateways, start=1):
            self.enrich(gateway, 1, branch_prefix(base, index))

    # ── Per kind ───────────────────────────────────────────────────────

    def _exclusive(self, gateway: GraphNode, level: int, prefix: str) -> None:
        outgoing = self.graph.outgoing(gateway.id)
        if not outgoing:
            return

        variable = self.variables.get(gateway.id) or level_variable(prefix, level)
        default = outgoing[-1]
        self.graph.set_default_flow(gateway.id, default.id)

        for flow in outgoing:
            if flow.id == default.id:
                self.graph.set_condition(flow.id, None)
            else:
                self.graph.set_condition(flow.id, exclusive_expression(variable, flow.target_id))

        for flow in outgoing:
            target = self.graph.target_of(flow)
            if target is None or not target.is_gateway:
                continue
            nested = resolve_splitting(self.graph, target)
            if nested is None:
                continue
            if nested.kind == NodeKind.PARALLEL_GATEWAY:
                if nested.id not in self._visited:
                    self._visited.add(nested.id)
                    self._parallel(nested, level + 1, prefix, branch_base=variable)
            else:
                self.enrich(nested, level + 1, prefix)

    def _inclusive(self, gateway: GraphNode, prefix: str) -> None:
        variable = self.variables.get(gateway.id) or inclusive_variable(prefix)
        self.graph.set_default_flow(gateway.id, None)

        for flow in self.graph.outgoing(gateway.id):
            target = self.graph.target_of(flow)
            values = [flow.target_id]
            if target is not None and target.is_gateway:
                values = [leaf.id for leaf in collect_leaf_tasks(self.graph, target)] or values
            expression = " or ".join(inclusive_expression(variable, v) for v in values)
            self.graph.set_condition(flow.id, expression)

    def _parallel(self, gateway: GraphNode, level: int, prefix: str, branch_base: str | None) -> None:
        clear_parallel(self.graph, gateway)
        branches = fan_out_of(self.graph, gateway)
        if branches == [gateway]:
            return
        self.enrich_fan_out(branches, prefix=prefix, level=level, branch_base=branch_base)


def clear_parallel(graph: ProcessGraph, gateway: GraphNode) -> None:
    graph.set_default_flow(gateway.id, None)
    for flow in graph.outgoing(gateway.id):
        graph.set_condition(flow.id, None)


def enrich_gateway_conditions(
    graph: ProcessGraph,
    gateway: GraphNode,
    variables: dict[str, str] | None = None,
    level: int = 1,
) -> None:
    """Enrich a single gateway and everything cascading from it."""
    FlowEnricher(graph, variables).enrich(gateway, level)


def enrich_routing(
    graph: ProcessGraph,
    gateways: list[GraphNode],
    variables: dict[str, str] | None = None,
    origin: GraphNode | None = None,
) -> None:
    """Enrich every gateway of a ``parallel_fan_out`` result.

    ``origin`` is the splitting gateway the fan-out started from; when it is a
    parallel gateway whose branches carry choosers its own flows are cleared
    as well.
    """
    if not gateways:
        return
    enricher = FlowEnricher(graph, variables)
    if origin is not None and origin.kind == NodeKind.PARALLEL_GATEWAY:
        # Clears the split and walks the same branches fan_out_of() returned
        enricher.enrich(origin)
    else:
        enricher.enrich_fan_out(gateways)
    logger.debug("Enriched routing for %s", ", ".join(g.id for g in gateways))
