"""Build the "what happens next" input components for a node's form.

Each routing gateway becomes one Camunda form component:

* exclusive → a required ``select`` keyed ``nextTask`` (``nextTask_2`` for the
  gateway behind an option, and so on down the cascade)
* inclusive → a required ``checklist`` keyed ``nextTasks`` listing every task
  the gateway can reach
* parallel → nothing, every branch runs

Components for gateways nested behind an option are hidden unless that
option is selected. The gateway → variable mapping is returned alongside the
components so the flow enricher writes expressions against the same keys.

When one form carries choosers for several parallel branches, branch ``i``
is namespaced ``nextTask_b<i>`` (``nextTask_b<i>_2`` one level down,
``nextTasks_b<i>`` for an inclusive gateway). A key that is already taken on
the form gets a ``_v<n>`` suffix.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from formgen.services.graph_classifier import fan_out_of, resolve_splitting
from formgen.services.process_graph import (
    TASK_NODE_KINDS,
    GraphNode,
    NodeKind,
    ProcessGraph,
)

logger = logging.getLogger(__name__)

ROOT_VARIABLE = "nextTask"

NEXT_DECISION_LABEL = "Next decision"
NEXT_TASK_LABEL = "Next task"


@dataclass(frozen=True)
class ChooserOption:
    label: str
    value: str


@dataclass
class Chooser:
    components: list[dict] = field(default_factory=list)
    options: list[ChooserOption] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)

    def merge(self, other: Chooser) -> None:
        self.components.extend(other.components)
        known = {o.value for o in self.options}
        for option in other.options:
            if option.value not in known:
                known.add(option.value)
                self.options.append(option)
        self.variables.update(other.variables)


def level_variable(prefix: str, level: int) -> str:
    """``nextTask`` at level 1, ``nextTask_<level>`` below it."""
    return prefix if level <= 1 else f"{prefix}_{level}"


def inclusive_variable(prefix: str) -> str:
    """Plural form of a chooser prefix: ``nextTask_b2`` → ``nextTasks_b2``."""
    head, sep, tail = prefix.partition("_")
    return f"{head}s{sep}{tail}"


def branch_prefix(base: str, index: int) -> str:
    return f"{base}_b{index}"


def option_label(node: GraphNode) -> str:
    if node.name and node.name.strip():
        return node.name.strip()
    return NEXT_DECISION_LABEL if node.is_gateway else NEXT_TASK_LABEL


def hide_unless(variable: str, value: str, component: dict) -> dict:
    """Copy of ``component`` hidden unless ``variable`` equals ``value``."""
    condition = f'{variable} != "{value}"'
    existing = (component.get("conditional") or {}).get("hide")
    if existing:
        condition = f"{condition} or ({existing.lstrip('=').strip()})"
    hidden = dict(component)
    hidden["conditional"] = {"hide": f"={condition}"}
    return hidden


def distinct_targets(graph: ProcessGraph, gateway: GraphNode) -> list[GraphNode]:
    targets: list[GraphNode] = []
    seen: set[str] = set()
    for target in graph.successors(gateway.id):
        if target.id not in seen:
            seen.add(target.id)
            targets.append(target)
    return targets


def collect_leaf_tasks(graph: ProcessGraph, gateway: GraphNode) -> list[GraphNode]:
    """Every task reachable from ``gateway`` through intermediate gateways.

    Depth-first, in flow order, without duplicates. Gateways themselves are
    not collected and each is expanded at most once.
    """
    leaves: list[GraphNode] = []
    seen: set[str] = set()
    expanded: set[str] = {gateway.id}

    def _walk(current: GraphNode) -> None:
        for target in graph.successors(current.id):
            if target.is_gateway:
                if target.id not in expanded:
                    expanded.add(target.id)
                    _walk(target)
            elif target.kind in TASK_NODE_KINDS and target.id not in seen:
                seen.add(target.id)
                leaves.append(target)

    _walk(gateway)
    return leaves


class ChooserBuilder:
    """Builds choosers for one form; variable keys are unique per form.

    ``assigned`` maps gateway ids to the variables earlier forms of the same
    bundle already use for them. Such a gateway keeps its variable, so every
    form offering it writes the key its flows read. ``reserved`` names are
    held back from fresh allocations on this form.
    """

    def __init__(
        self,
        graph: ProcessGraph,
        assigned: dict[str, str] | None = None,
        reserved: set[str] | None = None,
    ):
        self.graph = graph
        self._assigned = assigned or {}
        self._reserved = reserved or set()
        self._used: set[str] = set()
        self._variables: dict[str, str] = {}

    def _allocate(self, gateway: GraphNode, name: str) -> str:
        shared = self._assigned.get(gateway.id)
        if shared is not None and shared not in self._used:
            candidate = shared
        else:
            if shared is not None:
                logger.warning(
                    "Variable %s of gateway %s is taken on this form; allocating a new one",
                    shared,
                    gateway.id,
                )
            candidate = name
            n = 2
            while candidate in self._used or candidate in self._reserved:
                candidate = f"{name}_v{n}"
                n += 1
        self._used.add(candidate)
        self._variables[gateway.id] = candidate
        return candidate

    # ── Entry points ───────────────────────────────────────────────────

    def build(self, gateway: GraphNode, prefix: str = ROOT_VARIABLE, level: int = 1) -> Chooser:
        """Dispatch on gateway kind."""
        if gateway.kind == NodeKind.EXCLUSIVE_GATEWAY:
            chooser = self._exclusive(gateway, level, prefix)
        elif gateway.kind == NodeKind.INCLUSIVE_GATEWAY:
            chooser = self._inclusive(gateway, prefix)
        elif gateway.kind == NodeKind.PARALLEL_GATEWAY:
            chooser = self._parallel(gateway)
        else:
            chooser = Chooser()
        chooser.variables = dict(self._variables)
        return chooser

    def build_fan_out(
        self,
        gateways: list[GraphNode],
        prefix: str = ROOT_VARIABLE,
        level: int = 1,
        branch_base: str | None = None,
    ) -> Chooser:
        """Sibling choosers for a classified fan-out (see ``parallel_fan_out``)."""
        result = Chooser()
        if len(gateways) == 1:
            result.merge(self.build(gateways[0], prefix, level))
        else:
            base = branch_base or prefix
            for index, gateway in enumerate(gateways, start=1):
                result.merge(self.build(gateway, branch_prefix(base, index), 1))
        result.variables = dict(self._variables)
        return result

    # ── Builders per kind ──────────────────────────────────────────────

    def _exclusive(self, gateway: GraphNode, level: int, prefix: str) -> Chooser:
        if gateway.id in self._variables:
            # Already offered on this form (loop back or shared sub-decision)
            return Chooser()

        variable = self._allocate(gateway, level_variable(prefix, level))
        targets = distinct_targets(self.graph, gateway)

        select = {
            "type": "select",
            "id": f"Field_{variable}",
            "key": variable,
            "label": (gateway.name or "").strip()
            or ("Choose the next task" if level == 1 else "Choose the next step"),
            "validate": {"required": True},
            "values": [{"label": option_label(t), "value": t.id} for t in targets],
        }
        chooser = Chooser(components=[select])

        for target in targets:
            nested = resolve_splitting(self.graph, target) if target.is_gateway else None
            if nested is None:
                if target.is_gateway:
                    logger.debug("Gateway %s behind %s does not split; no sub-chooser", target.id, gateway.id)
                else:
                    chooser.options.append(ChooserOption(label=option_label(target), value=target.id))
                continue

            if nested.kind == NodeKind.EXCLUSIVE_GATEWAY:
                sub = self._exclusive(nested, level + 1, prefix)
            elif nested.kind == NodeKind.INCLUSIVE_GATEWAY:
                sub = self._inclusive(nested, prefix)
            elif nested.kind == NodeKind.PARALLEL_GATEWAY:
                sub = self.build_fan_out(
                    fan_out_of(self.graph, nested),
                    prefix=prefix,
                    level=level + 1,
                    branch_base=variable,
                )
            else:
                sub = Chooser()

            sub.components = [hide_unless(variable, target.id, c) for c in sub.components]
            chooser.merge(sub)

        return chooser

    def _inclusive(self, gateway: GraphNode, prefix: str) -> Chooser:
        if gateway.id in self._variables:
            return Chooser()

        leaves = collect_leaf_tasks(self.graph, gateway)
        if not leaves:
            logger.debug("Inclusive gateway %s reaches no tasks; no chooser", gateway.id)
            return Chooser()

        variable = self._allocate(gateway, inclusive_variable(prefix))
        options = [ChooserOption(label=option_label(leaf), value=leaf.id) for leaf in leaves]
        checklist = {
            "type": "checklist",
            "id": f"Field_{variable}",
            "key": variable,
            "label": (gateway.name or "").strip() or "Select all next tasks that apply",
            "validate": {"required": True},
            "values": [{"label": o.label, "value": o.value} for o in options],
        }
        return Chooser(components=[checklist], options=options)

    def _parallel(self, gateway: GraphNode) -> Chooser:
        # Every branch runs: no component, targets only feed the summary text
        options = [
            ChooserOption(label=option_label(t), value=t.id)
            for t in distinct_targets(self.graph, gateway)
            if not t.is_gateway
        ]
        return Chooser(options=options)


def build_chooser(graph: ProcessGraph, gateway: GraphNode) -> Chooser:
    """Chooser for a single gateway, dispatched on its kind."""
    return ChooserBuilder(graph).build(gateway)


def build_choosers(
    graph: ProcessGraph,
    gateways: list[GraphNode],
    assigned: dict[str, str] | None = None,
) -> Chooser:
    """Combined chooser for every gateway returned by ``parallel_fan_out``.

    With ``assigned`` (the bundle-wide gateway → variable map), gateways that
    already have a variable keep it, and the names they keep are not handed
    out to other gateways on the same form.
    """
    if not gateways:
        return Chooser()
    reserved: set[str] = set()
    if assigned:
        # The walk does not depend on the names, so a first pass finds the gateways
        offered = ChooserBuilder(graph).build_fan_out(gateways).variables
        reserved = {assigned[g] for g in offered if g in assigned}
    return ChooserBuilder(graph, assigned, reserved).build_fan_out(gateways)
