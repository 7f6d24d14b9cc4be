"""Process graph model and the capability set the generator works against.

The generator never touches a BPMN toolkit directly. It enumerates nodes and
sequence flows, reads kinds and names, and pushes property updates back
through a :class:`ProcessGraph` implementation (see ``bpmn_graph.py``).
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from enum import Enum


class NodeKind(str, Enum):
    START_EVENT = "startEvent"
    USER_TASK = "userTask"
    CALL_ACTIVITY = "callActivity"
    SUB_PROCESS = "subProcess"
    TASK = "task"
    EXCLUSIVE_GATEWAY = "exclusiveGateway"
    INCLUSIVE_GATEWAY = "inclusiveGateway"
    PARALLEL_GATEWAY = "parallelGateway"
    END_EVENT = "endEvent"
    OTHER = "other"


GATEWAY_KINDS = frozenset(
    {NodeKind.EXCLUSIVE_GATEWAY, NodeKind.INCLUSIVE_GATEWAY, NodeKind.PARALLEL_GATEWAY}
)

# Nodes that receive a generated form
FORM_NODE_KINDS = frozenset({NodeKind.START_EVENT, NodeKind.USER_TASK, NodeKind.CALL_ACTIVITY})

# Nodes that count as a selectable "next task"
TASK_NODE_KINDS = frozenset(
    {NodeKind.USER_TASK, NodeKind.CALL_ACTIVITY, NodeKind.SUB_PROCESS, NodeKind.TASK}
)


class InvalidProcessGraphError(Exception):
    """Raised when a process definition cannot be read as a graph."""


@dataclass(frozen=True)
class FormBinding:
    form_id: str
    binding_type: str = "deployment"


@dataclass
class GraphNode:
    id: str
    kind: NodeKind
    name: str | None = None
    x: float = 0.0
    y: float = 0.0
    documentation: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    form_binding: FormBinding | None = None
    order: int = 0  # document order

    @property
    def is_gateway(self) -> bool:
        return self.kind in GATEWAY_KINDS

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or self.id


@dataclass
class SequenceFlow:
    id: str
    source_id: str
    target_id: str
    name: str | None = None
    condition: str | None = None
    order: int = 0


class ProcessGraph(abc.ABC):
    """Abstract capability set over one BPMN process.

    ``outgoing`` must return flows in a stable order (document order for the
    XML adapter); the exclusive-gateway default is taken from that order.
    """

    @abc.abstractmethod
    def nodes(self) -> list[GraphNode]:
        """All flow nodes in document order."""

    @abc.abstractmethod
    def node(self, node_id: str) -> GraphNode | None: ...

    @abc.abstractmethod
    def outgoing(self, node_id: str) -> list[SequenceFlow]: ...

    @abc.abstractmethod
    def incoming(self, node_id: str) -> list[SequenceFlow]: ...

    @abc.abstractmethod
    def default_flow(self, gateway_id: str) -> str | None: ...

    @abc.abstractmethod
    def create_expression(self, body: str) -> str:
        """Turn a bare routing expression into the toolkit's expression text."""

    @abc.abstractmethod
    def set_condition(self, flow_id: str, expression: str | None) -> None: ...

    @abc.abstractmethod
    def set_default_flow(self, gateway_id: str, flow_id: str | None) -> None: ...

    @abc.abstractmethod
    def attach_form_binding(self, node_id: str, binding: FormBinding) -> None: ...

    @abc.abstractmethod
    def serialize(self) -> str: ...

    # ── Convenience helpers shared by every adapter ────────────────────

    def successors(self, node_id: str) -> list[GraphNode]:
        out: list[GraphNode] = []
        for flow in self.outgoing(node_id):
            target = self.node(flow.target_id)
            if target is not None:
                out.append(target)
        return out

    def target_of(self, flow: SequenceFlow) -> GraphNode | None:
        return self.node(flow.target_id)
