"""BPMN 2.0 XML adapter for :class:`ProcessGraph`.

Parses the diagram with defusedxml, keeps the element tree alive so updates
(condition expressions, gateway defaults, Zeebe form bindings) land directly
in the XML, and re-serializes the whole document on demand.
"""

from __future__ import annotations

import logging
from xml.etree import ElementTree as StdET

import defusedxml.ElementTree as ET  # noqa: N817
from defusedxml.common import DefusedXmlException

from formgen.services.process_graph import (
    FormBinding,
    GraphNode,
    InvalidProcessGraphError,
    NodeKind,
    ProcessGraph,
    SequenceFlow,
)

logger = logging.getLogger(__name__)

BPMN_NS = "http://www.omg.org/spec/BPMN/20100524/MODEL"
BPMNDI_NS = "http://www.omg.org/spec/BPMN/20100524/DI"
DC_NS = "http://www.omg.org/spec/DD/20100524/DC"
DI_NS = "http://www.omg.org/spec/DD/20100524/DI"
ZEEBE_NS = "http://camunda.org/schema/zeebe/1.0"
MODELER_NS = "http://camunda.org/schema/modeler/1.0"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

_PREFIXES = {
    "bpmn": BPMN_NS,
    "bpmndi": BPMNDI_NS,
    "dc": DC_NS,
    "di": DI_NS,
    "zeebe": ZEEBE_NS,
    "modeler": MODELER_NS,
    "xsi": XSI_NS,
}
for _prefix, _uri in _PREFIXES.items():
    StdET.register_namespace(_prefix, _uri)

# BPMN element local name → node kind
NODE_KINDS = {
    "startEvent": NodeKind.START_EVENT,
    "endEvent": NodeKind.END_EVENT,
    "userTask": NodeKind.USER_TASK,
    "callActivity": NodeKind.CALL_ACTIVITY,
    "subProcess": NodeKind.SUB_PROCESS,
    "task": NodeKind.TASK,
    "serviceTask": NodeKind.TASK,
    "scriptTask": NodeKind.TASK,
    "manualTask": NodeKind.TASK,
    "sendTask": NodeKind.TASK,
    "receiveTask": NodeKind.TASK,
    "businessRuleTask": NodeKind.TASK,
    "exclusiveGateway": NodeKind.EXCLUSIVE_GATEWAY,
    "inclusiveGateway": NodeKind.INCLUSIVE_GATEWAY,
    "parallelGateway": NodeKind.PARALLEL_GATEWAY,
    "eventBasedGateway": NodeKind.OTHER,
    "complexGateway": NodeKind.OTHER,
    "intermediateCatchEvent": NodeKind.OTHER,
    "intermediateThrowEvent": NodeKind.OTHER,
    "boundaryEvent": NodeKind.OTHER,
}

_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def _q(ns: str, local: str) -> str:
    return f"{{{ns}}}{local}"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _to_float(value: str | None) -> float:
    try:
        return float(value) if value is not None else 0.0
    except ValueError:
        return 0.0


class BpmnGraph(ProcessGraph):
    """Process graph backed by a BPMN 2.0 XML document."""

    def __init__(self, bpmn_xml: str | bytes):
        if isinstance(bpmn_xml, str):
            # ElementTree refuses str input that carries an encoding declaration
            bpmn_xml = bpmn_xml.encode("utf-8")
        try:
            self._root = ET.fromstring(bpmn_xml)
        except (StdET.ParseError, DefusedXmlException) as exc:
            raise InvalidProcessGraphError(f"Invalid BPMN 2.0 XML: {exc}") from exc

        if self._root.tag != _q(BPMN_NS, "definitions"):
            raise InvalidProcessGraphError("Invalid BPMN 2.0 XML: root element is not bpmn:definitions")

        self._elements: dict[str, StdET.Element] = {}
        self._nodes: dict[str, GraphNode] = {}
        self._flows: dict[str, SequenceFlow] = {}
        self._outgoing: dict[str, list[SequenceFlow]] = {}
        self._incoming: dict[str, list[SequenceFlow]] = {}

        self._parse()

    # ── Parsing ────────────────────────────────────────────────────────

    def _parse(self) -> None:
        bounds = self._shape_bounds()
        order = 0
        flow_order = 0

        for elem in self._root.iter():
            if not isinstance(elem.tag, str) or not elem.tag.startswith(f"{{{BPMN_NS}}}"):
                continue
            local = _local_name(elem.tag)
            elem_id = elem.get("id")
            if not elem_id:
                continue

            if local == "sequenceFlow":
                flow = SequenceFlow(
                    id=elem_id,
                    source_id=elem.get("sourceRef", ""),
                    target_id=elem.get("targetRef", ""),
                    name=elem.get("name"),
                    condition=self._read_condition(elem),
                    order=flow_order,
                )
                flow_order += 1
                self._elements[elem_id] = elem
                self._flows[elem_id] = flow
                continue

            kind = NODE_KINDS.get(local)
            if kind is None:
                continue

            x, y = bounds.get(elem_id, (0.0, 0.0))
            doc_elem = elem.find(_q(BPMN_NS, "documentation"))
            documentation = (doc_elem.text or "").strip() if doc_elem is not None else ""

            self._elements[elem_id] = elem
            self._nodes[elem_id] = GraphNode(
                id=elem_id,
                kind=kind,
                name=elem.get("name"),
                x=x,
                y=y,
                documentation=documentation or None,
                attributes={
                    _local_name(k): v for k, v in elem.attrib.items() if k.startswith("{")
                },
                form_binding=self._read_form_binding(elem),
                order=order,
            )
            order += 1

        for flow in sorted(self._flows.values(), key=lambda f: f.order):
            self._outgoing.setdefault(flow.source_id, []).append(flow)
            self._incoming.setdefault(flow.target_id, []).append(flow)

        logger.debug("Parsed BPMN graph: %d nodes, %d flows", len(self._nodes), len(self._flows))

    def _shape_bounds(self) -> dict[str, tuple[float, float]]:
        bounds: dict[str, tuple[float, float]] = {}
        for shape in self._root.iter(_q(BPMNDI_NS, "BPMNShape")):
            element_id = shape.get("bpmnElement")
            box = shape.find(_q(DC_NS, "Bounds"))
            if element_id and box is not None:
                bounds[element_id] = (_to_float(box.get("x")), _to_float(box.get("y")))
        return bounds

    @staticmethod
    def _read_condition(elem: StdET.Element) -> str | None:
        cond = elem.find(_q(BPMN_NS, "conditionExpression"))
        if cond is None or not (cond.text or "").strip():
            return None
        body = cond.text.strip()
        if body.startswith("="):
            body = body[1:].strip()
        return body or None

    @staticmethod
    def _read_form_binding(elem: StdET.Element) -> FormBinding | None:
        ext = elem.find(_q(BPMN_NS, "extensionElements"))
        if ext is None:
            return None
        form_def = ext.find(_q(ZEEBE_NS, "formDefinition"))
        if form_def is None or not form_def.get("formId"):
            return None
        return FormBinding(
            form_id=form_def.get("formId"),
            binding_type=form_def.get("bindingType", "deployment"),
        )

    # ── Read API ───────────────────────────────────────────────────────

    def nodes(self) -> list[GraphNode]:
        return sorted(self._nodes.values(), key=lambda n: n.order)

    def node(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def flow(self, flow_id: str) -> SequenceFlow | None:
        return self._flows.get(flow_id)

    def outgoing(self, node_id: str) -> list[SequenceFlow]:
        return list(self._outgoing.get(node_id, []))

    def incoming(self, node_id: str) -> list[SequenceFlow]:
        return list(self._incoming.get(node_id, []))

    def default_flow(self, gateway_id: str) -> str | None:
        elem = self._elements.get(gateway_id)
        return elem.get("default") if elem is not None else None

    # ── Write API ──────────────────────────────────────────────────────

    def create_expression(self, body: str) -> str:
        # Zeebe evaluates condition bodies prefixed with "=" as FEEL
        return f"= {body}"

    def set_condition(self, flow_id: str, expression: str | None) -> None:
        flow = self._flows[flow_id]
        elem = self._elements[flow_id]
        for existing in elem.findall(_q(BPMN_NS, "conditionExpression")):
            elem.remove(existing)

        flow.condition = expression or None
        if not expression:
            return

        cond = StdET.SubElement(elem, _q(BPMN_NS, "conditionExpression"))
        cond.set(_q(XSI_NS, "type"), "bpmn:tFormalExpression")
        cond.text = self.create_expression(expression)

    def set_default_flow(self, gateway_id: str, flow_id: str | None) -> None:
        elem = self._elements[gateway_id]
        if flow_id:
            elem.set("default", flow_id)
        elif "default" in elem.attrib:
            del elem.attrib["default"]

    def attach_form_binding(self, node_id: str, binding: FormBinding) -> None:
        node = self._nodes[node_id]
        elem = self._elements[node_id]

        ext = elem.find(_q(BPMN_NS, "extensionElements"))
        if ext is None:
            # extensionElements must follow any documentation children
            position = sum(1 for child in elem if child.tag == _q(BPMN_NS, "documentation"))
            ext = StdET.Element(_q(BPMN_NS, "extensionElements"))
            elem.insert(position, ext)

        for existing in ext.findall(_q(ZEEBE_NS, "formDefinition")):
            ext.remove(existing)

        form_def = StdET.Element(_q(ZEEBE_NS, "formDefinition"))
        form_def.set("formId", binding.form_id)
        form_def.set("bindingType", binding.binding_type)
        ext.insert(0, form_def)

        if node.kind == NodeKind.USER_TASK and ext.find(_q(ZEEBE_NS, "userTask")) is None:
            StdET.SubElement(ext, _q(ZEEBE_NS, "userTask"))

        node.form_binding = binding

    def serialize(self) -> str:
        return _XML_DECLARATION + StdET.tostring(self._root, encoding="unicode")
