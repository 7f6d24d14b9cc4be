"""Shared test fixtures for the form generator.

Provides:
- ``make_bpmn``: builds BPMN 2.0 XML (with DI shapes) from a compact
  element / flow description
- Form template fixtures mirroring the START_NODE / TASK_NODE flavors
- A fixed generation timestamp
- An HTTP client for the FastAPI app
"""

from __future__ import annotations

from datetime import datetime, timezone
from xml.sax.saxutils import quoteattr

import pytest
from httpx import ASGITransport, AsyncClient

from formgen.core.rate_limit import limiter
from formgen.main import app as formgen_app
from formgen.services.form_templates import FormTemplates

# ---------------------------------------------------------------------------
# BPMN builder
# ---------------------------------------------------------------------------


def make_bpmn(
    elements: list[tuple[str, str, str | None]],
    flows: list[tuple[str, str, str]],
    positions: dict[str, tuple[int, int]] | None = None,
    attributes: dict[str, str] | None = None,
) -> str:
    """Build a BPMN document.

    ``elements`` are ``(tag, id, name)``; ``flows`` are ``(id, source, target)``
    in declaration order. Elements without an explicit position are laid out
    left to right in the order given. ``attributes`` holds raw extra XML
    attributes per element id (e.g. ``mds:sopName="..."``).
    """
    positions = positions or {}
    attributes = attributes or {}
    lines = []
    for tag, elem_id, name in elements:
        name_attr = f" name={quoteattr(name)}" if name is not None else ""
        extra = f" {attributes[elem_id]}" if elem_id in attributes else ""
        lines.append(f'    <bpmn:{tag} id="{elem_id}"{name_attr}{extra} />')
    for flow_id, source, target in flows:
        lines.append(f'    <bpmn:sequenceFlow id="{flow_id}" sourceRef="{source}" targetRef="{target}" />')

    shapes = []
    for index, (_tag, elem_id, _name) in enumerate(elements):
        x, y = positions.get(elem_id, (100 + index * 150, 100))
        shapes.append(
            f'      <bpmndi:BPMNShape id="{elem_id}_di" bpmnElement="{elem_id}">\n'
            f'        <dc:Bounds x="{x}" y="{y}" width="100" height="80" />\n'
            f"      </bpmndi:BPMNShape>"
        )

    body = "\n".join(lines)
    di = "\n".join(shapes)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL"
                  xmlns:bpmndi="http://www.omg.org/spec/BPMN/20100524/DI"
                  xmlns:dc="http://www.omg.org/spec/DD/20100524/DC"
                  xmlns:zeebe="http://camunda.org/schema/zeebe/1.0"
                  xmlns:mds="http://example.com/schema/mds"
                  id="Definitions_1" targetNamespace="http://bpmn.io/schema/bpmn">
  <bpmn:process id="Process_1" isExecutable="true">
{body}
  </bpmn:process>
  <bpmndi:BPMNDiagram id="BPMNDiagram_1">
    <bpmndi:BPMNPlane id="BPMNPlane_1" bpmnElement="Process_1">
{di}
    </bpmndi:BPMNPlane>
  </bpmndi:BPMNDiagram>
</bpmn:definitions>
"""


# ---------------------------------------------------------------------------
# Common diagrams
# ---------------------------------------------------------------------------

# start → review → XOR(A, B)
EXCLUSIVE_BPMN = make_bpmn(
    [
        ("startEvent", "start", "Request received"),
        ("userTask", "review", "Review request"),
        ("exclusiveGateway", "gw", "Approved?"),
        ("userTask", "A", "Approve"),
        ("userTask", "B", "Reject"),
    ],
    [
        ("f_start", "start", "review"),
        ("f_review", "review", "gw"),
        ("f_a", "gw", "A"),
        ("f_b", "gw", "B"),
    ],
)

# review → OR(A, B, C)
INCLUSIVE_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("inclusiveGateway", "gw", None),
        ("userTask", "A", "Notify customer"),
        ("userTask", "B", "Notify finance"),
        ("callActivity", "C", "Archive case"),
    ],
    [
        ("f_review", "review", "gw"),
        ("f_a", "gw", "A"),
        ("f_b", "gw", "B"),
        ("f_c", "gw", "C"),
    ],
)

# review → AND → (XOR1 → A1 | B1), (XOR2 → A2 | B2)
PARALLEL_CASCADE_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("parallelGateway", "split", None),
        ("exclusiveGateway", "x1", "Shipping?"),
        ("exclusiveGateway", "x2", "Billing?"),
        ("userTask", "A1", "Ship express"),
        ("userTask", "B1", "Ship standard"),
        ("userTask", "A2", "Invoice"),
        ("userTask", "B2", "Prepay"),
    ],
    [
        ("f_review", "review", "split"),
        ("f_s1", "split", "x1"),
        ("f_s2", "split", "x2"),
        ("f_a1", "x1", "A1"),
        ("f_b1", "x1", "B1"),
        ("f_a2", "x2", "A2"),
        ("f_b2", "x2", "B2"),
    ],
)

# review → X1 → (T1 | X2 → (T2 | X3 → (T3 | X4 → (T4 | T5))))
DEEP_CASCADE_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("exclusiveGateway", "x1", None),
        ("exclusiveGateway", "x2", None),
        ("exclusiveGateway", "x3", None),
        ("exclusiveGateway", "x4", None),
        ("userTask", "T1", "Task 1"),
        ("userTask", "T2", "Task 2"),
        ("userTask", "T3", "Task 3"),
        ("userTask", "T4", "Task 4"),
        ("userTask", "T5", "Task 5"),
    ],
    [
        ("f_review", "review", "x1"),
        ("f_1t", "x1", "T1"),
        ("f_1x", "x1", "x2"),
        ("f_2t", "x2", "T2"),
        ("f_2x", "x2", "x3"),
        ("f_3t", "x3", "T3"),
        ("f_3x", "x3", "x4"),
        ("f_4a", "x4", "T4"),
        ("f_4b", "x4", "T5"),
    ],
)

# review → XOR x1 → (A | AND → (XOR y1 → P | Q), (XOR y2 → R | S))
NESTED_PARALLEL_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("exclusiveGateway", "x1", "Route"),
        ("userTask", "A", "Skip"),
        ("parallelGateway", "par", "Both"),
        ("exclusiveGateway", "y1", None),
        ("exclusiveGateway", "y2", None),
        ("userTask", "P", "P"),
        ("userTask", "Q", "Q"),
        ("userTask", "R", "R"),
        ("userTask", "S", "S"),
    ],
    [
        ("f1", "review", "x1"),
        ("f2", "x1", "A"),
        ("f3", "x1", "par"),
        ("f4", "par", "y1"),
        ("f5", "par", "y2"),
        ("f6", "y1", "P"),
        ("f7", "y1", "Q"),
        ("f8", "y2", "R"),
        ("f9", "y2", "S"),
    ],
)

# review → XOR x1 → (OR i1 → A | B), (OR i2 → C | D)
TWO_INCLUSIVE_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("exclusiveGateway", "x1", None),
        ("inclusiveGateway", "i1", "First options"),
        ("inclusiveGateway", "i2", "Second options"),
        ("userTask", "A", "A"),
        ("userTask", "B", "B"),
        ("userTask", "C", "C"),
        ("userTask", "D", "D"),
    ],
    [
        ("f1", "review", "x1"),
        ("f2", "x1", "i1"),
        ("f3", "x1", "i2"),
        ("f4", "i1", "A"),
        ("f5", "i1", "B"),
        ("f6", "i2", "C"),
        ("f7", "i2", "D"),
    ],
)

# review → OR → (A | XOR y → (B | C))
INCLUSIVE_OVER_GATEWAY_BPMN = make_bpmn(
    [
        ("userTask", "review", "Review"),
        ("inclusiveGateway", "inc", None),
        ("userTask", "A", "A"),
        ("exclusiveGateway", "y", None),
        ("userTask", "B", "B"),
        ("userTask", "C", "C"),
    ],
    [
        ("f1", "review", "inc"),
        ("f2", "inc", "A"),
        ("f3", "inc", "y"),
        ("f4", "y", "B"),
        ("f5", "y", "C"),
    ],
)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def start_template() -> dict:
    return {
        "type": "form",
        "components": [
            {"type": "text", "id": "title", "text": "# {{ManualServiceNamePlaceholder}}"},
            {"type": "text", "id": "desc", "text": "{{ProcessDescriptionPlaceholder}}"},
            {"type": "text", "id": "next", "text": "Next: {{NextTaskPlaceholder}}"},
            {"type": "group", "id": "NextTaskChooserPlaceholder", "components": []},
            {
                "type": "group",
                "id": "refs",
                "components": [{"type": "text", "id": "refs_text", "text": "{{ReferencesPlaceholder}}"}],
            },
        ],
    }


def task_template() -> dict:
    return {
        "type": "form",
        "components": [
            {"type": "text", "id": "title", "text": "## {{ProcessStepPlaceholder}}"},
            {"type": "text", "id": "service", "text": "Service: {{ManualServiceNamePlaceholder}}"},
            {"type": "text", "id": "desc", "text": "{{ProcessDescriptionPlaceholder}}"},
            {"type": "text", "id": "next", "text": "Next: {{NextTaskPlaceholder}}"},
            {"type": "group", "id": "NextTaskChooserPlaceholder", "components": []},
            {"type": "text", "id": "refs_text", "text": "{{ReferencesPlaceholder}}"},
        ],
    }


@pytest.fixture
def templates() -> FormTemplates:
    return FormTemplates(first_step=start_template(), next_step=task_template())


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 10, 23, 22, 45, 12, 345000, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
def app():
    return formgen_app


@pytest.fixture
async def client(app):
    """HTTP test client for the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Each test starts with a fresh rate-limit window."""
    limiter.reset()
    yield
