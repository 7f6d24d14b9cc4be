"""Generate the Camunda bundle for one process.

For every start event, user task and call activity, in turn:

 1. resolve the step description and references (awaited, failures logged
    and replaced by an empty context)
 2. classify the downstream gateway(s)
 3. build the chooser components
 4. materialize the form from the matching template flavor
 5. bind the form id onto the node (``zeebe:formDefinition``)
 6. write the routing expressions onto the gateway flows

The graph is mutated in place, so nodes are processed strictly one after the
other. The form id written into the document and onto the node is the same
string; Camunda uses it to pair a deployed form with its diagram node.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from formgen.core.metrics import (
    bundle_generation_duration_seconds,
    forms_generated_total,
    step_context_failures_total,
)
from formgen.services.chooser_builder import build_choosers
from formgen.services.flow_enricher import enrich_routing
from formgen.services.form_templates import (
    START_TEMPLATE_NAME,
    TASK_TEMPLATE_NAME,
    FormTemplates,
)
from formgen.services.graph_classifier import (
    nearest_splitting_gateway,
    next_linear_task,
    parallel_fan_out,
)
from formgen.services.process_graph import (
    FORM_NODE_KINDS,
    FormBinding,
    GraphNode,
    NodeKind,
    ProcessGraph,
)
from formgen.services.step_context import StepContext, StepContextResolver, attribute_resolver
from formgen.services.template_materializer import (
    FormContext,
    build_next_task_text,
    materialize_form,
)

logger = logging.getLogger(__name__)

START_FORM_STEM = "000-start"


class FormGenerationConfigError(Exception):
    """Raised before any node is processed when a required input is missing."""


@dataclass(frozen=True)
class GeneratedForm:
    node_id: str
    name: str
    filename: str
    form_id: str
    document: dict
    template: str = TASK_TEMPLATE_NAME

    def manifest_entry(self) -> dict:
        return {
            "nodeId": self.node_id,
            "name": self.name,
            "filename": self.filename,
            "formId": self.form_id,
        }


@dataclass(frozen=True)
class Bundle:
    """Result of one generation run.

    The freeze is shallow: ``manifest`` and each form's ``document`` are
    plain dicts handed to the caller as is, not copied or locked.
    """

    serialized_graph: str
    forms: tuple[GeneratedForm, ...] = field(default_factory=tuple)
    manifest: dict = field(default_factory=dict)


# ── Naming ─────────────────────────────────────────────────────────────


def slugify(value: str | None) -> str:
    text = (value or "").strip()
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"[^A-Za-z0-9_-]", "", text)
    return re.sub(r"-+", "-", text)


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def compact_timestamp(now: datetime) -> str:
    """``2025-10-23T22:45:12.345Z`` → ``20251023T224512Z``."""
    return _as_utc(now).strftime("%Y%m%dT%H%M%SZ")


def iso_timestamp(now: datetime) -> str:
    return _as_utc(now).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def plan_form_stems(nodes: list[GraphNode]) -> list[tuple[GraphNode, str]]:
    """File stem for every form node, in generation order.

    The start event is always ``000-start``. Other nodes are numbered from
    ``001`` by diagram position (left to right, then top to bottom, then
    document order).
    """
    form_nodes = [n for n in nodes if n.kind in FORM_NODE_KINDS]
    starts = [n for n in form_nodes if n.kind == NodeKind.START_EVENT]
    steps = sorted(
        (n for n in form_nodes if n.kind != NodeKind.START_EVENT),
        key=lambda n: (n.x, n.y, n.order),
    )

    plan: list[tuple[GraphNode, str]] = []
    for index, node in enumerate(starts, start=1):
        plan.append((node, START_FORM_STEM if index == 1 else f"{START_FORM_STEM}-{index}"))
    for index, node in enumerate(steps, start=1):
        plan.append((node, f"{index:03d}-{slugify(node.display_name) or node.id}"))
    return plan


# ── Generation ─────────────────────────────────────────────────────────


def _check_inputs(graph: ProcessGraph | None, templates: FormTemplates | None) -> None:
    if graph is None:
        raise FormGenerationConfigError("generate_bundle: a process graph is required")
    if templates is None:
        raise FormGenerationConfigError(
            "generate_bundle: templates.first_step and templates.next_step are required"
        )
    missing = [
        name
        for name, value in (("first_step", templates.first_step), ("next_step", templates.next_step))
        if not value
    ]
    if missing:
        raise FormGenerationConfigError(
            "generate_bundle: missing form template(s): "
            + ", ".join(f"templates.{m}" for m in missing)
        )


async def _resolve_context(resolver: StepContextResolver, node: GraphNode) -> StepContext:
    try:
        context = await resolver(node)
    except Exception:
        step_context_failures_total.inc()
        logger.exception(
            "Step context lookup failed for node %s; continuing without description",
            node.id,
            extra={"node_id": node.id},
        )
        return StepContext()
    return context or StepContext()


async def _generate_form(
    graph: ProcessGraph,
    node: GraphNode,
    stem: str,
    templates: FormTemplates,
    service_name: str,
    service_description: str,
    resolver: StepContextResolver,
    timestamp: str,
    variables: dict[str, str],
) -> GeneratedForm:
    is_start = node.kind == NodeKind.START_EVENT
    template_name = START_TEMPLATE_NAME if is_start else TASK_TEMPLATE_NAME
    template = templates.first_step if is_start else templates.next_step

    step = await _resolve_context(resolver, node)
    description = step.step_description
    if is_start and not description:
        description = service_description

    origin = nearest_splitting_gateway(graph, node)
    gateways = parallel_fan_out(graph, node)
    chooser = build_choosers(graph, gateways, variables)
    variables.update(chooser.variables)

    if origin is not None:
        next_task_text = build_next_task_text(origin.kind, chooser.options)
    else:
        following = next_linear_task(graph, node)
        next_task_text = following.display_name if following else ""

    form_id = f"{stem}-{timestamp}"
    document = materialize_form(
        template,
        FormContext(
            service_name=service_name,
            step_name=node.display_name,
            step_description=description,
            next_task_text=next_task_text,
            references=list(step.references),
        ),
        chooser.components or None,
        form_id,
    )

    graph.attach_form_binding(node.id, FormBinding(form_id=form_id))
    enrich_routing(graph, gateways, variables, origin=origin)

    forms_generated_total.labels(template=template_name).inc()
    logger.info(
        "Generated form %s for %s (%d chooser component(s))",
        form_id,
        node.id,
        len(chooser.components),
    )
    return GeneratedForm(
        node_id=node.id,
        name=node.display_name,
        filename=f"{stem}.form",
        form_id=form_id,
        document=document,
        template=template_name,
    )


async def generate_bundle(
    graph: ProcessGraph | None,
    templates: FormTemplates | None,
    service_name: str,
    resolver: StepContextResolver | None = None,
    now: datetime | None = None,
    service_description: str = "",
) -> Bundle:
    """Enrich ``graph`` and generate one form per start event / user task / call activity.

    ``service_description`` is shown on start forms whose resolver returns no
    description of its own.
    """
    _check_inputs(graph, templates)
    resolver = resolver or attribute_resolver
    now = now or datetime.now(timezone.utc)
    timestamp = compact_timestamp(now)

    started = time.perf_counter()
    forms: list[GeneratedForm] = []
    # gateway id -> chooser variable, shared by every form of the bundle
    variables: dict[str, str] = {}
    for node, stem in plan_form_stems(graph.nodes()):
        forms.append(
            await _generate_form(
                graph,
                node,
                stem,
                templates,
                service_name,
                service_description,
                resolver,
                timestamp,
                variables,
            )
        )

    manifest = {
        "service": service_name,
        "generatedAt": iso_timestamp(now),
        "forms": [form.manifest_entry() for form in forms],
    }
    bundle = Bundle(serialized_graph=graph.serialize(), forms=tuple(forms), manifest=manifest)

    bundle_generation_duration_seconds.observe(time.perf_counter() - started)
    logger.info("Generated bundle for %r: %d form(s)", service_name, len(forms))
    return bundle
