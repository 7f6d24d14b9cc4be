"""Forms: generate the Camunda bundle (enriched BPMN + forms + manifest)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from formgen.config import settings
from formgen.core.rate_limit import limiter
from formgen.schemas.forms import BundleResponse, GeneratedFormOut, GenerateRequest
from formgen.services.bpmn_graph import BpmnGraph
from formgen.services.bundle_archive import build_bundle_archive
from formgen.services.bundle_assembler import (
    Bundle,
    FormGenerationConfigError,
    generate_bundle,
    slugify,
)
from formgen.services.form_templates import (
    FormTemplateError,
    FormTemplates,
    load_form_templates,
    validate_template,
)
from formgen.services.process_graph import InvalidProcessGraphError
from formgen.services.step_context import (
    StepContext,
    StepReference,
    attribute_resolver,
    mapping_resolver,
)

router = APIRouter()


def _templates_for(body: GenerateRequest) -> FormTemplates:
    if body.templates is None:
        return load_form_templates(settings.FORM_TEMPLATE_DIR)
    return FormTemplates(
        first_step=validate_template("first_step", body.templates.first_step),
        next_step=validate_template("next_step", body.templates.next_step),
    )


def _resolver_for(body: GenerateRequest):
    if not body.step_contexts:
        return attribute_resolver
    contexts = {
        node_id: StepContext(
            step_description=ctx.step_description,
            references=[StepReference(name=r.name, url=r.url) for r in ctx.references],
        )
        for node_id, ctx in body.step_contexts.items()
    }
    return mapping_resolver(contexts)


async def _generate(body: GenerateRequest) -> Bundle:
    try:
        graph = BpmnGraph(body.bpmn_xml)
    except InvalidProcessGraphError as exc:
        raise HTTPException(400, str(exc))
    try:
        templates = _templates_for(body)
    except FormTemplateError as exc:
        raise HTTPException(422, str(exc))
    try:
        return await generate_bundle(
            graph,
            templates,
            service_name=body.service_name,
            resolver=_resolver_for(body),
            service_description=body.service_description,
        )
    except FormGenerationConfigError as exc:
        raise HTTPException(422, str(exc))


@router.post("/generate", response_model=BundleResponse)
@limiter.limit(settings.GENERATE_RATE_LIMIT)
async def generate_forms(request: Request, body: GenerateRequest):
    bundle = await _generate(body)
    return BundleResponse(
        bpmn_xml=bundle.serialized_graph,
        forms=[
            GeneratedFormOut(
                node_id=f.node_id,
                name=f.name,
                filename=f.filename,
                form_id=f.form_id,
                document=f.document,
            )
            for f in bundle.forms
        ],
        manifest=bundle.manifest,
    )


@router.post("/generate/archive")
@limiter.limit(settings.GENERATE_RATE_LIMIT)
async def generate_forms_archive(request: Request, body: GenerateRequest):
    bundle = await _generate(body)
    filename = f"{slugify(body.service_name) or 'manual-service'}-camunda.zip"
    return Response(
        content=build_bundle_archive(bundle),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
