from __future__ import annotations

from pydantic import BaseModel, Field


class ReferenceIn(BaseModel):
    name: str
    url: str


class StepContextIn(BaseModel):
    """Description and reference documents for one BPMN node."""

    step_description: str = ""
    references: list[ReferenceIn] = []


class TemplatesIn(BaseModel):
    first_step: dict
    next_step: dict


class GenerateRequest(BaseModel):
    service_name: str = Field(min_length=1)
    # shown on the start form when the start event has no description of its own
    service_description: str = ""
    bpmn_xml: str = Field(min_length=1)
    templates: TemplatesIn | None = None
    # node id -> context; nodes not listed fall back to the diagram's documentation
    step_contexts: dict[str, StepContextIn] | None = None


class GeneratedFormOut(BaseModel):
    node_id: str
    name: str
    filename: str
    form_id: str
    document: dict


class BundleResponse(BaseModel):
    bpmn_xml: str
    forms: list[GeneratedFormOut]
    manifest: dict
