"""Load the two Camunda form template flavors."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

START_TEMPLATE_NAME = "START_NODE"
TASK_TEMPLATE_NAME = "TASK_NODE"


class FormTemplateError(Exception):
    """Raised when a form template is missing or not a valid form document."""


@dataclass(frozen=True)
class FormTemplates:
    first_step: dict
    next_step: dict


def validate_template(name: str, template: object) -> dict:
    if not isinstance(template, dict):
        raise FormTemplateError(f"Form template {name} must be a JSON object")
    if not isinstance(template.get("components", []), list):
        raise FormTemplateError(f"Form template {name} has a non-list 'components' field")
    return template


def _read_template(directory: Path, name: str) -> dict:
    path = directory / f"{name}.form"
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise FormTemplateError(f"Form template {name} not found at {path}") from exc
    try:
        template = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FormTemplateError(f"Form template {name} is not valid JSON: {exc}") from exc
    return validate_template(name, template)


def load_form_templates(directory: str | Path) -> FormTemplates:
    """Read ``START_NODE.form`` and ``TASK_NODE.form`` from ``directory``."""
    directory = Path(directory)
    templates = FormTemplates(
        first_step=_read_template(directory, START_TEMPLATE_NAME),
        next_step=_read_template(directory, TASK_TEMPLATE_NAME),
    )
    logger.debug("Loaded form templates from %s", directory)
    return templates
