"""Turn a Camunda form template into a generated form document.

Templates carry reserved marker strings. Two of them are structural:

* ``NextTaskChooserPlaceholder`` marks the component replaced by the chooser
  components (or removed when the node needs no chooser)
* ``ReferencesPlaceholder`` on its own in a text component marks where the
  reference link list goes (or the component is removed when there are none)

All markers are also replaced textually in every string of the document.
Markers match case-insensitively, as whole words, with or without ``{{ }}``.
"""

from __future__ import annotations

import copy
import html
import re
from dataclasses import dataclass, field
from typing import Any

from formgen.config import settings
from formgen.services.chooser_builder import ChooserOption
from formgen.services.process_graph import NodeKind
from formgen.services.step_context import StepReference

CHOOSER_PLACEHOLDER = "NextTaskChooserPlaceholder"
SERVICE_NAME_PLACEHOLDER = "ManualServiceNamePlaceholder"
STEP_NAME_PLACEHOLDER = "ProcessStepPlaceholder"
STEP_DESCRIPTION_PLACEHOLDER = "ProcessDescriptionPlaceholder"
NEXT_TASK_PLACEHOLDER = "NextTasks?Placeholder"
REFERENCES_PLACEHOLDER = "ReferencesPlaceholder"

# Component fields that may carry the chooser slot marker
_MARKER_FIELDS = ("id", "key", "label", "text")


def _token(name: str) -> re.Pattern[str]:
    return re.compile(rf"(?:\{{\{{\s*)?\b{name}\b(?:\s*\}}\}})?", re.IGNORECASE)


_CHOOSER_RE = _token(CHOOSER_PLACEHOLDER)
_REFERENCES_RE = _token(REFERENCES_PLACEHOLDER)
_TEXT_TOKENS = {
    "service_name": _token(SERVICE_NAME_PLACEHOLDER),
    "step_name": _token(STEP_NAME_PLACEHOLDER),
    "step_description": _token(STEP_DESCRIPTION_PLACEHOLDER),
    "next_task_text": _token(NEXT_TASK_PLACEHOLDER),
    "references_html": _REFERENCES_RE,
}

_NEXT_TASK_SEPARATORS = {
    NodeKind.PARALLEL_GATEWAY: ", ",
    NodeKind.INCLUSIVE_GATEWAY: " • ",
    NodeKind.EXCLUSIVE_GATEWAY: " / ",
}


@dataclass
class FormContext:
    service_name: str = ""
    step_name: str = ""
    step_description: str = ""
    next_task_text: str = ""
    references: list[StepReference] = field(default_factory=list)

    @property
    def references_html(self) -> str:
        return build_references_html(self.references)


def clone_template(template: dict) -> dict:
    """Independent deep copy; the template itself is never mutated."""
    return copy.deepcopy(template)


def build_next_task_text(kind: NodeKind | None, options: list[ChooserOption]) -> str:
    if not options:
        return ""
    separator = _NEXT_TASK_SEPARATORS.get(kind, " / ")
    return separator.join(o.label for o in options)


def build_references_html(references: list[StepReference]) -> str:
    if not references:
        return ""
    items = "".join(
        f'<li><a href="{html.escape(ref.url, quote=True)}" target="_blank" '
        f'rel="noopener noreferrer">{html.escape(ref.name)}</a></li>'
        for ref in references
    )
    return f"<ul>{items}</ul>"


# ── Chooser slot ───────────────────────────────────────────────────────


def _carries_marker(component: Any, pattern: re.Pattern[str]) -> bool:
    if not isinstance(component, dict):
        return False
    return any(
        isinstance(component.get(name), str) and pattern.search(component[name])
        for name in _MARKER_FIELDS
    )


def _is_chooser_slot(component: Any) -> bool:
    if _carries_marker(component, _CHOOSER_RE):
        return True
    # A container whose marker is a plain text child is replaced as a whole
    children = component.get("components") if isinstance(component, dict) else None
    return isinstance(children, list) and any(
        isinstance(c, dict) and c.get("type") == "text" and _carries_marker(c, _CHOOSER_RE)
        for c in children
    )


def _replace_first(
    components: list, is_slot, replacement: list[dict]
) -> tuple[list, bool]:
    """New list with the first slot (depth-first) swapped for ``replacement``."""
    for index, component in enumerate(components):
        if is_slot(component):
            return components[:index] + list(replacement) + components[index + 1:], True
        children = component.get("components") if isinstance(component, dict) else None
        if isinstance(children, list):
            new_children, found = _replace_first(children, is_slot, replacement)
            if found:
                updated = dict(component)
                updated["components"] = new_children
                return components[:index] + [updated] + components[index + 1:], True
    return list(components), False


def apply_chooser_placeholder(
    components: list, chooser_components: list[dict] | None
) -> tuple[list, bool]:
    """Splice the chooser into the slot, or drop the slot when there is none.

    Returns the new component list and whether chooser components were
    injected. A template without a slot comes back unchanged.
    """
    replacement = [copy.deepcopy(c) for c in chooser_components or []]
    new_components, found = _replace_first(components, _is_chooser_slot, replacement)
    return new_components, found and bool(replacement)


# ── References slot ────────────────────────────────────────────────────


def _is_references_text(component: Any) -> bool:
    return (
        isinstance(component, dict)
        and component.get("type") == "text"
        and isinstance(component.get("text"), str)
        and _REFERENCES_RE.fullmatch(component["text"].strip()) is not None
    )


def _references_slot(component: Any) -> str | None:
    """``"text"`` or ``"container"`` when the component is the references slot."""
    if _is_references_text(component):
        return "text"
    children = component.get("components") if isinstance(component, dict) else None
    if isinstance(children, list) and len(children) == 1 and _is_references_text(children[0]):
        return "container"
    return None


def _rewrite_references(component: dict, slot: str, references_html: str) -> dict:
    if slot == "text":
        updated = dict(component)
        updated["text"] = references_html
        return updated
    child = dict(component["components"][0])
    child["text"] = references_html
    updated = dict(component)
    updated["label"] = "References"
    if updated.get("type") not in ("group", "dynamiclist"):
        updated["type"] = "group"
    updated["components"] = [child]
    return updated


def apply_references_placeholder(
    components: list, references: list[StepReference]
) -> list:
    references_html = build_references_html(references)

    def _walk(items: list) -> tuple[list, bool]:
        for index, component in enumerate(items):
            slot = _references_slot(component)
            if slot is not None:
                if references_html:
                    replacement = [_rewrite_references(component, slot, references_html)]
                else:
                    replacement = []
                return items[:index] + replacement + items[index + 1:], True
            children = component.get("components") if isinstance(component, dict) else None
            if isinstance(children, list):
                new_children, found = _walk(children)
                if found:
                    updated = dict(component)
                    updated["components"] = new_children
                    return items[:index] + [updated] + items[index + 1:], True
        return list(items), False

    new_components, _ = _walk(components)
    return new_components


# ── Textual placeholders ───────────────────────────────────────────────


def _substitute(text: str, values: dict[str, str]) -> str:
    for name, pattern in _TEXT_TOKENS.items():
        replacement = values[name]
        text = pattern.sub(lambda _m, r=replacement: r, text)
    return text


def replace_placeholders(document: Any, context: FormContext) -> Any:
    """Replace every textual marker in every string of ``document``."""
    values = {
        "service_name": context.service_name or "",
        "step_name": context.step_name or "",
        "step_description": context.step_description or "",
        "next_task_text": context.next_task_text or "",
        "references_html": context.references_html,
    }

    def _walk(value: Any) -> Any:
        if isinstance(value, str):
            return _substitute(value, values)
        if isinstance(value, list):
            return [_walk(v) for v in value]
        if isinstance(value, dict):
            return {k: _walk(v) for k, v in value.items()}
        return value

    return _walk(document)


def ensure_form_schema(document: dict) -> dict:
    document.setdefault("schemaVersion", settings.FORM_SCHEMA_VERSION)
    document.setdefault("type", "form")
    return document


def materialize_form(
    template: dict,
    context: FormContext,
    chooser_components: list[dict] | None,
    form_id: str,
) -> dict:
    """Build the generated form document for one node."""
    document = clone_template(template)
    components = document.get("components")
    if not isinstance(components, list):
        components = []

    components, injected = apply_chooser_placeholder(components, chooser_components)
    components = apply_references_placeholder(components, context.references)
    document["components"] = components

    if injected:
        # The chooser already tells the user what comes next
        context = FormContext(
            service_name=context.service_name,
            step_name=context.step_name,
            step_description=context.step_description,
            next_task_text="",
            references=context.references,
        )

    document = replace_placeholders(document, context)
    ensure_form_schema(document)
    document["id"] = form_id
    return document
