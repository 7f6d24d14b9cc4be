"""Step descriptions and reference documents shown on generated forms.

A resolver is any ``async (node) -> StepContext`` callable. It may do I/O
(database, MDS lookups); the bundle assembler awaits it node by node and falls
back to an empty context when it raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from formgen.services.process_graph import GraphNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepReference:
    name: str
    url: str


@dataclass(frozen=True)
class StepContext:
    step_description: str = ""
    references: list[StepReference] = field(default_factory=list)


StepContextResolver = Callable[[GraphNode], Awaitable[StepContext]]


def references_from_attributes(attributes: Mapping[str, str]) -> list[StepReference]:
    """MDS references stored on the node (``mds:sopName``/``mds:sopUrl``, ``mds:refs``)."""
    refs: list[StepReference] = []
    if attributes.get("sopName") and attributes.get("sopUrl"):
        refs.append(StepReference(name=str(attributes["sopName"]), url=str(attributes["sopUrl"])))

    raw = attributes.get("refs")
    if raw:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed mds:refs attribute: %r", raw)
            parsed = []
        if isinstance(parsed, list):
            for item in parsed:
                if isinstance(item, dict) and item.get("name") and item.get("url"):
                    refs.append(StepReference(name=str(item["name"]), url=str(item["url"])))
    return refs


async def attribute_resolver(node: GraphNode) -> StepContext:
    """Context read from the diagram itself: documentation + MDS attributes."""
    return StepContext(
        step_description=(node.documentation or "").strip(),
        references=references_from_attributes(node.attributes),
    )


def mapping_resolver(
    contexts: Mapping[str, StepContext],
    fallback: StepContextResolver | None = attribute_resolver,
) -> StepContextResolver:
    """Resolver backed by a ``node id -> StepContext`` mapping."""

    async def _resolve(node: GraphNode) -> StepContext:
        if node.id in contexts:
            return contexts[node.id]
        if fallback is not None:
            return await fallback(node)
        return StepContext()

    return _resolve
