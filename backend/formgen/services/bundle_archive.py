"""Package a generated bundle as a ZIP ready for Web Modeler / zeebe deploy."""

from __future__ import annotations

import io
import json
import zipfile

from formgen.services.bundle_assembler import Bundle

MAIN_BPMN_FILENAME = "manual-service.bpmn"
MANIFEST_FILENAME = "manifest.json"
FORMS_FOLDER = "forms"


def form_json(document: dict) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)


def build_bundle_archive(bundle: Bundle) -> bytes:
    """ZIP layout: the enriched BPMN, ``forms/<filename>`` and the manifest."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(MAIN_BPMN_FILENAME, bundle.serialized_graph)
        for form in bundle.forms:
            archive.writestr(f"{FORMS_FOLDER}/{form.filename}", form_json(form.document))
        archive.writestr(MANIFEST_FILENAME, json.dumps(bundle.manifest, indent=2, ensure_ascii=False))
    return buffer.getvalue()
