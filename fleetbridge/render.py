"""
Document rendering adapter.

The renderer itself is an external print service: it takes a render target
(the URL of the inspection's printable page) and answers with the finished
PDF bytes. Callers may also hand over a document they already rendered,
as base64.
"""

import base64
import binascii
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests

from .errors import ExternalApiError, MalformedResponse, ValidationError
from .logger import get_logger

logger = get_logger()


def decode_document(raw: str) -> bytes:
    """Decode a base64 document, with or without a `data:...;base64,` prefix."""
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(["Field 'document_base64' is not valid base64"])
    if not data:
        raise ValidationError(["Field 'document_base64' decodes to an empty document"])
    return data


def with_inspection_id(target: str, inspection_id: Any) -> str:
    """Add `id=<inspection_id>` to the render target's query unless it already has one."""
    parts = urlparse(target)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if any(k == "id" for k, _ in query) or inspection_id is None:
        return target
    query.append(("id", str(inspection_id)))
    return urlunparse(parts._replace(query=urlencode(query)))


class HttpDocumentRenderer:
    """Renders documents through an HTTP print endpoint."""

    def __init__(self, print_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        self.print_url = print_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def render(self, target: str, filename: str, data: Optional[Dict[str, Any]] = None) -> bytes:
        logger.debug("Rendering document", target=target, filename=filename)
        try:
            resp = self.session.post(
                self.print_url,
                json={"url": target, "filename": filename, "data": data or {}},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise ExternalApiError("render_document", None, f"Printer timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise ExternalApiError("render_document", None, str(e))

        if not resp.ok:
            raise ExternalApiError(
                "render_document", resp.status_code, resp.text or "",
                message=f"[render_document] Printer failed: {resp.status_code} {(resp.text or '')[:500]}",
            )
        if not resp.content:
            raise MalformedResponse("render_document", "Printer returned an empty document")
        return resp.content
