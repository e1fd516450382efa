"""
Vehicle directory access and candidate extraction.

Responsibilities:
- Fetch the complete Fleetio vehicle set (cursor paging, page-number fallback).
- Derive every plausible identifier string from a vehicle record.

Invariant:
Fetching always terminates within `max_pages` requests per strategy and
never returns a partial vehicle set.
"""

import re
from typing import Any, Dict, List, Optional

from .client import FleetioClient, records_of
from .errors import ExternalApiError
from .logger import get_logger
from .normalize import fold, is_blank, sanitize

logger = get_logger()

IDENTIFIER_FIELDS = [
    "vehicle_number",
    "name",
    "external_id",
    "label",
    "identifier",
    "unit",
    "unit_number",
    "number",
]
LABEL_FIELDS = ["vehicle_number", "name", "external_id", "label"]
CUSTOM_FIELD_KEYWORDS = ("unit", "fleet", "number", "bus", "coach")

_DIGITS_ONLY = re.compile(r"^[0-9]+$")


def _raw_identifier_values(vehicle: Dict[str, Any]) -> List[str]:
    values = [vehicle.get(f) for f in IDENTIFIER_FIELDS]

    custom = vehicle.get("custom_fields") or vehicle.get("customFields")
    if isinstance(custom, dict):
        for key, value in custom.items():
            k = str(key).lower()
            if any(word in k for word in CUSTOM_FIELD_KEYWORDS):
                values.append(value)

    return [str(v) for v in values if not is_blank(v)]


def candidate_strings(vehicle: Dict[str, Any]) -> List[str]:
    """Raw, folded and sanitized forms of every identifier on `vehicle`, deduplicated in order."""
    seen = set()
    result = []
    for raw in _raw_identifier_values(vehicle):
        for form in (raw, fold(raw), sanitize(raw)):
            if form and form not in seen:
                seen.add(form)
                result.append(form)
    return result


def vehicle_label(vehicle: Dict[str, Any]) -> str:
    for f in LABEL_FIELDS:
        if not is_blank(vehicle.get(f)):
            return str(vehicle[f])
    return f"Vehicle {vehicle.get('id')}"


def _list_by_cursor(client: FleetioClient) -> List[Dict[str, Any]]:
    vehicles: List[Dict[str, Any]] = []
    cursor = None
    for _ in range(client.config.max_pages):
        params = {"per_page": client.config.page_size}
        if cursor:
            params["start_cursor"] = cursor
        out = client.v1("GET", "/vehicles", "list_vehicles", params=params)
        vehicles.extend(records_of(out))
        cursor = out.get("next_cursor") if isinstance(out, dict) else None
        if not cursor:
            break
    else:
        logger.warning("Vehicle listing hit the page ceiling", max_pages=client.config.max_pages)
    return vehicles


def _list_by_page(client: FleetioClient) -> List[Dict[str, Any]]:
    vehicles: List[Dict[str, Any]] = []
    per_page = client.config.page_size
    for page in range(1, client.config.max_pages + 1):
        out = client.v1(
            "GET", "/vehicles", "list_vehicles_fallback",
            params={"page": page, "per_page": per_page},
        )
        items = records_of(out)
        if not items:
            break
        vehicles.extend(items)
        if len(items) < per_page:
            break
    return vehicles


def list_all_vehicles(client: FleetioClient) -> List[Dict[str, Any]]:
    """
    Fetch every vehicle known to Fleetio.

    Uses cursor paging first and falls back to page-number paging when the
    cursor strategy returns nothing. Both are capped at `config.max_pages`.

    Raises:
        ExternalApiError: On any non-success response; nothing is returned.
    """
    vehicles = _list_by_cursor(client)
    if not vehicles:
        logger.debug("Cursor listing returned no vehicles, trying page numbers")
        vehicles = _list_by_page(client)
    logger.info("Fetched Fleetio vehicles", count=len(vehicles))
    return vehicles


def get_unit_for_vehicle_id(client: FleetioClient, vehicle_id) -> Optional[str]:
    """Reverse lookup: the unit string a Fleetio vehicle id is known by, or None."""
    try:
        v = client.v2("GET", f"/vehicles/{vehicle_id}", "get_vehicle_v2")
        cands = [c for c in candidate_strings(v) if not _DIGITS_ONLY.match(c)]
    except ExternalApiError as e:
        logger.debug("v2 vehicle lookup failed, trying v1", vehicle_id=vehicle_id, status=e.status)
        try:
            v = client.v1("GET", f"/vehicles/{vehicle_id}", "get_vehicle_v1")
        except ExternalApiError as e1:
            logger.warning("Vehicle lookup failed", vehicle_id=vehicle_id, status=e1.status)
            return None
        cands = candidate_strings(v)

    if cands:
        return cands[0]
    for f in ("vehicle_number", "name", "external_id"):
        if not is_blank(v.get(f)):
            return str(v[f])
    return None
