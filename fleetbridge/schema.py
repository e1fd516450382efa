from datetime import datetime
from typing import Any, Dict, List

REQUIRED_STR_FIELDS = ["inspection_id", "filename"]
OPTIONAL_STR_FIELDS = [
    "render_target",
    "unit_identifier",
    "service_task_name",
    "document_base64",
    "inspection_date",
]


def _is_non_empty(v: Any) -> bool:
    return v is not None and str(v).strip() != ""


def _valid_date(v: str) -> bool:
    s = v.strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y"):
        try:
            datetime.strptime(s, fmt)
            return True
        except ValueError:
            continue
    return False


def _numeric(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    try:
        float(str(v).replace(",", "").strip())
        return True
    except ValueError:
        return False


def validate_work_order_request(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Checked before any remote call is made.
    """
    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if not _is_non_empty(data.get(f)):
            errors.append(f"Missing required field: {f}")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if not _is_non_empty(data.get("render_target")) and not _is_non_empty(data.get("document_base64")):
        errors.append("Missing document: provide render_target or document_base64")

    if _is_non_empty(data.get("odometer")) and not _numeric(data["odometer"]):
        errors.append("Field 'odometer' must be a number if provided")

    date = data.get("inspection_date")
    if isinstance(date, str) and date.strip() and not _valid_date(date):
        errors.append("Field 'inspection_date' must be YYYY-MM-DD or MM/DD/YYYY")

    render_data = data.get("render_data")
    if render_data is not None and not isinstance(render_data, dict):
        errors.append("Field 'render_data' must be an object if provided")

    return errors
