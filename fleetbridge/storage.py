from typing import Any, Dict, Optional

from .database import InspectionLink
from .errors import ValidationError
from .logger import get_logger
from .normalize import is_blank

logger = get_logger()


def _external_id(v: Any) -> Optional[int]:
    if is_blank(v):
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        raise ValidationError([f"external_work_order_id must be numeric, got {v!r}"])


def get_work_order_link(session, inspection_id: str) -> Optional[InspectionLink]:
    return session.get(InspectionLink, str(inspection_id))


def upsert_work_order_link(
    session,
    inspection_id: str,
    internal_work_order_number: Optional[str] = None,
    external_work_order_id: Any = None,
) -> Dict[str, Any]:
    """
    Record work order identifiers against an inspection.

    Each field is updated on its own: a None (or blank) incoming value keeps
    whatever is stored, so a later call carrying only one field never erases
    the other.

    Returns:
        {"status": "new" | "updated" | "no-change", "record": {...}}
    """
    if is_blank(inspection_id):
        raise ValidationError(["inspection_id is required"])

    number = None if is_blank(internal_work_order_number) else str(internal_work_order_number).strip()
    external_id = _external_id(external_work_order_id)

    link = get_work_order_link(session, inspection_id)
    if link is None:
        link = InspectionLink(
            inspection_id=str(inspection_id),
            internal_work_order_number=number,
            external_work_order_id=external_id,
        )
        session.add(link)
        status = "new"
    else:
        status = "no-change"
        if number is not None and number != link.internal_work_order_number:
            link.internal_work_order_number = number
            status = "updated"
        if external_id is not None and external_id != link.external_work_order_id:
            link.external_work_order_id = external_id
            status = "updated"

    session.commit()
    logger.info("Synced work order link", inspection_id=str(inspection_id), status=status)
    return {"status": status, "record": link.to_dict()}
