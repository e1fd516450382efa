from typing import Any

from .client import FleetioClient, records_of
from .errors import MalformedResponse
from .logger import get_logger
from .normalize import fold

logger = get_logger()

DEFAULT_SERVICE_TASK_NAME = "Schedule 4 Inspection (& EEPOC FMCSA 396.3)"


def find_service_task_id(client: FleetioClient, name: str) -> Any:
    """Id of the first service task whose name equals `name` ignoring case, or None."""
    wanted = fold(name)
    cursor = None
    for _ in range(client.config.max_pages):
        params = {"per_page": client.config.page_size}
        if cursor:
            params["start_cursor"] = cursor
        out = client.v1("GET", "/service_tasks", "list_service_tasks", params=params)
        for task in records_of(out):
            if fold(task.get("name")) == wanted and task.get("id"):
                return task["id"]
        cursor = out.get("next_cursor") if isinstance(out, dict) else None
        if not cursor:
            break
    return None


def find_or_create_service_task_id(client: FleetioClient, name: str) -> Any:
    """
    Find a service task by name, creating it when none exists.

    No lock is taken: two first-time callers racing on a new name can
    both create it.

    Raises:
        MalformedResponse: If the creation response carries no id.
    """
    task_id = find_service_task_id(client, name)
    if task_id:
        logger.debug("Found service task", name=name, service_task_id=task_id)
        return task_id

    created = client.v1("POST", "/service_tasks", "create_service_task", json={"name": name})
    task_id = created.get("id") if isinstance(created, dict) else None
    if not task_id:
        raise MalformedResponse("create_service_task", "Service task creation returned no id", created)
    logger.info("Created service task", name=name, service_task_id=task_id)
    return task_id
