"""
Work-order saga.

Creates a Fleetio work order for one inspection through a fixed sequence of
dependent remote calls:

    RESOLVING_VEHICLE -> CREATING_WORK_ORDER -> RENDERING_DOCUMENT
    -> REQUESTING_UPLOAD_POLICY -> UPLOADING_DOCUMENT -> ATTACHING_DOCUMENT
    -> RESOLVING_SERVICE_TASK -> ADDING_LINE_ITEM -> RECORDING_METERS -> DONE

Any step may end in FAILED instead, keeping whatever identifiers earlier
steps produced. Fleetio offers no transaction for this workflow, so nothing
is rolled back and nothing is retried: a work order created before a later
failure stays in Fleetio and its id is reported on the SagaAborted error.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Union

from .client import FleetioClient, records_of
from .errors import (
    ExternalApiError,
    FleetbridgeError,
    MalformedResponse,
    SagaAborted,
    ValidationError,
    VehicleUnresolved,
)
from .logger import get_logger
from .matching import MatchResult
from .normalize import fold, is_blank, sanitize_work_order_number
from .render import decode_document, with_inspection_id
from .resolution import DEFAULT_MIN_SCORE, resolve_vehicle
from .schema import validate_work_order_request
from .service_tasks import DEFAULT_SERVICE_TASK_NAME, find_or_create_service_task_id

logger = get_logger()

DOCUMENT_CONTENT_TYPE = "application/pdf"


class SagaStep(IntEnum):
    VALIDATING = 0
    RESOLVING_VEHICLE = 1
    CREATING_WORK_ORDER = 2
    RENDERING_DOCUMENT = 3
    REQUESTING_UPLOAD_POLICY = 4
    UPLOADING_DOCUMENT = 5
    ATTACHING_DOCUMENT = 6
    RESOLVING_SERVICE_TASK = 7
    ADDING_LINE_ITEM = 8
    RECORDING_METERS = 9
    DONE = 10
    FAILED = 99


_SEQUENCE = [s for s in SagaStep if s is not SagaStep.FAILED]

_DOCUMENT_STEPS = (
    SagaStep.RENDERING_DOCUMENT,
    SagaStep.REQUESTING_UPLOAD_POLICY,
    SagaStep.UPLOADING_DOCUMENT,
    SagaStep.ATTACHING_DOCUMENT,
)


def next_step(step: SagaStep) -> SagaStep:
    """The only step that may follow `step`."""
    if step in (SagaStep.DONE, SagaStep.FAILED):
        raise RuntimeError(f"{step.name} is terminal")
    return _SEQUENCE[_SEQUENCE.index(step) + 1]


@dataclass
class WorkOrderSagaState:
    """Progress of one saga run and the identifiers each step produced."""

    inspection_id: str
    step: SagaStep = SagaStep.VALIDATING
    completed: List[SagaStep] = field(default_factory=list)
    failed_at: Optional[SagaStep] = None
    vehicle_id: Any = None
    match: Optional[MatchResult] = None
    work_order_id: Any = None
    work_order_number: Optional[str] = None
    document_url: Optional[str] = None
    service_task_id: Any = None
    line_item_id: Any = None
    meter_entry_ids: Dict[str, Any] = field(default_factory=dict)
    record: Optional[Dict[str, Any]] = None

    def advance(self, step: SagaStep) -> None:
        expected = next_step(self.step)
        if step is not expected:
            raise RuntimeError(f"Illegal saga transition {self.step.name} -> {step.name}")
        self.completed.append(self.step)
        self.step = step

    def fail(self) -> None:
        if self.step is SagaStep.FAILED:
            return
        self.failed_at = self.step
        self.step = SagaStep.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inspection_id": self.inspection_id,
            "step": self.step.name,
            "failed_at": self.failed_at.name if self.failed_at is not None else None,
            "completed": [s.name for s in self.completed],
            "vehicle_id": self.vehicle_id,
            "work_order_id": self.work_order_id,
            "work_order_number": self.work_order_number,
            "document_url": self.document_url,
            "service_task_id": self.service_task_id,
            "line_item_id": self.line_item_id,
            "meter_entry_ids": dict(self.meter_entry_ids),
        }


def _number_or_none(v: Any) -> Optional[float]:
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    try:
        n = float(str(v).replace(",", "").strip())
    except ValueError:
        return None
    return int(n) if n.is_integer() else n


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if not is_blank(data.get(k)):
            return data[k]
    return None


@dataclass
class WorkOrderRequest:
    inspection_id: str
    filename: str
    render_target: Optional[str] = None
    render_data: Dict[str, Any] = field(default_factory=dict)
    vehicle_id: Any = None
    unit_identifier: Optional[str] = None
    service_task_name: Optional[str] = None
    document_base64: Optional[str] = None
    odometer: Any = None
    inspection_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkOrderRequest":
        """Build a request from snake_case or the inspection app's camelCase payload."""
        render_data = data.get("render_data", data.get("data")) or {}
        if not isinstance(render_data, dict):
            render_data = {}
        return cls(
            inspection_id=_first_present(data, "inspection_id", "inspectionId"),
            filename=_first_present(data, "filename"),
            render_target=_first_present(data, "render_target", "reportUrl"),
            render_data=render_data,
            vehicle_id=_first_present(data, "vehicle_id", "vehicleId"),
            unit_identifier=_first_present(data, "unit_identifier", "unitNumber"),
            service_task_name=_first_present(data, "service_task_name", "serviceTaskName"),
            document_base64=_first_present(data, "document_base64", "pdfBase64"),
            odometer=_first_present(data, "odometer")
            if not is_blank(data.get("odometer"))
            else _first_present(render_data, "odometer", "odometerStart", "startOdometer"),
            inspection_date=_first_present(data, "inspection_date")
            or _first_present(render_data, "inspectionDate", "dateInspected", "date_inspected"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WorkOrderResult:
    work_order_id: Any
    work_order_number: Optional[str]
    work_order_url: str
    vehicle_id: Any = None
    document_url: Optional[str] = None
    service_task_id: Any = None
    meter_entry_ids: Dict[str, Any] = field(default_factory=dict)
    record: Optional[Dict[str, Any]] = None
    reused: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, **asdict(self)}


@dataclass
class DisambiguationNeeded:
    """No vehicle matched well enough; resubmit with one of `choices` as vehicle_id."""

    identifier: str
    choices: List[Dict[str, Any]]
    match: Optional[MatchResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": "vehicle_not_found",
            "message": f'Could not find a Fleetio vehicle matching unit "{self.identifier}". Pick one below.',
            "match": self.match.to_dict() if self.match else None,
            "choices": self.choices,
        }


def parse_inspection_date(value: Optional[str], today: date) -> date:
    """Accept YYYY-MM-DD or MM/DD/YYYY; anything else means `today`."""
    if value:
        for fmt in ("%Y-%m-%d", "%m/%d/%Y"):
            try:
                return datetime.strptime(value.strip(), fmt).date()
            except ValueError:
                continue
    return today


def inspection_timestamp(d: date) -> str:
    # 15:00Z keeps the date from rolling back a day in North American time zones
    return f"{d.isoformat()}T15:00:00Z"


def get_open_status_id(client: FleetioClient) -> Any:
    """Id of the "Open" work-order status, falling back to the account's default status."""
    out = client.v1("GET", "/work_order_statuses", "get_open_status", params={"per_page": 100})
    statuses = records_of(out)
    status = next((s for s in statuses if fold(s.get("name")) == "open"), None)
    if status is None:
        status = next((s for s in statuses if s.get("is_default")), None)
    if not status or not status.get("id"):
        raise MalformedResponse("get_open_status", 'Could not resolve "Open" work order status', out)
    return status["id"]


@dataclass
class _Run:
    request: WorkOrderRequest
    state: WorkOrderSagaState
    issued_on: date
    document: Optional[bytes] = None
    policy: Dict[str, str] = field(default_factory=dict)


class WorkOrderSaga:
    """
    Orchestrates the creation of one Fleetio work order per call to run().

    The saga holds no state between runs, so one instance can serve
    concurrent inspections.
    """

    def __init__(
        self,
        client: FleetioClient,
        renderer=None,
        min_score: int = DEFAULT_MIN_SCORE,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.config = client.config
        self.renderer = renderer
        self.min_score = min_score
        self.today = today
        self._handlers = [
            (SagaStep.RESOLVING_VEHICLE, self._resolve_vehicle),
            (SagaStep.CREATING_WORK_ORDER, self._create_work_order),
            (SagaStep.RENDERING_DOCUMENT, self._render_document),
            (SagaStep.REQUESTING_UPLOAD_POLICY, self._request_upload_policy),
            (SagaStep.UPLOADING_DOCUMENT, self._upload_document),
            (SagaStep.ATTACHING_DOCUMENT, self._attach_document),
            (SagaStep.RESOLVING_SERVICE_TASK, self._resolve_service_task),
            (SagaStep.ADDING_LINE_ITEM, self._add_line_item),
            (SagaStep.RECORDING_METERS, self._record_meters),
        ]

    def run(self, request: WorkOrderRequest) -> Union[WorkOrderResult, DisambiguationNeeded]:
        """
        Run the saga for `request`.

        Returns:
            WorkOrderResult when every step succeeded, or DisambiguationNeeded
            when the unit identifier did not resolve (no work order is created).

        Raises:
            ValidationError: Preconditions failed; no remote call was made.
            SagaAborted: A step failed; carries the step and partial state.
        """
        document = self._check_preconditions(request)

        state = WorkOrderSagaState(inspection_id=str(request.inspection_id))
        run = _Run(
            request=request,
            state=state,
            issued_on=parse_inspection_date(request.inspection_date, self.today()),
            document=document,
        )
        logger.record_saga_attempt()
        logger.info("Starting work order saga", inspection_id=state.inspection_id)

        try:
            for step, handler in self._handlers:
                state.advance(step)
                logger.debug("Saga step", inspection_id=state.inspection_id, step=step.name)
                handler(run)
        except VehicleUnresolved as e:
            logger.record_saga_disambiguation()
            return DisambiguationNeeded(e.identifier, e.choices, e.match)
        except FleetbridgeError as e:
            raise self._abort(state, e) from e

        state.advance(SagaStep.DONE)
        logger.record_saga_completed()
        logger.info(
            "Work order saga complete",
            inspection_id=state.inspection_id,
            work_order_id=state.work_order_id,
        )
        return WorkOrderResult(
            work_order_id=state.work_order_id,
            work_order_number=state.work_order_number,
            work_order_url=self.config.work_order_url(state.work_order_id, state.work_order_number),
            vehicle_id=state.vehicle_id,
            document_url=state.document_url,
            service_task_id=state.service_task_id,
            meter_entry_ids=dict(state.meter_entry_ids),
            record=state.record,
        )

    def attach_to_existing(self, request: WorkOrderRequest, work_order_id: Any) -> WorkOrderResult:
        """
        Render (or decode) the request's document and attach it to a work
        order created by an earlier run.

        Only the document steps run; no vehicle lookup, no new work order,
        no line item. Failures raise SagaAborted like run() does.
        """
        document = self._check_preconditions(request)

        state = WorkOrderSagaState(
            inspection_id=str(request.inspection_id),
            step=SagaStep.CREATING_WORK_ORDER,
            completed=[SagaStep.VALIDATING, SagaStep.RESOLVING_VEHICLE],
            work_order_id=work_order_id,
        )
        run = _Run(
            request=request,
            state=state,
            issued_on=parse_inspection_date(request.inspection_date, self.today()),
            document=document,
        )
        logger.record_saga_attempt()
        logger.info(
            "Attaching document to existing work order",
            inspection_id=state.inspection_id,
            work_order_id=work_order_id,
        )

        try:
            for step, handler in self._handlers:
                if step in _DOCUMENT_STEPS:
                    state.advance(step)
                    handler(run)
        except FleetbridgeError as e:
            raise self._abort(state, e) from e

        logger.record_saga_completed()
        return WorkOrderResult(
            work_order_id=work_order_id,
            work_order_number=None,
            work_order_url=self.config.work_order_url(work_order_id),
            document_url=state.document_url,
            reused=True,
        )

    def _abort(self, state: WorkOrderSagaState, e: FleetbridgeError) -> SagaAborted:
        failed = state.step
        state.fail()
        logger.record_saga_failure(failed.name, type(e).__name__)
        logger.error(
            "Work order saga aborted",
            inspection_id=state.inspection_id,
            step=failed.name,
            status=getattr(e, "status", None),
            error=str(e),
            work_order_id=state.work_order_id,
        )
        return SagaAborted(failed, state, e)

    def _check_preconditions(self, request: WorkOrderRequest) -> Optional[bytes]:
        errors = validate_work_order_request(request.to_dict())
        if not errors and is_blank(request.document_base64) and self.renderer is None:
            errors.append("No document renderer configured and no document_base64 supplied")
        if errors:
            raise ValidationError(errors)
        if is_blank(request.document_base64):
            return None
        return decode_document(request.document_base64)

    # Steps

    def _resolve_vehicle(self, run: _Run) -> None:
        request, state = run.request, run.state
        if not is_blank(request.vehicle_id):
            state.vehicle_id = request.vehicle_id
            return
        identifier = request.unit_identifier or ""
        outcome = resolve_vehicle(identifier, client=self.client, min_score=self.min_score)
        if not outcome.resolved:
            raise VehicleUnresolved(identifier, outcome.choices, outcome.match)
        state.vehicle_id = outcome.vehicle_id
        state.match = outcome.match

    def _create_work_order(self, run: _Run) -> None:
        state = run.state
        status_id = get_open_status_id(self.client)
        issued_at = inspection_timestamp(run.issued_on)
        created = self.client.v2(
            "POST", "/work_orders", "create_work_order",
            json={
                "vehicle_id": state.vehicle_id,
                "work_order_status_id": status_id,
                "issued_at": issued_at,
                "started_at": issued_at,
            },
            headers={"Idempotency-Key": f"inspection:{state.inspection_id}"},
        )
        work_order_id = created.get("id") if isinstance(created, dict) else None
        if not work_order_id:
            raise MalformedResponse("create_work_order", "No id returned", created)
        state.work_order_id = work_order_id
        state.record = created

        number = sanitize_work_order_number(created.get("number"))
        if not number:
            fetched = self.client.v2("GET", f"/work_orders/{work_order_id}", "fetch_work_order_number")
            if isinstance(fetched, dict):
                number = sanitize_work_order_number(fetched.get("number"))
                state.record = fetched
        state.work_order_number = number or None
        logger.info(
            "Created work order",
            inspection_id=state.inspection_id,
            work_order_id=work_order_id,
            work_order_number=state.work_order_number,
        )

    def _render_document(self, run: _Run) -> None:
        if run.document is not None:
            return
        request = run.request
        target = with_inspection_id(request.render_target, request.inspection_id)
        run.document = self.renderer.render(target, request.filename, request.render_data)

    def _request_upload_policy(self, run: _Run) -> None:
        out = self.client.v1(
            "POST", "/uploads/policies", "get_upload_policy",
            json={"filename": run.request.filename, "file_content_type": DOCUMENT_CONTENT_TYPE},
        )
        out = out if isinstance(out, dict) else {}
        if not all(out.get(k) for k in ("policy", "signature", "path")):
            raise MalformedResponse(
                "get_upload_policy", "Policy response missing policy/signature/path", json.dumps(out)[:500]
            )
        run.policy = {k: out[k] for k in ("policy", "signature", "path")}

    def _upload_document(self, run: _Run) -> None:
        params = dict(run.policy)
        params["filename"] = run.request.filename
        out = self.client.upload(
            self.config.upload_endpoint, params, run.document, "upload_document",
            content_type=DOCUMENT_CONTENT_TYPE,
        )
        if isinstance(out, str):
            try:
                out = json.loads(out)
            except ValueError:
                out = None
        url = out.get("url") if isinstance(out, dict) else None
        if not url:
            raise MalformedResponse("upload_document", "Upload response missing url", out)
        run.state.document_url = url

    def _attach_document(self, run: _Run) -> None:
        state = run.state
        self.client.v2(
            "PATCH", f"/work_orders/{state.work_order_id}", "attach_document",
            json={"documents_attributes": [{"name": run.request.filename, "file_url": state.document_url}]},
        )

    def _task_name(self, request: WorkOrderRequest) -> str:
        return request.service_task_name or DEFAULT_SERVICE_TASK_NAME

    def _resolve_service_task(self, run: _Run) -> None:
        run.state.service_task_id = find_or_create_service_task_id(self.client, self._task_name(run.request))

    def _add_line_item(self, run: _Run) -> None:
        state = run.state
        out = self.client.v2(
            "POST", f"/work_orders/{state.work_order_id}/work_order_line_items", "create_line_item",
            json={
                "type": "WorkOrderServiceTaskLineItem",
                "item_type": "ServiceTask",
                "item_id": state.service_task_id,
                "description": self._task_name(run.request),
            },
        )
        state.line_item_id = out.get("id") if isinstance(out, dict) else None

    def _record_meters(self, run: _Run) -> None:
        odometer = _number_or_none(run.request.odometer)
        if odometer is None:
            return
        state = run.state
        for category in ("starting", "ending"):
            out = self.client.v1(
                "POST", "/meter_entries", f"create_{category}_meter",
                json={
                    "vehicle_id": state.vehicle_id,
                    "value": odometer,
                    "date": run.issued_on.isoformat(),
                    "category": category,
                    "meterable_type": "WorkOrder",
                    "meterable_id": state.work_order_id,
                },
            )
            state.meter_entry_ids[category] = out.get("id") if isinstance(out, dict) else None

        patch = {}
        if state.meter_entry_ids.get("starting"):
            patch["starting_meter_entry_id"] = state.meter_entry_ids["starting"]
        if state.meter_entry_ids.get("ending"):
            patch["ending_meter_entry_id"] = state.meter_entry_ids["ending"]
        if not patch:
            return
        try:
            self.client.v2("PATCH", f"/work_orders/{state.work_order_id}", "link_meters_to_work_order", json=patch)
        except ExternalApiError as e:
            # Not every account accepts explicit meter links; the entries already exist.
            logger.warning(
                "Linking meter entries to work order failed",
                work_order_id=state.work_order_id, status=e.status, error=str(e),
            )
