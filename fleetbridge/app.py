import argparse
import base64
import json
import sys
from pathlib import Path
from typing import Optional, Union

from . import __version__
from .client import FleetioClient
from .config import FleetioConfig, db_path_from_env
from .database import init_database, get_session
from .env import load_env
from .errors import FleetbridgeError, SagaAborted, ValidationError
from .logger import get_logger
from .render import HttpDocumentRenderer
from .resolution import DEFAULT_MIN_SCORE, resolve_vehicle
from .saga import DisambiguationNeeded, WorkOrderRequest, WorkOrderResult, WorkOrderSaga
from .storage import get_work_order_link, upsert_work_order_link
from .vehicles import get_unit_for_vehicle_id

logger = get_logger()

EXIT_VALIDATION = 2
EXIT_DISAMBIGUATION = 3


def create_work_order(
    request: WorkOrderRequest,
    saga: WorkOrderSaga,
    session=None,
) -> Union[WorkOrderResult, DisambiguationNeeded]:
    """
    Create a Fleetio work order for an inspection and record it locally.

    When `session` is given, an inspection that already has a Fleetio work
    order gets its document attached to that work order instead of a new
    one being created, and the new (or partially created) work order id is
    written back afterwards.
    """
    if session is not None and request.inspection_id:
        existing = get_work_order_link(session, request.inspection_id)
        if existing is not None and existing.external_work_order_id:
            logger.info(
                "Reusing existing work order",
                inspection_id=str(request.inspection_id),
                work_order_id=existing.external_work_order_id,
            )
            return saga.attach_to_existing(request, existing.external_work_order_id)

    try:
        result = saga.run(request)
    except SagaAborted as e:
        if session is not None and e.work_order_id:
            upsert_work_order_link(session, request.inspection_id, external_work_order_id=e.work_order_id)
        raise

    if session is not None and isinstance(result, WorkOrderResult):
        upsert_work_order_link(session, request.inspection_id, external_work_order_id=result.work_order_id)
    return result


def _load_config() -> FleetioConfig:
    try:
        return FleetioConfig.from_env()
    except FleetbridgeError as e:
        raise SystemExit(str(e))


def _print_json(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


def _open_session(db_path: Path):
    init_database(db_path)
    return get_session(db_path)


def _db_path(args: argparse.Namespace) -> Path:
    return Path(args.db) if args.db else db_path_from_env()


def cmd_resolve(args: argparse.Namespace) -> None:
    client = None
    vehicles = None
    if args.vehicles:
        with Path(args.vehicles).open("r", encoding="utf-8") as f:
            vehicles = json.load(f)
    else:
        client = FleetioClient(_load_config())
    try:
        outcome = resolve_vehicle(args.unit, client=client, vehicles=vehicles, min_score=args.min_score)
    except FleetbridgeError as e:
        raise SystemExit(f"Fleetio error: {e}")
    _print_json(outcome.to_dict())
    if not outcome.resolved:
        raise SystemExit(EXIT_DISAMBIGUATION)


def cmd_unit_for_vehicle(args: argparse.Namespace) -> None:
    client = FleetioClient(_load_config())
    unit = get_unit_for_vehicle_id(client, args.vehicle_id)
    if unit is None:
        raise SystemExit(f"No unit found for vehicle {args.vehicle_id}")
    print(unit)


def cmd_create_work_order(args: argparse.Namespace) -> None:
    config = _load_config()
    if args.input:
        input_path = Path(args.input)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        with input_path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    else:
        payload = {}
    for key in ("inspection_id", "filename", "render_target", "vehicle_id", "unit_identifier",
                "service_task_name", "odometer", "inspection_date"):
        value = getattr(args, key, None)
        if value is not None:
            payload[key] = value
    if args.document:
        payload["document_base64"] = base64.b64encode(Path(args.document).read_bytes()).decode("ascii")
    if not payload.get("filename") and payload.get("inspection_id"):
        payload["filename"] = f"inspection_{payload['inspection_id']}.pdf"

    request = WorkOrderRequest.from_dict(payload)
    renderer = HttpDocumentRenderer(config.print_url) if config.print_url else None
    saga = WorkOrderSaga(FleetioClient(config), renderer=renderer, min_score=args.min_score)
    session = _open_session(Path(args.db) if args.db else config.db_path)

    try:
        result = create_work_order(request, saga, session=session)
    except ValidationError as e:
        print("Invalid:")
        for err in e.errors:
            print(f" - {err}")
        raise SystemExit(EXIT_VALIDATION)
    except SagaAborted as e:
        _print_json(e.to_dict())
        raise SystemExit(1)
    finally:
        session.close()
        logger.log_metrics_summary()

    _print_json(result.to_dict())
    if isinstance(result, DisambiguationNeeded):
        raise SystemExit(EXIT_DISAMBIGUATION)


def cmd_update_work_order(args: argparse.Namespace) -> None:
    session = _open_session(_db_path(args))
    try:
        outcome = upsert_work_order_link(
            session,
            args.inspection_id,
            internal_work_order_number=args.internal_number,
            external_work_order_id=args.work_order_id,
        )
    except ValidationError as e:
        raise SystemExit(str(e))
    finally:
        session.close()
    print(f"Status: {outcome['status']}")
    _print_json(outcome["record"])


def cmd_show_link(args: argparse.Namespace) -> None:
    session = _open_session(_db_path(args))
    try:
        link = get_work_order_link(session, args.inspection_id)
        if link is None:
            print(f"No work order recorded for inspection {args.inspection_id}")
            return
        _print_json(link.to_dict())
    finally:
        session.close()


def cmd_init_db(args: argparse.Namespace) -> None:
    db_path = _db_path(args)
    init_database(db_path)
    print(f"Initialized {db_path}")


def main(argv: Optional[list] = None):
    # Load .env if present (FLEETIO_API_TOKEN, FLEETIO_ACCOUNT_TOKEN, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="fleetbridge", description="Inspection to Fleetio work order bridge")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")

    res = subparsers.add_parser("resolve", help="Resolve a unit identifier to a Fleetio vehicle")
    res.add_argument("--unit", required=True, help="Unit number or other vehicle identifier")
    res.add_argument("--vehicles", help="Optional JSON file with a pre-fetched vehicle list")
    res.add_argument("--min-score", type=int, default=DEFAULT_MIN_SCORE, help="Minimum accepted score (default 80)")
    res.set_defaults(func=cmd_resolve)

    ufv = subparsers.add_parser("unit-for-vehicle", help="Show the unit string a Fleetio vehicle id is known by")
    ufv.add_argument("--vehicle-id", required=True, help="Fleetio vehicle id")
    ufv.set_defaults(func=cmd_unit_for_vehicle)

    cwo = subparsers.add_parser("create-work-order", help="Create a Fleetio work order for an inspection")
    cwo.add_argument("--input", help="JSON request payload (fields below override it)")
    cwo.add_argument("--inspection-id", dest="inspection_id", help="Inspection id")
    cwo.add_argument("--unit", dest="unit_identifier", help="Unit number typed on the inspection")
    cwo.add_argument("--vehicle-id", dest="vehicle_id", help="Explicit Fleetio vehicle id (skips matching)")
    cwo.add_argument("--filename", help="Document filename (default: inspection_<id>.pdf)")
    cwo.add_argument("--render-target", dest="render_target", help="URL of the printable inspection page")
    cwo.add_argument("--document", help="Path to an already rendered PDF")
    cwo.add_argument("--service-task", dest="service_task_name", help="Service task name for the line item")
    cwo.add_argument("--odometer", help="Odometer reading to record as meter entries")
    cwo.add_argument("--inspection-date", dest="inspection_date", help="YYYY-MM-DD or MM/DD/YYYY")
    cwo.add_argument("--min-score", type=int, default=DEFAULT_MIN_SCORE, help="Minimum accepted match score")
    cwo.add_argument("--db", help="SQLite database for inspection links (default: FLEETBRIDGE_DB)")
    cwo.set_defaults(func=cmd_create_work_order)

    upd = subparsers.add_parser("update-work-order", help="Record work order identifiers on an inspection")
    upd.add_argument("--inspection-id", required=True, help="Inspection id")
    upd.add_argument("--internal-number", help="Internal work order number")
    upd.add_argument("--work-order-id", help="Fleetio work order id")
    upd.add_argument("--db", help="SQLite database (default: FLEETBRIDGE_DB or data/fleetbridge.db)")
    upd.set_defaults(func=cmd_update_work_order)

    shw = subparsers.add_parser("show-link", help="Show work order identifiers recorded for an inspection")
    shw.add_argument("--inspection-id", required=True, help="Inspection id")
    shw.add_argument("--db", help="SQLite database (default: FLEETBRIDGE_DB or data/fleetbridge.db)")
    shw.set_defaults(func=cmd_show_link)

    ini = subparsers.add_parser("init-db", help="Create the inspection link database")
    ini.add_argument("--db", help="SQLite database (default: FLEETBRIDGE_DB or data/fleetbridge.db)")
    ini.set_defaults(func=cmd_init_db)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help(sys.stdout)


if __name__ == "__main__":
    main()
