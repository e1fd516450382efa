"""
Vehicle Resolution.

Maps a user-typed unit identifier to zero or one Fleetio vehicle. A match
below the threshold is never picked silently: the outcome instead lists
every vehicle so the caller can choose.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .client import FleetioClient
from .logger import get_logger
from .matching import NO_MATCH, MatchResult, score_vehicle
from .vehicles import list_all_vehicles, vehicle_label

logger = get_logger()

DEFAULT_MIN_SCORE = 80


@dataclass
class ResolutionOutcome:
    vehicle_id: Optional[Any]
    vehicle: Optional[Dict[str, Any]]
    match: MatchResult
    choices: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.vehicle_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vehicle_id": self.vehicle_id,
            "match": self.match.to_dict(),
            "choices": self.choices,
        }


def vehicle_choices(vehicles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{"id": v["id"], "label": vehicle_label(v)} for v in vehicles if v.get("id") is not None]


def resolve_vehicle(
    identifier: str,
    client: Optional[FleetioClient] = None,
    vehicles: Optional[List[Dict[str, Any]]] = None,
    min_score: int = DEFAULT_MIN_SCORE,
) -> ResolutionOutcome:
    """
    Resolve `identifier` against the Fleetio vehicle set.

    Args:
        identifier: Unit number or other identifier typed by the user
        client: Used to fetch vehicles when `vehicles` is not supplied
        vehicles: Optional pre-fetched vehicle list
        min_score: Minimum score accepted as a match (default 80)

    Returns:
        ResolutionOutcome, resolved when the best score >= min_score,
        otherwise carrying `choices` for manual disambiguation.
    """
    if vehicles is None:
        if client is None:
            raise ValueError("resolve_vehicle needs a client when no vehicle list is supplied")
        vehicles = list_all_vehicles(client)

    best_vehicle = None
    best = NO_MATCH
    for v in vehicles:
        # a vehicle without an id cannot be attached to a work order
        if v.get("id") is None:
            continue
        result = score_vehicle(identifier, v)
        if result.score > best.score:
            best_vehicle, best = v, result
            if best.score == 100:
                break

    if best_vehicle is not None and best.score >= min_score:
        logger.info(
            "Resolved vehicle",
            identifier=identifier, vehicle_id=best_vehicle.get("id"),
            score=best.score, reason=best.reason.value,
        )
        return ResolutionOutcome(best_vehicle.get("id"), best_vehicle, best)

    logger.info(
        "Vehicle unresolved",
        identifier=identifier, best_score=best.score, candidates=len(vehicles), min_score=min_score,
    )
    return ResolutionOutcome(None, None, best, vehicle_choices(vehicles))
