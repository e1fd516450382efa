"""
Error taxonomy for the work-order integration.

Every failure raised by fleetbridge derives from FleetbridgeError so the
CLI and callers can catch one type and still read the technical detail
(failed step, HTTP status, response body) needed for manual remediation.
"""

from typing import Any, Dict, List, Optional


class FleetbridgeError(Exception):
    """Base class for all fleetbridge errors."""
    pass


class ConfigError(FleetbridgeError):
    """Raised when required configuration is missing or invalid."""
    pass


class ValidationError(FleetbridgeError):
    """Missing or invalid input, raised before any external call."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid request")


class VehicleUnresolved(FleetbridgeError):
    """No vehicle cleared the match threshold; the caller has to pick one."""

    def __init__(self, identifier: str, choices: List[Dict[str, Any]], match=None):
        self.identifier = identifier
        self.choices = choices
        self.match = match
        super().__init__(
            f'Could not find a Fleetio vehicle matching unit "{identifier}". Pick one of {len(choices)} vehicles.'
        )


class ExternalApiError(FleetbridgeError):
    """Non-success response (or transport failure) from a remote service."""

    def __init__(self, step: str, status: Optional[int], body: str = "", message: Optional[str] = None):
        self.step = step
        self.status = status
        self.body = body or ""
        if message is None:
            message = f"[{step}] request failed ({status if status is not None else 'no response'}): {self.body[:500]}"
        super().__init__(message)


class MalformedResponse(FleetbridgeError):
    """Success response that lacks a field the next step depends on."""

    def __init__(self, step: str, message: str, details: Any = None):
        self.step = step
        self.details = details
        super().__init__(f"[{step}] {message}")


class SagaAborted(FleetbridgeError):
    """
    A work-order saga stopped part way through.

    Carries the step that failed, the partial saga state (so identifiers
    already produced, notably the work-order id, are not lost) and the
    underlying cause.
    """

    def __init__(self, step, state, cause: Exception):
        self.step = step
        self.state = state
        self.cause = cause
        super().__init__(f"Work order saga aborted at {step.name}: {cause}")

    @property
    def status(self) -> Optional[int]:
        return getattr(self.cause, "status", None)

    @property
    def details(self) -> Any:
        if isinstance(self.cause, ExternalApiError):
            return self.cause.body
        return getattr(self.cause, "details", None)

    @property
    def work_order_id(self):
        return self.state.work_order_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": str(self.cause),
            "error_type": type(self.cause).__name__,
            "step": self.step.name,
            "status": self.status,
            "details": self.details,
            "partial": self.state.to_dict(),
        }
