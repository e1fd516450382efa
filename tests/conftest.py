"""
Pytest configuration and shared fixtures.
"""

import json
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

import pytest

# Keep module-level loggers from writing into the working tree.
os.environ.setdefault("FLEETBRIDGE_LOG_DIR", tempfile.mkdtemp(prefix="fleetbridge-logs-"))

from fleetbridge.client import FleetioClient  # noqa: E402
from fleetbridge.config import FleetioConfig  # noqa: E402

V1 = "https://fleet.test/api/v1"
V2 = "https://fleet.test/api/v2"
UPLOAD_URL = "https://upload.test/prod/uploads"


class FakeResponse:
    """Just enough of requests.Response for the client and renderer."""

    def __init__(
        self,
        status_code: int = 200,
        json_body: Any = None,
        text: Optional[str] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self._json = json_body
        if text is None:
            text = json.dumps(json_body) if json_body is not None else ""
        self.text = text
        self.content = content if content is not None else text.encode("utf-8")
        if headers is None:
            headers = {"content-type": "application/json" if json_body is not None else "text/plain"}
        self.headers = headers

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class Call:
    def __init__(self, method: str, url: str, kwargs: Dict[str, Any]):
        self.method = method
        self.url = url
        self.kwargs = kwargs

    @property
    def params(self) -> Dict[str, Any]:
        return self.kwargs.get("params") or {}

    @property
    def json(self) -> Any:
        return self.kwargs.get("json")

    @property
    def headers(self) -> Dict[str, str]:
        return self.kwargs.get("headers") or {}

    def __repr__(self):
        return f"Call({self.method} {self.url})"


class FakeSession:
    """
    Stand-in for requests.Session.

    Routes are keyed by (method, url suffix); the longest matching suffix
    wins. Queued responses are served in order and the last one repeats.
    A route may also be a callable taking the Call and returning a response.
    """

    def __init__(self):
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[Call] = []

    def add(self, method: str, suffix: str, *responses) -> "FakeSession":
        self.routes.setdefault((method, suffix), []).extend(responses)
        return self

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        call = Call(method, url, kwargs)
        self.calls.append(call)
        matches = [key for key in self.routes if key[0] == method and url.endswith(key[1])]
        if not matches:
            raise AssertionError(f"Unexpected request: {method} {url}")
        queue = self.routes[max(matches, key=lambda k: len(k[1]))]
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(responder, BaseException):
            raise responder
        if callable(responder):
            return responder(call)
        return responder

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    def calls_to(self, method: str, suffix: str) -> List[Call]:
        return [c for c in self.calls if c.method == method and c.url.endswith(suffix)]


def ok(body: Any = None, status: int = 200) -> FakeResponse:
    return FakeResponse(status, json_body=body if body is not None else {})


class FakeRenderer:
    def __init__(self, document: bytes = b"%PDF-1.4 rendered"):
        self.document = document
        self.calls: List[tuple] = []

    def render(self, target, filename, data=None) -> bytes:
        self.calls.append((target, filename, data))
        return self.document


@pytest.fixture
def config() -> FleetioConfig:
    return FleetioConfig(
        api_token="api-token",
        account_token="acct-token",
        base_v1=V1,
        base_v2=V2,
        web_base="https://fleet.test",
        upload_endpoint=UPLOAD_URL,
        timeout=5,
        page_size=2,
        max_pages=5,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(config, fake_session) -> FleetioClient:
    return FleetioClient(config, session=fake_session)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def sample_vehicles() -> List[Dict[str, Any]]:
    """A small, messy Fleetio vehicle directory."""
    return [
        {"id": 7, "name": "1042"},
        {"id": 8, "name": "Coach 210", "vehicle_number": "COACH-210"},
        {"id": 9, "name": "Spare", "custom_fields": {"Fleet Number": "B-77", "Colour": "Blue"}},
    ]


@pytest.fixture
def fleetio(fake_session, sample_vehicles) -> FakeSession:
    """Fleetio answering every call of a successful work order saga."""
    fake_session.add("GET", "/vehicles", ok({"records": sample_vehicles, "next_cursor": None}))
    fake_session.add("GET", "/work_order_statuses", ok([{"id": 1, "name": "Closed"}, {"id": 2, "name": "Open"}]))
    fake_session.add("POST", "/work_orders", ok({"id": 555, "number": "#42"}))
    fake_session.add("POST", "/uploads/policies", ok({"policy": "pol", "signature": "sig", "path": "uploads/abc"}))
    fake_session.add("POST", "/prod/uploads", ok({"url": "https://cdn.test/abc/inspection.pdf"}))
    fake_session.add("PATCH", "/work_orders/555", ok({"id": 555}))
    fake_session.add(
        "GET", "/service_tasks",
        ok({"records": [{"id": 31, "name": "Schedule 4 Inspection (& EEPOC FMCSA 396.3)"}], "next_cursor": None}),
    )
    fake_session.add("POST", "/work_orders/555/work_order_line_items", ok({"id": 77}))
    fake_session.add("POST", "/meter_entries", ok({"id": 301}), ok({"id": 302}))
    return fake_session


@pytest.fixture
def make_page() -> Callable:
    def _make(records, next_cursor=None):
        return ok({"records": records, "next_cursor": next_cursor})
    return _make
