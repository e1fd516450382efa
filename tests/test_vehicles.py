"""
Tests for the vehicle directory fetcher.
"""

import pytest

from conftest import FakeResponse, ok
from fleetbridge.errors import ExternalApiError
from fleetbridge.vehicles import get_unit_for_vehicle_id, list_all_vehicles


class TestCursorPaging:
    def test_follows_cursor_until_exhausted(self, client, fake_session, make_page):
        def pages(call):
            cursor = call.params.get("start_cursor")
            if cursor is None:
                return make_page([{"id": 1}, {"id": 2}], next_cursor="c2")
            if cursor == "c2":
                return make_page([{"id": 3}], next_cursor=None)
            raise AssertionError(f"unexpected cursor {cursor}")

        fake_session.add("GET", "/vehicles", pages)

        vehicles = list_all_vehicles(client)

        assert [v["id"] for v in vehicles] == [1, 2, 3]
        assert len(fake_session.calls) == 2
        assert fake_session.calls[0].params == {"per_page": 2}

    def test_terminates_on_never_ending_cursor(self, client, fake_session, make_page):
        fake_session.add("GET", "/vehicles", lambda call: make_page([{"id": 1}], next_cursor="again"))

        vehicles = list_all_vehicles(client)

        assert len(fake_session.calls) == client.config.max_pages
        assert len(vehicles) == client.config.max_pages

    def test_bare_list_response(self, client, fake_session):
        fake_session.add("GET", "/vehicles", ok([{"id": 4}, {"id": 5}]))
        assert [v["id"] for v in list_all_vehicles(client)] == [4, 5]


class TestPageFallback:
    def test_falls_back_when_cursor_returns_nothing(self, client, fake_session):
        def pages(call):
            page = call.params.get("page")
            if page is None:
                return ok({"records": [], "next_cursor": None})
            if page == 1:
                return ok({"data": [{"id": 1}, {"id": 2}]})
            return ok({"data": [{"id": 3}]})

        fake_session.add("GET", "/vehicles", pages)

        vehicles = list_all_vehicles(client)

        assert [v["id"] for v in vehicles] == [1, 2, 3]
        assert [c.params.get("page") for c in fake_session.calls] == [None, 1, 2]

    def test_fallback_stops_on_empty_page(self, client, fake_session):
        def pages(call):
            if call.params.get("page") == 1:
                return ok([{"id": 1}, {"id": 2}])
            return ok([])

        fake_session.add("GET", "/vehicles", pages)

        assert len(list_all_vehicles(client)) == 2

    def test_fallback_is_capped(self, client, fake_session):
        def pages(call):
            if "page" not in call.params:
                return ok([])
            return ok([{"id": call.params["page"]}, {"id": -call.params["page"]}])

        fake_session.add("GET", "/vehicles", pages)

        vehicles = list_all_vehicles(client)

        page_calls = [c for c in fake_session.calls if "page" in c.params]
        assert len(page_calls) == client.config.max_pages
        assert len(vehicles) == 2 * client.config.max_pages


class TestFetchErrors:
    def test_error_mid_fetch_discards_partial_results(self, client, fake_session, make_page):
        def pages(call):
            if call.params.get("start_cursor") is None:
                return make_page([{"id": 1}], next_cursor="c2")
            return FakeResponse(500, text="upstream exploded", headers={"content-type": "text/plain"})

        fake_session.add("GET", "/vehicles", pages)

        with pytest.raises(ExternalApiError) as exc:
            list_all_vehicles(client)

        assert exc.value.status == 500
        assert exc.value.body == "upstream exploded"
        assert exc.value.step == "list_vehicles"


class TestUnitForVehicle:
    def test_prefers_non_numeric_candidate_from_v2(self, client, fake_session):
        fake_session.add("GET", "/v2/vehicles/7", ok({"id": 7, "vehicle_number": "1042", "name": "Coach 1042"}))
        assert get_unit_for_vehicle_id(client, 7) == "Coach 1042"

    def test_falls_back_to_v1(self, client, fake_session):
        fake_session.add("GET", "/v2/vehicles/7", FakeResponse(404, text="not found"))
        fake_session.add("GET", "/v1/vehicles/7", ok({"id": 7, "vehicle_number": "1042"}))
        assert get_unit_for_vehicle_id(client, 7) == "1042"

    def test_none_when_both_lookups_fail(self, client, fake_session):
        fake_session.add("GET", "/vehicles/7", FakeResponse(500, text="down"))
        assert get_unit_for_vehicle_id(client, 7) is None

    def test_numeric_only_vehicle_uses_label_fields(self, client, fake_session):
        fake_session.add("GET", "/v2/vehicles/7", ok({"id": 7, "vehicle_number": "1042"}))
        assert get_unit_for_vehicle_id(client, 7) == "1042"
