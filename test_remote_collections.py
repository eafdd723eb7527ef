"""Tests for parallel source loading and the approved-person filter."""
import httpx
import pytest

from api_client import ApiResult, SessionExpired
from conftest import PREFIX
from remote_collections import (
    SourceSpec,
    SourceState,
    approved_only,
    drop_missing_ids,
    fetch_sources,
    load_source,
)


def _spec(key, result, require_id=True):
    return SourceSpec(key, lambda client: result, require_id=require_id)


class TestRowHelpers:
    def test_drop_missing_ids(self):
        kept, dropped = drop_missing_ids([{"id": 1}, {"id": None}, {"name": "x"}, "junk", {"id": 0}])
        assert kept == [{"id": 1}, {"id": 0}]
        assert dropped == 3

    def test_approved_only_is_case_and_space_insensitive(self, persons_payload):
        extra = [
            {"id": 4, "status": "APPROVED"},
            {"id": 5, "status": " approved"},
            {"id": 6, "status": "rechazado"},
            {"id": 7, "status": None},
            {"id": 8},
        ]
        ids = [p["id"] for p in approved_only(persons_payload + extra)]
        assert ids == [1, 3, 4, 5]


class TestLoadSource:
    def test_success_sets_data_and_clears_loading(self):
        state = load_source(None, _spec("persons", ApiResult.ok([{"id": 1}])))
        assert state.loaded
        assert state.data == [{"id": 1}]
        assert state.error is None

    def test_failure_keeps_data_empty(self):
        state = load_source(None, _spec("persons", ApiResult.err("caído")))
        assert not state.loading
        assert state.error == "caído"
        assert state.data == []

    def test_rows_without_id_are_dropped(self):
        state = load_source(None, _spec("persons", ApiResult.ok([{"id": None}, {"id": 2}])))
        assert state.data == [{"id": 2}]
        assert state.dropped == 1

    def test_require_id_off_keeps_everything(self):
        state = load_source(None, _spec("computers", ApiResult.ok([{"serial_number": "A1"}]), require_id=False))
        assert state.data == [{"serial_number": "A1"}]

    def test_initial_state_is_loading(self):
        state = SourceState(key="x")
        assert state.loading and not state.loaded
        assert state.data == []


class TestFetchSources:
    def test_one_failure_does_not_affect_others(self, api, api_mock, persons_payload):
        api_mock.get(f"{PREFIX}/get-users").mock(return_value=httpx.Response(200, json=persons_payload))
        api_mock.get(f"{PREFIX}/get-access-requests").mock(return_value=httpx.Response(500))

        states = fetch_sources(
            api,
            [
                SourceSpec("persons", lambda c: c.list_persons()),
                SourceSpec("requests", lambda c: c.list_access_requests()),
            ],
        )

        assert states["persons"].data == persons_payload
        assert states["requests"].error == "No se pudieron cargar las solicitudes de acceso."
        assert states["requests"].data == []

    def test_no_sources(self, api):
        assert fetch_sources(api, []) == {}

    def test_session_expired_is_reraised(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-users").mock(return_value=httpx.Response(401))
        api_mock.get(f"{PREFIX}/get-assignments").mock(
            return_value=httpx.Response(200, json={"success": True, "data": []})
        )

        with pytest.raises(SessionExpired):
            fetch_sources(
                api,
                [
                    SourceSpec("persons", lambda c: c.list_persons()),
                    SourceSpec("assignments", lambda c: c.list_assignments()),
                ],
            )
