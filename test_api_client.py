"""Unit tests for the personnel API client."""
import json

import httpx
import pytest

from api_client import (
    NETWORK_ERROR_MESSAGE,
    UPDATE_NETWORK_ERROR_MESSAGE,
    ApiResult,
    ApiSession,
    PersonnelApiClient,
    SessionExpired,
    decode_collection,
    extract_error_message,
)
from conftest import PREFIX, TOKEN


class TestApiResult:
    def test_ok_exposes_value(self):
        result = ApiResult.ok([1, 2])
        assert result.is_ok and not result.is_err
        assert result.value == [1, 2]

    def test_err_exposes_error(self):
        result = ApiResult.err("boom", status_code=500)
        assert result.is_err
        assert result.error == "boom"
        assert result.status_code == 500

    def test_value_on_err_raises(self):
        with pytest.raises(ValueError, match="Called value on ApiResult.err"):
            _ = ApiResult.err("boom").value

    def test_error_on_ok_raises(self):
        with pytest.raises(ValueError, match="Called error on ApiResult.ok"):
            _ = ApiResult.ok(1).error


class TestDecoding:
    def test_bare_collection(self):
        assert decode_collection([{"id": 1}], envelope=False, fallback="x").value == [{"id": 1}]

    def test_envelope_success(self):
        body = {"success": True, "data": [{"id": 7}]}
        assert decode_collection(body, envelope=True, fallback="x").value == [{"id": 7}]

    def test_envelope_failure_uses_server_error(self):
        body = {"success": False, "error": "sin permisos"}
        result = decode_collection(body, envelope=True, fallback="x")
        assert result.error == "sin permisos"

    def test_envelope_with_error_field_is_failure_even_if_success(self):
        body = {"success": True, "data": [], "error": "parcial"}
        assert decode_collection(body, envelope=True, fallback="x").is_err

    def test_non_list_payload_is_failure(self):
        assert decode_collection({"data": []}, envelope=False, fallback="fallback").error == "fallback"

    def test_error_message_preference(self):
        assert extract_error_message({"error": "e", "message": "m"}, "f") == "e"
        assert extract_error_message({"message": "m"}, "f") == "m"
        assert extract_error_message({"detail": "d"}, "f") == "f"
        assert extract_error_message(None, "f") == "f"


class TestPersonnelApiClient:
    def test_bearer_header_attached(self, api, api_mock):
        route = api_mock.get(f"{PREFIX}/get-users").mock(return_value=httpx.Response(200, json=[]))

        api.list_persons()

        assert route.calls[0].request.headers["authorization"] == f"Bearer {TOKEN}"

    def test_no_header_without_token(self, http_client, api_mock):
        route = api_mock.get(f"{PREFIX}/get-users").mock(return_value=httpx.Response(200, json=[]))

        PersonnelApiClient(http_client, ApiSession(None)).list_persons()

        assert "authorization" not in route.calls[0].request.headers

    def test_list_access_requests_unwraps_envelope(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-access-requests").mock(
            return_value=httpx.Response(200, json={"success": True, "data": [{"id": 1}]})
        )

        assert api.list_access_requests().value == [{"id": 1}]

    def test_unsuccessful_envelope_is_error(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-assignments").mock(
            return_value=httpx.Response(200, json={"success": False})
        )

        result = api.list_assignments()

        assert result.is_err
        assert result.error == "No se pudieron cargar las asignaciones de computadores."

    def test_non_2xx_read_is_error(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-users").mock(return_value=httpx.Response(500, json={"message": "caído"}))

        result = api.list_persons()

        assert result.error == "caído"
        assert result.status_code == 500

    def test_transport_error_maps_to_network_message(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-users").mock(side_effect=httpx.ConnectError("refused"))

        result = api.list_persons()

        assert result.error == NETWORK_ERROR_MESSAGE
        assert result.status_code is None

    def test_401_raises_session_expired(self, api, api_mock):
        api_mock.delete(f"{PREFIX}/delete-user/4").mock(return_value=httpx.Response(401))

        with pytest.raises(SessionExpired):
            api.delete_person(4)

    def test_get_record_success(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-access-request-by-id/9").mock(
            return_value=httpx.Response(200, json={"success": True, "data": {"id": 9}})
        )

        assert api.get_access_request(9).value == {"id": 9}

    def test_get_record_missing_data_is_not_found(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-assignment-by-id/9").mock(
            return_value=httpx.Response(200, json={"success": True})
        )

        result = api.get_assignment(9)

        assert result.is_err
        assert result.not_found

    def test_get_record_404_is_not_found(self, api, api_mock):
        api_mock.get(f"{PREFIX}/get-assignment-by-id/9").mock(
            return_value=httpx.Response(404, json={"error": "No existe"})
        )

        result = api.get_assignment(9)

        assert result.not_found
        assert result.error == "No existe"

    def test_write_sends_json_payload(self, api, api_mock):
        route = api_mock.put(f"{PREFIX}/update-access-request/3").mock(
            return_value=httpx.Response(200, json={"message": "ok"})
        )

        result = api.update_access_request(3, {"user_id": "1", "user_type": "QA", "access_type": "AWS"})

        assert result.is_ok
        sent = json.loads(route.calls[0].request.content)
        assert sent == {"user_id": "1", "user_type": "QA", "access_type": "AWS"}

    def test_write_failure_prefers_error_then_message(self, api, api_mock):
        api_mock.post(f"{PREFIX}/create-user").mock(
            return_value=httpx.Response(400, json={"message": "Correo duplicado"})
        )

        result = api.create_person({"name": "Ana"})

        assert result.error == "Correo duplicado"
        assert result.status_code == 400

    def test_write_failure_without_message_uses_fallback(self, api, api_mock):
        api_mock.delete(f"{PREFIX}/delete-assignment/2").mock(return_value=httpx.Response(500))

        assert api.delete_assignment(2).error == "Error al eliminar la asignación."

    def test_login_returns_token(self, api, api_mock):
        route = api_mock.post("/login").mock(return_value=httpx.Response(200, json={"token": "abc"}))

        result = api.login("ana@empresa.com", "secreto")

        assert result.value == "abc"
        assert json.loads(route.calls[0].request.content) == {"email": "ana@empresa.com", "password": "secreto"}

    def test_login_401_is_plain_error(self, api, api_mock):
        api_mock.post("/login").mock(
            return_value=httpx.Response(401, json={"message": "Credenciales inválidas"})
        )

        result = api.login("ana@empresa.com", "mal")

        assert result.error == "Credenciales inválidas"
        assert result.status_code == 401

    def test_login_without_token_is_invalid(self, api, api_mock):
        api_mock.post("/login").mock(return_value=httpx.Response(200, json={}))

        assert api.login("a@b.c", "x").error == "Respuesta de autenticación inválida."

    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.update_person(1, {"name": "Ana"}),
            lambda c: c.update_access_request(1, {"user_id": "1"}),
            lambda c: c.update_assignment(1, {"user_id": "1"}),
        ],
    )
    def test_update_network_failure_message(self, api, api_mock, call):
        for path in ("update-user/1", "update-access-request/1", "update-assignment/1"):
            api_mock.put(f"{PREFIX}/{path}").mock(side_effect=httpx.ConnectError("refused"))

        result = call(api)

        assert result.error == UPDATE_NETWORK_ERROR_MESSAGE
        assert result.status_code is None

    def test_create_network_failure_keeps_generic_message(self, api, api_mock):
        api_mock.post(f"{PREFIX}/create-user").mock(side_effect=httpx.ConnectError("refused"))

        assert api.create_person({"name": "Ana"}).error == NETWORK_ERROR_MESSAGE
