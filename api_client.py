"""
Personnel-management API client (httpx-backed).

Purpose
-------
The single transport boundary between the Flask pages and the external
personnel-management HTTP API. Every page talks to the API through this
module; nothing else in the app builds URLs or inspects raw responses.

Design & invariants
-------------------
* Responses are decoded once, here, into an `ApiResult` (ok/err). Callers
  never see httpx objects or the "bare list vs. {success, data}" question.
* The bearer credential comes from an explicit `ApiSession` handed in per
  request; the client never reads the Flask session itself.
* A 401 from ANY endpoint raises `SessionExpired`. The app handles that in
  one place (clear session, redirect to login).
* No retries and no client-side timeout beyond httpx's default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

# =========================
# Constants
# =========================
DEFAULT_BASE_PATH = "personnel-management"
NETWORK_ERROR_MESSAGE = "Error de red o al procesar la solicitud. Por favor, inténtelo de nuevo."
UPDATE_NETWORK_ERROR_MESSAGE = "Error de red o al procesar la solicitud de actualización."


class SessionExpired(Exception):
    """Raised on any 401 response; the web layer turns it into a login redirect."""


@dataclass(frozen=True)
class ApiSession:
    """Request-scoped credential. `token` is None when nobody is logged in."""

    token: Optional[str] = None

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


class ApiResult:
    """
    Tagged result of one API call: either ok (carries `value`) or err
    (carries `error`, a user-facing message).

    `not_found` marks an envelope that reported success but carried no record.
    """

    __slots__ = ("_value", "_error", "_is_ok", "status_code", "not_found")

    def __init__(
        self,
        is_ok: bool,
        value: Any = None,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
        not_found: bool = False,
    ) -> None:
        self._is_ok = is_ok
        self._value = value
        self._error = error
        self.status_code = status_code
        self.not_found = not_found

    @classmethod
    def ok(cls, value: Any, status_code: Optional[int] = None) -> "ApiResult":
        return cls(True, value=value, status_code=status_code)

    @classmethod
    def err(
        cls,
        message: str,
        status_code: Optional[int] = None,
        not_found: bool = False,
    ) -> "ApiResult":
        return cls(False, error=message, status_code=status_code, not_found=not_found)

    @property
    def is_ok(self) -> bool:
        return self._is_ok

    @property
    def is_err(self) -> bool:
        return not self._is_ok

    @property
    def value(self) -> Any:
        if not self._is_ok:
            raise ValueError("Called value on ApiResult.err")
        return self._value

    @property
    def error(self) -> str:
        if self._is_ok:
            raise ValueError("Called error on ApiResult.ok")
        return self._error or ""

    def __repr__(self) -> str:
        if self._is_ok:
            return f"ApiResult.ok({self._value!r})"
        return f"ApiResult.err({self._error!r}, status_code={self.status_code!r})"


# =========================
# Body helpers
# =========================
def _json_body(response: httpx.Response) -> Any:
    """Parse a JSON body; an empty or non-JSON body reads as None."""
    try:
        return response.json()
    except ValueError:
        return None


def extract_error_message(body: Any, fallback: str) -> str:
    """
    Pull a server-provided message out of an error body.
    Preference order: `error`, then `message`; otherwise `fallback`.
    """
    if isinstance(body, dict):
        for key in ("error", "message"):
            msg = body.get(key)
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
    return fallback


def decode_collection(body: Any, envelope: bool, fallback: str) -> ApiResult:
    """
    Normalize a list response into ApiResult.ok(list).

    Two shapes are accepted: a bare JSON array, or an envelope
    `{success, data, error?}`. An envelope with success=false or an `error`
    field is a failure; there is no partial success.
    """
    if envelope:
        if not isinstance(body, dict):
            return ApiResult.err(fallback)
        if not body.get("success") or body.get("error"):
            return ApiResult.err(extract_error_message(body, fallback))
        body = body.get("data")
    if not isinstance(body, list):
        return ApiResult.err(fallback)
    return ApiResult.ok(body)


def decode_record(body: Any, fallback: str) -> ApiResult:
    """Decode a single-record envelope `{success, data?, error?}`."""
    if not isinstance(body, dict):
        return ApiResult.err(fallback)
    if not body.get("success") or body.get("error"):
        return ApiResult.err(extract_error_message(body, fallback))
    data = body.get("data")
    if not isinstance(data, dict):
        return ApiResult.err(fallback, not_found=True)
    return ApiResult.ok(data)


# =========================
# Client
# =========================
class PersonnelApiClient:
    """HTTP client for the personnel-management API."""

    def __init__(
        self,
        http_client: httpx.Client,
        api_session: Optional[ApiSession] = None,
        base_path: str = DEFAULT_BASE_PATH,
    ) -> None:
        """
        Args:
            http_client: shared httpx.Client; its base_url points at the API host
            api_session: credential for this request (may carry no token)
            base_path: path prefix for personnel endpoints
        """
        self._http = http_client
        self.session = api_session or ApiSession()
        self.base_path = base_path.strip("/")

    # ---- low level ---------------------------------------------------------
    def _url(self, path: str) -> str:
        if not self.base_path:
            return f"/{path}"
        return f"/{self.base_path}/{path}"

    def _send(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        Issue one request with the bearer header attached.
        Raises SessionExpired on 401 and lets httpx.TransportError propagate.
        """
        response = self._http.request(
            method,
            url,
            json=payload,
            headers=self.session.auth_headers(),
        )
        if response.status_code == 401:
            logger.warning("API rejected credential: %s %s -> 401", method, url)
            raise SessionExpired(url)
        return response

    def _read(self, path: str, network_message: str) -> Tuple[Optional[httpx.Response], Optional[ApiResult]]:
        """GET helper: returns (response, None) or (None, transport error result)."""
        try:
            return self._send("GET", self._url(path)), None
        except httpx.TransportError as exc:
            logger.error("Transport error on GET %s: %s", path, exc)
            return None, ApiResult.err(network_message)

    # ---- generic operations ------------------------------------------------
    def get_collection(
        self,
        path: str,
        envelope: bool,
        error_message: str,
        network_message: str = NETWORK_ERROR_MESSAGE,
    ) -> ApiResult:
        """Read a collection endpoint and normalize it to ApiResult.ok(list)."""
        response, failure = self._read(path, network_message)
        if failure is not None:
            return failure
        body = _json_body(response)
        if response.is_error:
            logger.error("GET %s failed with HTTP %d", path, response.status_code)
            return ApiResult.err(extract_error_message(body, error_message), response.status_code)
        result = decode_collection(body, envelope, error_message)
        if result.is_err:
            logger.error("GET %s returned an unsuccessful envelope: %s", path, result.error)
        return result

    def get_record(
        self,
        path: str,
        error_message: str,
        network_message: str = NETWORK_ERROR_MESSAGE,
    ) -> ApiResult:
        """Read a single-record envelope endpoint."""
        response, failure = self._read(path, network_message)
        if failure is not None:
            return failure
        body = _json_body(response)
        if response.status_code == 404:
            return ApiResult.err(extract_error_message(body, error_message), 404, not_found=True)
        if response.is_error:
            logger.error("GET %s failed with HTTP %d", path, response.status_code)
            return ApiResult.err(extract_error_message(body, error_message), response.status_code)
        return decode_record(body, error_message)

    def write(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]],
        error_message: str,
        network_message: str = NETWORK_ERROR_MESSAGE,
    ) -> ApiResult:
        """POST/PUT/DELETE helper. 2xx -> ok(body); anything else -> err(message)."""
        try:
            response = self._send(method, self._url(path), payload)
        except httpx.TransportError as exc:
            logger.error("Transport error on %s %s: %s", method, path, exc)
            return ApiResult.err(network_message)
        body = _json_body(response)
        if response.is_error:
            message = extract_error_message(body, error_message)
            logger.warning("%s %s failed with HTTP %d: %s", method, path, response.status_code, message)
            return ApiResult.err(message, response.status_code)
        return ApiResult.ok(body if body is not None else {}, response.status_code)

    # ---- persons ------------------------------------------------------------
    def list_persons(self) -> ApiResult:
        return self.get_collection(
            "get-users",
            envelope=False,
            error_message="No se pudieron cargar los usuarios.",
        )

    def create_person(self, payload: Dict[str, Any]) -> ApiResult:
        return self.write("POST", "create-user", payload, "Error al registrar el usuario.")

    def update_person(self, person_id: Any, payload: Dict[str, Any]) -> ApiResult:
        return self.write(
            "PUT",
            f"update-user/{person_id}",
            payload,
            "Error al actualizar el usuario.",
            UPDATE_NETWORK_ERROR_MESSAGE,
        )

    def delete_person(self, person_id: Any) -> ApiResult:
        return self.write("DELETE", f"delete-user/{person_id}", None, "Error al eliminar el usuario.")

    # ---- access requests ----------------------------------------------------
    def list_access_requests(self) -> ApiResult:
        return self.get_collection(
            "get-access-requests",
            envelope=True,
            error_message="No se pudieron cargar las solicitudes de acceso.",
        )

    def get_access_request(self, request_id: Any) -> ApiResult:
        return self.get_record(
            f"get-access-request-by-id/{request_id}",
            "No se pudo cargar la solicitud.",
        )

    def create_access_request(self, payload: Dict[str, Any]) -> ApiResult:
        return self.write("POST", "create-access-request", payload, "Error al crear la solicitud de acceso.")

    def update_access_request(self, request_id: Any, payload: Dict[str, Any]) -> ApiResult:
        return self.write(
            "PUT",
            f"update-access-request/{request_id}",
            payload,
            "Error al actualizar la solicitud de acceso.",
            UPDATE_NETWORK_ERROR_MESSAGE,
        )

    def delete_access_request(self, request_id: Any) -> ApiResult:
        return self.write(
            "DELETE",
            f"delete-access-request/{request_id}",
            None,
            "Error al eliminar la solicitud de acceso.",
        )

    # ---- computer assignments -----------------------------------------------
    def list_assignments(self) -> ApiResult:
        return self.get_collection(
            "get-assignments",
            envelope=True,
            error_message="No se pudieron cargar las asignaciones de computadores.",
        )

    def get_assignment(self, assignment_id: Any) -> ApiResult:
        return self.get_record(
            f"get-assignment-by-id/{assignment_id}",
            "No se pudo cargar la asignación.",
        )

    def list_computers(self) -> ApiResult:
        return self.get_collection(
            "get-computers",
            envelope=True,
            error_message="No se pudo cargar la lista de computadores disponibles.",
        )

    def create_assignment(self, payload: Dict[str, Any]) -> ApiResult:
        return self.write("POST", "create-assignment", payload, "Error al crear la asignación.")

    def update_assignment(self, assignment_id: Any, payload: Dict[str, Any]) -> ApiResult:
        return self.write(
            "PUT",
            f"update-assignment/{assignment_id}",
            payload,
            "Error al actualizar la asignación.",
            UPDATE_NETWORK_ERROR_MESSAGE,
        )

    def delete_assignment(self, assignment_id: Any) -> ApiResult:
        return self.write(
            "DELETE",
            f"delete-assignment/{assignment_id}",
            None,
            "Error al eliminar la asignación.",
        )

    # ---- auth ---------------------------------------------------------------
    def login(self, email: str, password: str) -> ApiResult:
        """
        Exchange credentials for a token. The login endpoint sits at the API
        root, outside the personnel prefix.

        A 401 here means bad credentials, not an expired session, so it is
        reported as an ordinary error instead of raising SessionExpired.
        """
        try:
            response = self._http.post("/login", json={"email": email, "password": password})
        except httpx.TransportError as exc:
            logger.error("Transport error on login: %s", exc)
            return ApiResult.err("Error de red o del servidor.")
        body = _json_body(response)
        if response.is_error:
            return ApiResult.err(extract_error_message(body, "Error en la autenticación."), response.status_code)
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            return ApiResult.err("Respuesta de autenticación inválida.", response.status_code)
        return ApiResult.ok(token, response.status_code)
