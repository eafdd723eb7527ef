"""
Team-management dashboard: one table over three request collections.

Purpose
-------
Person records, access requests and computer assignments come from three
separate endpoints with different shapes. This module loads them in
parallel, maps each into a common `DashboardRow`, concatenates them
(persons, then access requests, then assignments) and routes per-row
edit/delete actions back to the collection the row came from.

Failure policy
--------------
* First source error wins; later errors do not overwrite it.
* Rows from sources that did load are always shown. The error text is shown
  only when every source came back empty.
* Delete removes the row locally only after the API acknowledged it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from api_client import ApiResult, PersonnelApiClient
from remote_collections import SourceSpec, SourceState, fetch_sources, normalize_status

logger = logging.getLogger(__name__)

# =========================
# Labels & status classes
# =========================
PERSON_REQUEST_LABEL = "creacion de usuario"
ACCESS_REQUEST_LABEL = "solicitud de acceso"
ASSIGNMENT_REQUEST_LABEL = "asignación de computador"
UNKNOWN_PERSON = "Usuario Desconocido"
NO_DETAILS = "Detalles no disponibles"
DEFAULT_ASSIGNMENT_STATUS = "pendiente"

STATUS_CLASSES: Dict[str, str] = {
    "pendiente": "pending",
    "pending": "pending",
    "aprobado": "approved",
    "approved": "approved",
    "rechazado": "rejected",
    "rejected": "rejected",
}


def status_class(status: Any) -> str:
    """Map a free-form status to pending/approved/rejected/other (case-insensitive)."""
    return STATUS_CLASSES.get(normalize_status(status), "other")


class RowKind(str, Enum):
    PERSON = "person"
    ACCESS_REQUEST = "access-request"
    ASSIGNMENT = "assignment"

    @property
    def type_label(self) -> str:
        return _TYPE_LABELS[self]

    @property
    def edit_endpoint(self) -> str:
        return _EDIT_ENDPOINTS[self]


_TYPE_LABELS = {
    RowKind.PERSON: "Creación de Usuario",
    RowKind.ACCESS_REQUEST: "Solicitud de Acceso",
    RowKind.ASSIGNMENT: "Asignación de Computador",
}

# Flask endpoint names of the edit pages
_EDIT_ENDPOINTS = {
    RowKind.PERSON: "edit_user",
    RowKind.ACCESS_REQUEST: "edit_access_request",
    RowKind.ASSIGNMENT: "edit_computer_assignment",
}

_DELETE_CALLS: Dict[RowKind, Callable[[PersonnelApiClient, Any], ApiResult]] = {
    RowKind.PERSON: lambda client, row_id: client.delete_person(row_id),
    RowKind.ACCESS_REQUEST: lambda client, row_id: client.delete_access_request(row_id),
    RowKind.ASSIGNMENT: lambda client, row_id: client.delete_assignment(row_id),
}

_DELETE_SUCCESS = {
    RowKind.PERSON: 'La solicitud de creación para "{name}" ha sido eliminada exitosamente.',
    RowKind.ACCESS_REQUEST: 'La solicitud de acceso para "{name}" ha sido eliminada exitosamente.',
    RowKind.ASSIGNMENT: 'La asignación de computador para "{name}" ha sido eliminada exitosamente.',
}

_NOT_FOUND = {
    RowKind.PERSON: "Error: Solicitud de creación de usuario no encontrada para eliminar.",
    RowKind.ACCESS_REQUEST: "Error: Solicitud de acceso no encontrada para eliminar.",
    RowKind.ASSIGNMENT: "Error: Solicitud de asignación de computador no encontrada para eliminar.",
}


@dataclass
class DashboardRow:
    kind: RowKind
    id: Any
    person_label: str
    request_label: str
    status: str

    @property
    def status_class(self) -> str:
        return status_class(self.status)

    @property
    def type_label(self) -> str:
        return self.kind.type_label

    @property
    def delete_prompt(self) -> str:
        return f'¿Estás seguro de que quieres eliminar "{self.person_label}" ({self.type_label})?'

    def matches(self, kind: RowKind, row_id: Any) -> bool:
        return self.kind is kind and str(self.id) == str(row_id)


@dataclass
class DeleteOutcome:
    ok: bool
    message: str


# =========================
# Normalizers (raw API item -> DashboardRow)
# =========================
def person_row(item: Dict[str, Any]) -> DashboardRow:
    return DashboardRow(
        kind=RowKind.PERSON,
        id=item["id"],
        person_label=item.get("name") or "",
        request_label=item.get("request") or PERSON_REQUEST_LABEL,
        status=item.get("status") or "",
    )


def access_request_row(item: Dict[str, Any]) -> DashboardRow:
    return DashboardRow(
        kind=RowKind.ACCESS_REQUEST,
        id=item["id"],
        person_label=item.get("user_name") or "",
        request_label=f"{ACCESS_REQUEST_LABEL} ({item.get('access_type') or ''})",
        status=item.get("status") or "",
    )


def assignment_row(item: Dict[str, Any]) -> DashboardRow:
    serial = item.get("computer_serial")
    details = f"Serial: {serial}" if serial else NO_DETAILS
    return DashboardRow(
        kind=RowKind.ASSIGNMENT,
        id=item["id"],
        person_label=item.get("user_name") or UNKNOWN_PERSON,
        request_label=f"{ASSIGNMENT_REQUEST_LABEL} ({details})",
        status=item.get("status") or DEFAULT_ASSIGNMENT_STATUS,
    )


_NORMALIZERS: Dict[RowKind, Callable[[Dict[str, Any]], DashboardRow]] = {
    RowKind.PERSON: person_row,
    RowKind.ACCESS_REQUEST: access_request_row,
    RowKind.ASSIGNMENT: assignment_row,
}

# Declared order is display order
SOURCES: List[SourceSpec] = [
    SourceSpec(RowKind.PERSON.value, lambda client: client.list_persons()),
    SourceSpec(RowKind.ACCESS_REQUEST.value, lambda client: client.list_access_requests()),
    SourceSpec(RowKind.ASSIGNMENT.value, lambda client: client.list_assignments()),
]


# =========================
# View
# =========================
class RequestAggregationView:
    """Dashboard state for one request."""

    def __init__(self, client: PersonnelApiClient) -> None:
        self.client = client
        self.loading = True
        self.error: Optional[str] = None
        self.rows_by_kind: Dict[RowKind, List[DashboardRow]] = {kind: [] for kind in RowKind}

    def load(self) -> "RequestAggregationView":
        states = fetch_sources(self.client, SOURCES)
        self.apply(states)
        return self

    def apply(self, states: Dict[str, SourceState]) -> None:
        """
        Fold finished source states into rows. Sources are visited in display
        order so "first error" is deterministic regardless of completion order.
        """
        for kind in RowKind:
            state = states.get(kind.value)
            if state is None:
                continue
            if state.error:
                self.record_error(state.error)
                continue
            self.rows_by_kind[kind] = [_NORMALIZERS[kind](item) for item in state.data]
        self.loading = False

    def record_error(self, message: str) -> None:
        if self.error is None:
            self.error = message

    # ---- derived -----------------------------------------------------------
    @property
    def rows(self) -> List[DashboardRow]:
        out: List[DashboardRow] = []
        for kind in RowKind:
            out.extend(self.rows_by_kind[kind])
        return out

    @property
    def show_error(self) -> bool:
        # TODO: confirm with product whether per-source errors should show alongside rows
        return self.error is not None and not self.rows

    @property
    def is_empty(self) -> bool:
        return not self.loading and not self.rows and self.error is None

    # ---- actions -----------------------------------------------------------
    def find(self, kind: RowKind, row_id: Any) -> Optional[DashboardRow]:
        for row in self.rows_by_kind[kind]:
            if row.matches(kind, row_id):
                return row
        return None

    def delete(self, kind: RowKind, row_id: Any) -> DeleteOutcome:
        """Delete one row through its kind-specific endpoint."""
        row = self.find(kind, row_id)
        if row is None:
            logger.error("Delete requested for unknown %s row %s", kind.value, row_id)
            return DeleteOutcome(False, _NOT_FOUND[kind])

        result = _DELETE_CALLS[kind](self.client, row.id)
        if result.is_err:
            logger.warning("Delete of %s %s failed: %s", kind.value, row.id, result.error)
            if result.status_code is None:
                return DeleteOutcome(
                    False,
                    f"Error de red o al procesar la solicitud de eliminación para {row.type_label}.",
                )
            return DeleteOutcome(False, f"Error al eliminar: {result.error}")

        self.rows_by_kind[kind] = [r for r in self.rows_by_kind[kind] if r is not row]
        logger.info("Deleted %s %s", kind.value, row.id)
        return DeleteOutcome(True, _DELETE_SUCCESS[kind].format(name=row.person_label))
