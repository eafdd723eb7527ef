"""
Concrete form configurations for the personnel pages.

Each page (create/edit person, access request, computer assignment) is a
`FormSpec`: its fields and messages, how a server record maps onto the
fields, how the fields become a write payload, and which endpoint takes it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from api_client import ApiResult, PersonnelApiClient
from form_state import FieldSpec, FormSpec, parse_choices, serialize_choices

# =========================
# Catalogs
# =========================
ACCESS_TYPE_CATALOG: List[str] = ["GitHub", "Grafana", "AWS", "Confluence", "Figma", "JFROG"]
USER_TYPES: List[str] = ["PM", "UX", "QA", "Scrum Master", "Developer", "BA", "DevOps"]

# Keys a computer listing may use for the serial number
SERIAL_KEYS = ("serial_number", "computer_serial", "serial")

SELECT_USER_MSG = "Por favor, seleccione un usuario."
UNAPPROVED_USER_MSG = "El usuario seleccionado no está aprobado."
NO_APPROVED_USERS_MSG = "No hay usuarios aprobados disponibles para seleccionar."


def serialize_access_types(selected: Iterable[str]) -> str:
    return serialize_choices(selected, ACCESS_TYPE_CATALOG)


def parse_access_types(text: Optional[str]) -> List[str]:
    return parse_choices(text)


def date_only(value: Any) -> str:
    """ISO timestamp -> 'YYYY-MM-DD' (UTC when the stamp carries an offset)."""
    if not isinstance(value, str) or not value.strip():
        return ""
    raw = value.strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return raw[:10]
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def _clean(values: Dict[str, Any], name: str) -> str:
    return str(values.get(name) or "").strip()


def _user_select() -> FieldSpec:
    return FieldSpec(
        "user_id",
        kind="select",
        message=SELECT_USER_MSG,
        options_key="persons",
        invalid_message=UNAPPROVED_USER_MSG,
        no_options_message=NO_APPROVED_USERS_MSG,
    )


# =========================
# Persons
# =========================
def _person_text_fields(role_name: str) -> List[FieldSpec]:
    return [
        FieldSpec("name", message="Por favor, ingrese el nombre completo."),
        FieldSpec("email", message="Por favor, ingrese el correo electrónico."),
        FieldSpec("area", message="Por favor, ingrese el área o departamento."),
        FieldSpec(role_name, message="Por favor, ingrese el rol."),
    ]


def find_person(client: PersonnelApiClient, person_id: Any) -> ApiResult:
    """There is no get-by-id endpoint for persons: scan the full list."""
    result = client.list_persons()
    if result.is_err:
        return ApiResult.err(
            "No se pudieron cargar los datos del usuario para editar. Por favor, inténtelo más tarde.",
            result.status_code,
        )
    for person in result.value:
        if isinstance(person, dict) and str(person.get("id")) == str(person_id):
            return ApiResult.ok(person)
    return ApiResult.err(f"No se encontró el usuario con ID {person_id} para editar.", not_found=True)


PERSON_CREATE = FormSpec(
    name="person-create",
    fields=_person_text_fields("rol"),
    build_payload=lambda v: {
        "name": _clean(v, "name"),
        "email": _clean(v, "email"),
        "area": _clean(v, "area"),
        "rol": _clean(v, "rol"),
    },
    send=lambda client, _id, payload: client.create_person(payload),
    success_message="Usuario registrado exitosamente!",
)

PERSON_EDIT = FormSpec(
    name="person-edit",
    fields=_person_text_fields("role"),
    load_record=find_person,
    record_to_values=lambda rec: {
        "name": rec.get("name") or "",
        "email": rec.get("email") or "",
        "area": rec.get("area") or rec.get("department") or "",
        "role": rec.get("role") or rec.get("rol") or "",
    },
    # department mirrors area; the API keeps both columns
    build_payload=lambda v: {
        "name": _clean(v, "name"),
        "email": _clean(v, "email"),
        "department": _clean(v, "area"),
        "role": _clean(v, "role"),
        "area": _clean(v, "area"),
    },
    send=lambda client, person_id, payload: client.update_person(person_id, payload),
    success_message="Usuario actualizado exitosamente!",
    missing_id_message="ID de solicitud no proporcionado.",
)


# =========================
# Access requests
# =========================
def _access_fields() -> List[FieldSpec]:
    return [
        _user_select(),
        FieldSpec(
            "user_type",
            kind="select",
            message="Por favor, seleccione un tipo de usuario.",
            choices=USER_TYPES,
            invalid_message="Tipo de usuario no válido.",
        ),
        FieldSpec(
            "access_types",
            kind="multi",
            message="Por favor, seleccione al menos un tipo de acceso.",
            default=[],
            choices=ACCESS_TYPE_CATALOG,
        ),
    ]


def _access_payload(v: Dict[str, Any]) -> Dict[str, Any]:
    # create-access-request also accepts user_type alongside user_id and access_type
    return {
        "user_id": _clean(v, "user_id"),
        "user_type": _clean(v, "user_type"),
        "access_type": serialize_access_types(v.get("access_types") or []),
    }


ACCESS_REQUEST_CREATE = FormSpec(
    name="access-request-create",
    fields=_access_fields(),
    build_payload=_access_payload,
    send=lambda client, _id, payload: client.create_access_request(payload),
    success_message="Solicitud de acceso creada exitosamente!",
)

ACCESS_REQUEST_EDIT = FormSpec(
    name="access-request-edit",
    fields=_access_fields(),
    load_record=lambda client, request_id: client.get_access_request(request_id),
    record_to_values=lambda rec: {
        "user_id": "" if rec.get("user_id") is None else str(rec.get("user_id")),
        "user_type": rec.get("user_type") or "",
        "access_types": parse_access_types(rec.get("access_type")),
    },
    build_payload=_access_payload,
    send=lambda client, request_id, payload: client.update_access_request(request_id, payload),
    success_message="Solicitud de acceso actualizada exitosamente!",
)


# =========================
# Computer assignments
# =========================
def computer_serials(computers: Iterable[Dict[str, Any]]) -> List[str]:
    serials = []
    for computer in computers:
        for key in SERIAL_KEYS:
            value = computer.get(key)
            if value:
                serials.append(str(value).strip())
                break
    return serials


def serial_is_available(values: Dict[str, Any], context: Dict[str, Any]) -> Optional[str]:
    """
    Cross-check the serial against the available-computer listing.
    Skipped when the listing did not load (context value None).
    """
    computers = context.get("computers")
    if computers is None:
        return None
    serial = _clean(values, "serial_number")
    if serial and serial not in computer_serials(computers):
        return "El número de serie no corresponde a un equipo disponible."
    return None


def _assignment_create_payload(v: Dict[str, Any]) -> Dict[str, Any]:
    payload = {
        "user_id": _clean(v, "user_id"),
        "serial_number": _clean(v, "serial_number"),
    }
    assigned_at = _clean(v, "assigned_at")
    if assigned_at:
        payload["assigned_at"] = assigned_at
    return payload


SERIAL_MSG = "Por favor, ingrese el número de serie del equipo."

ASSIGNMENT_CREATE = FormSpec(
    name="assignment-create",
    fields=[
        _user_select(),
        FieldSpec("serial_number", message=SERIAL_MSG),
        FieldSpec("assigned_at", kind="date", required=False),
    ],
    validators=[serial_is_available],
    build_payload=_assignment_create_payload,
    send=lambda client, _id, payload: client.create_assignment(payload),
    success_message="Asignación creada exitosamente!",
)

ASSIGNMENT_EDIT = FormSpec(
    name="assignment-edit",
    fields=[
        _user_select(),
        FieldSpec("serial_number", message=SERIAL_MSG),
        FieldSpec("assigned_at", kind="date", required=False),
    ],
    load_record=lambda client, assignment_id: client.get_assignment(assignment_id),
    record_to_values=lambda rec: {
        "user_id": "" if rec.get("user_id") is None else str(rec.get("user_id")),
        "serial_number": rec.get("computer_serial") or rec.get("serial_number") or "",
        "assigned_at": date_only(rec.get("assigned_at")),
    },
    build_payload=lambda v: {
        "user_id": _clean(v, "user_id"),
        "computer_serial_number": _clean(v, "serial_number"),
        "assigned_at": _clean(v, "assigned_at"),
    },
    send=lambda client, assignment_id, payload: client.update_assignment(assignment_id, payload),
    success_message="Asignación actualizada exitosamente!",
    missing_id_message="ID de asignación no válido o no proporcionado.",
)
