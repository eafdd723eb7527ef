"""
Record form state: one generic create/edit form driver.

Purpose
-------
Every create/edit page follows the same cycle: seed field values (defaults
for create, a fetched record for edit), accept submitted values, validate
synchronously, build an endpoint-specific payload and make exactly one
write call. `FormState` runs that cycle for any `FormSpec`; forms.py holds
the concrete specs.

State machine
-------------
  create: IDLE -> VALIDATING -> IDLE (invalid, error set)
                             -> SUBMITTING -> SUCCEEDED | IDLE (error set)
  edit:   FETCHING_RECORD -> READY | NOT_FOUND | FETCH_ERROR   (once)
          READY -> VALIDATING -> ... as above

Validation never touches the network.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from api_client import ApiResult, PersonnelApiClient

logger = logging.getLogger(__name__)

# Route ids that mean "no id" (a client-side router can hand over the literal string)
MISSING_IDS = {"", "undefined", "null", "None"}


class FormStatus(str, Enum):
    FETCHING_RECORD = "fetching-record"
    READY = "ready"
    NOT_FOUND = "not-found"
    FETCH_ERROR = "fetch-error"
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"


# Statuses from which a submit may start
SUBMITTABLE = {FormStatus.IDLE, FormStatus.READY}


# =========================
# Multi-value codec
# =========================
def serialize_choices(selected: Iterable[str], catalog: List[str]) -> str:
    """
    Join selected labels with ", " in catalog order.
    Duplicates and labels outside the catalog are dropped, so the result
    does not depend on the order in which boxes were ticked.
    """
    chosen = {str(s).strip() for s in selected}
    return ", ".join(label for label in catalog if label in chosen)


def parse_choices(text: Optional[str]) -> List[str]:
    """Split a comma-joined string back into trimmed, non-empty labels."""
    if not text:
        return []
    return [part.strip() for part in str(text).split(",") if part.strip()]


# =========================
# Specs
# =========================
@dataclass
class FieldSpec:
    """
    One form field.

    kind: "text" | "select" | "multi" | "date"
    options_key: context key holding the options of a dependent select
                 (e.g. the approved-person list); an empty list blocks submit.
    """

    name: str
    kind: str = "text"
    required: bool = True
    message: str = ""
    default: Any = ""
    choices: Optional[List[str]] = None
    options_key: Optional[str] = None
    invalid_message: str = ""
    no_options_message: str = ""


Validator = Callable[[Dict[str, Any], Dict[str, Any]], Optional[str]]


@dataclass
class FormSpec:
    name: str
    fields: List[FieldSpec]
    build_payload: Callable[[Dict[str, Any]], Dict[str, Any]]
    send: Callable[[PersonnelApiClient, Any, Dict[str, Any]], ApiResult]
    success_message: str
    load_record: Optional[Callable[[PersonnelApiClient, Any], ApiResult]] = None
    record_to_values: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None
    validators: List[Validator] = field(default_factory=list)
    missing_id_message: str = "ID no válido o no proporcionado."

    @property
    def is_edit(self) -> bool:
        return self.load_record is not None

    def get_field(self, name: str) -> FieldSpec:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)


# =========================
# State
# =========================
class FormState:
    """Local, request-scoped state of one form."""

    def __init__(
        self,
        spec: FormSpec,
        client: PersonnelApiClient,
        record_id: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.spec = spec
        self.client = client
        self.record_id = record_id
        self.context: Dict[str, Any] = context or {}
        self.values: Dict[str, Any] = {f.name: copy.deepcopy(f.default) for f in spec.fields}
        self.record: Optional[Dict[str, Any]] = None
        self.seeded: Dict[str, Any] = {}
        self.error: Optional[str] = None
        self.message: Optional[str] = None
        self.status = FormStatus.FETCHING_RECORD if spec.is_edit else FormStatus.IDLE

    # ---- edit-mode record load ---------------------------------------------
    def load(self) -> FormStatus:
        """Fetch the record being edited; runs once, later calls are no-ops."""
        if self.status is not FormStatus.FETCHING_RECORD:
            return self.status
        if self.record_id is None or str(self.record_id).strip() in MISSING_IDS:
            self.error = self.spec.missing_id_message
            self.status = FormStatus.FETCH_ERROR
            return self.status

        result = self.spec.load_record(self.client, self.record_id)
        if result.is_ok:
            self.record = result.value
            mapper = self.spec.record_to_values
            if mapper is not None:
                self.seeded = mapper(self.record)
                self.values.update(self.seeded)
            self.status = FormStatus.READY
        elif result.not_found:
            self.error = result.error
            self.status = FormStatus.NOT_FOUND
        else:
            self.error = result.error
            self.status = FormStatus.FETCH_ERROR
        logger.debug("Form %s record %s -> %s", self.spec.name, self.record_id, self.status.value)
        return self.status

    # ---- setters -----------------------------------------------------------
    def set(self, name: str, value: Any) -> None:
        if name not in self.values:
            raise KeyError(name)
        self.values[name] = value

    def setter(self, name: str) -> Callable[[Any], None]:
        """Return a one-field setter (raises KeyError for unknown fields)."""
        if name not in self.values:
            raise KeyError(name)
        return lambda value: self.set(name, value)

    def bind(self, form: Any) -> None:
        """
        Copy submitted values from a form mapping (werkzeug MultiDict or dict).
        Unticked checkboxes are absent from a submission, so multi fields are
        always overwritten.
        """
        for f in self.spec.fields:
            if f.kind == "multi":
                if hasattr(form, "getlist"):
                    self.values[f.name] = list(form.getlist(f.name))
                else:
                    raw = form.get(f.name) or []
                    self.values[f.name] = [raw] if isinstance(raw, str) else list(raw)
            elif f.name in form:
                self.values[f.name] = form.get(f.name) or ""

    # ---- gates -------------------------------------------------------------
    def options(self, f: FieldSpec) -> Optional[List[Dict[str, Any]]]:
        if not f.options_key:
            return None
        return self.context.get(f.options_key)

    def _blocking_field(self) -> Optional[FieldSpec]:
        """First required dependent select whose option list loaded empty (and has no record value)."""
        for f in self.spec.fields:
            opts = self.options(f)
            if f.required and opts is not None and len(opts) == 0 and not self.seeded.get(f.name):
                return f
        return None

    @property
    def can_submit(self) -> bool:
        return self.status in SUBMITTABLE and self._blocking_field() is None

    # ---- validation --------------------------------------------------------
    def _check_field(self, f: FieldSpec) -> Optional[str]:
        value = self.values.get(f.name)
        if f.kind == "multi":
            picked = [v for v in (value or []) if not f.choices or v in f.choices]
            if f.required and not picked:
                return f.message
            return None

        text = "" if value is None else str(value).strip()
        if not text:
            return f.message if f.required else None
        if f.choices and text not in f.choices:
            return f.invalid_message or f.message
        opts = self.options(f)
        if opts and text not in {str(o.get("id")) for o in opts}:
            # an edit keeps the record's own choice even when it is no longer offered
            if text != str(self.seeded.get(f.name, "")):
                return f.invalid_message or f.message
        return None

    def validate(self) -> bool:
        """
        Synchronous pass; first failing rule wins and sets `error`.
        Only reachable from IDLE/READY; the form returns to that state after.
        """
        if self.status not in SUBMITTABLE:
            return False
        previous = self.status
        self.status = FormStatus.VALIDATING
        problem: Optional[str] = None
        for f in self.spec.fields:
            problem = self._check_field(f)
            if problem:
                break
        if not problem:
            for check in self.spec.validators:
                problem = check(self.values, self.context)
                if problem:
                    break
        self.status = previous
        if problem:
            self.error = problem
            return False
        self.error = None
        return True

    # ---- submit ------------------------------------------------------------
    def payload(self) -> Dict[str, Any]:
        return self.spec.build_payload(dict(self.values))

    def submit(self) -> bool:
        """
        Validate, then issue exactly one write call.
        Returns True on success (status SUCCEEDED, `message` set); otherwise
        leaves the form submittable with `error` set.
        """
        if self.status not in SUBMITTABLE:
            return False
        resting = self.status
        if not self.validate():
            return False
        blocking = self._blocking_field()
        if blocking is not None:
            self.error = blocking.no_options_message or blocking.message
            return False

        self.status = FormStatus.SUBMITTING
        result = self.spec.send(self.client, self.record_id, self.payload())
        if result.is_ok:
            self.status = FormStatus.SUCCEEDED
            self.message = self.spec.success_message
            logger.info("Form %s submitted (record %s)", self.spec.name, self.record_id)
            return True

        self.error = result.error
        self.status = resting
        logger.warning("Form %s submit failed: %s", self.spec.name, self.error)
        return False
