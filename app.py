"""
Flask front-end for personnel operations.

Overview
--------
Server-rendered pages over the external personnel-management API: register
and edit team members, request application access, assign computers, and a
team-management dashboard listing every request with edit/delete actions.
All persistence, status transitions and authorization live in the API; this
app only fetches, validates and forwards.

Non-functional notes
--------------------
* Every API call goes through `api_client.PersonnelApiClient`, built per
  request with the session's bearer token (`get_api()`).
* A 401 from the API anywhere ends the session and lands on /login
  (`handle_session_expired`).
* Form pages share one driver (`form_state.FormState`); specs live in forms.py.
* The session cookie holds only the API token and the login email.
"""


from __future__ import annotations

# =========================
# Standard Library Imports
# =========================
import logging
import os
import secrets
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

# =========================
# Third-Party Imports
# =========================
import httpx
from flask import (
    Flask,
    abort,
    flash,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

# =========================
# Local Modules
# =========================
from api_client import DEFAULT_BASE_PATH, ApiSession, PersonnelApiClient, SessionExpired
from dashboard import RequestAggregationView, RowKind
from form_state import FormSpec, FormState, FormStatus
from forms import (
    ACCESS_REQUEST_CREATE,
    ACCESS_REQUEST_EDIT,
    ACCESS_TYPE_CATALOG,
    ASSIGNMENT_CREATE,
    ASSIGNMENT_EDIT,
    NO_APPROVED_USERS_MSG,
    PERSON_CREATE,
    PERSON_EDIT,
    USER_TYPES,
)
from remote_collections import SourceSpec, SourceState, approved_only, fetch_sources

# =========================
# Config & Constants
# =========================
API_BASE_URL = os.environ.get("PERSONNEL_API_URL", "http://localhost:4000")
API_PREFIX = os.environ.get("PERSONNEL_API_PREFIX", DEFAULT_BASE_PATH)
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

SESSION_TOKEN_KEY = "api_token"
DASHBOARD_ENDPOINT = "team_management"
USERS_LOAD_ERROR = "No se pudieron cargar la lista de usuarios aprobados."

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Root logging setup for the web process (idempotent)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# =========================
# Flask App Setup
# =========================
app = Flask(__name__)
app.secret_key = os.environ.get("FLASK_SECRET_KEY", "supersecretkey")
app.config.update(
    PERSONNEL_API_URL=API_BASE_URL,
    PERSONNEL_API_PREFIX=API_PREFIX,
    CSRF_ENABLED=True,
)


_http_client_lock = threading.Lock()


def get_http_client() -> httpx.Client:
    """One shared httpx.Client per app (thread-safe; reused by fetch workers)."""
    client = app.extensions.get("personnel_http")
    if client is not None:
        return client
    with _http_client_lock:
        client = app.extensions.get("personnel_http")
        if client is None:
            client = httpx.Client(base_url=app.config["PERSONNEL_API_URL"])
            app.extensions["personnel_http"] = client
    return client


def get_api() -> PersonnelApiClient:
    """API client for this request, carrying the session's credential."""
    return PersonnelApiClient(
        get_http_client(),
        ApiSession(session.get(SESSION_TOKEN_KEY)),
        base_path=app.config["PERSONNEL_API_PREFIX"],
    )


# =========================
# Access Control
# =========================
def require_login(view_fn):
    """
    Decorator: require a stored API token.
    - On failure: flash + redirect to /login.
    """

    @wraps(view_fn)
    def wrapped(*args, **kwargs):
        if not session.get(SESSION_TOKEN_KEY):
            flash("Por favor, inicie sesión.", "warning")
            return redirect(url_for("login"))
        return view_fn(*args, **kwargs)

    return wrapped


@app.errorhandler(SessionExpired)
def handle_session_expired(e):
    """Any 401 from the API: drop the credential and go to login."""
    logger.info("Session expired on %s", request.path)
    session.clear()
    flash("Sesión expirada o no autorizado. Redirigiendo al login.", "error")
    return redirect(url_for("login"))


# =========================
# CSRF
# =========================
@app.before_request
def _ensure_csrf_token():
    """Ensure every session has a CSRF token (idempotent)."""
    if "csrf_token" not in session:
        session["csrf_token"] = secrets.token_hex(32)


@app.context_processor
def _inject_csrf_token():
    # exposes csrf_token() to templates
    def csrf_token():
        return session.get("csrf_token", "")

    return {"csrf_token": csrf_token}


@app.before_request
def _csrf_enforcer():
    """Every state-changing request must echo the session token."""
    if not app.config.get("CSRF_ENABLED", True):
        return None
    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return None
    sent = (request.form.get("_csrf") or request.headers.get("X-CSRF-Token") or "").strip()
    want = session.get("csrf_token") or ""
    if not sent or not want or not secrets.compare_digest(sent, want):
        return "CSRF token missing or invalid", 400
    return None


# =========================
# Auth
# =========================
@app.route("/")
def home():
    if session.get(SESSION_TOKEN_KEY):
        return redirect(url_for(DASHBOARD_ENDPOINT))
    return redirect(url_for("login"))


@app.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "GET":
        return render_template("login.html", email="", error=None)

    email = (request.form.get("email") or "").strip()
    password = request.form.get("password") or ""
    if not email or not password:
        return render_template("login.html", email=email, error="Ingrese correo y contraseña."), 400

    result = get_api().login(email, password)
    if result.is_err:
        logger.info("Login rejected for %s", email)
        status = 401 if result.status_code == 401 else 200
        return render_template("login.html", email=email, error=result.error), status

    # Fresh session on login; keep only what later requests need
    session.clear()
    session[SESSION_TOKEN_KEY] = result.value
    session["email"] = email
    return redirect(url_for(DASHBOARD_ENDPOINT))


@app.route("/logout")
def logout():
    session.clear()
    return redirect(url_for("login"))


# =========================
# Dashboard
# =========================
@app.route("/team-management")
@require_login
def team_management():
    """Unified table of person, access-request and assignment rows."""
    view = RequestAggregationView(get_api()).load()
    return render_template("team_management.html", view=view)


@app.route("/requests/<kind>/<row_id>/delete", methods=["POST"], endpoint="delete_request")
@require_login
def delete_request(kind: str, row_id: str):
    """
    Delete one dashboard row. The browser already asked for confirmation;
    the row is looked up in a fresh load so the outcome message names the
    right person and a stale row reports "not found" without a call.
    """
    try:
        row_kind = RowKind(kind)
    except ValueError:
        abort(404)

    view = RequestAggregationView(get_api()).load()
    outcome = view.delete(row_kind, row_id)
    flash(outcome.message, "success" if outcome.ok else "error")
    return redirect(url_for(DASHBOARD_ENDPOINT))


# =========================
# Form plumbing
# =========================
def _person_options(
    states: Dict[str, SourceState],
    keep_id: Any = None,
) -> Tuple[Optional[List[Dict[str, Any]]], Optional[str]]:
    """
    Approved persons for a select, plus the message to show instead when unusable.
    `keep_id` (the edited record's person) stays listed even when not approved.
    """
    state = states.get("persons")
    if state is None:
        return None, None
    if not state.loaded:
        return None, USERS_LOAD_ERROR
    approved = approved_only(state.data)
    if keep_id is not None and all(str(p.get("id")) != str(keep_id) for p in approved):
        approved += [p for p in state.data if str(p.get("id")) == str(keep_id)]
    options = [{"id": p.get("id"), "name": p.get("name") or ""} for p in approved]
    return options, (NO_APPROVED_USERS_MSG if not options else None)


def _reference_sources(needs_persons: bool, needs_computers: bool) -> List[SourceSpec]:
    specs: List[SourceSpec] = []
    if needs_persons:
        specs.append(SourceSpec("persons", lambda client: client.list_persons()))
    if needs_computers:
        specs.append(SourceSpec("computers", lambda client: client.list_computers(), require_id=False))
    return specs


def build_form(
    spec: FormSpec,
    record_id: Any = None,
    needs_persons: bool = False,
    needs_computers: bool = False,
) -> Tuple[FormState, Optional[str]]:
    """
    Create the FormState for this request and load, in parallel, the record
    being edited and any reference lists. Returns (form, users_error).
    """
    api = get_api()
    form = FormState(spec, api, record_id=record_id)
    sources = _reference_sources(needs_persons, needs_computers)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="record-load") as pool:
        record_future = pool.submit(form.load) if spec.is_edit else None
        states = fetch_sources(api, sources)
        if record_future is not None:
            record_future.result()

    keep_id = form.record.get("user_id") if form.record else None
    persons, users_error = _person_options(states, keep_id)
    if needs_persons:
        form.context["persons"] = persons
    if needs_computers:
        computers = states["computers"]
        form.context["computers"] = computers.data if computers.loaded else None
    return form, users_error


def run_form_page(
    spec: FormSpec,
    template: str,
    record_id: Any = None,
    needs_persons: bool = False,
    needs_computers: bool = False,
):
    """GET renders the form; POST binds, validates, submits once."""
    form, users_error = build_form(spec, record_id, needs_persons, needs_computers)

    if form.status is FormStatus.NOT_FOUND:
        return render_template("record_error.html", message=form.error), 404
    if form.status is FormStatus.FETCH_ERROR:
        return render_template("record_error.html", message=form.error), 502

    if request.method == "POST":
        form.bind(request.form)
        if form.submit():
            flash(form.message, "success")
            return redirect(url_for(DASHBOARD_ENDPOINT))

    return render_template(
        template,
        form=form,
        users_error=users_error,
        access_catalog=ACCESS_TYPE_CATALOG,
        user_types=USER_TYPES,
    )


# =========================
# Persons
# =========================
@app.route("/create-user", methods=["GET", "POST"])
@require_login
def create_user():
    return run_form_page(PERSON_CREATE, "person_form.html")


@app.route("/edit-user/<record_id>", methods=["GET", "POST"])
@require_login
def edit_user(record_id: str):
    return run_form_page(PERSON_EDIT, "person_form.html", record_id=record_id)


# =========================
# Access Requests
# =========================
@app.route("/access-request", methods=["GET", "POST"])
@require_login
def access_request():
    return run_form_page(ACCESS_REQUEST_CREATE, "access_request_form.html", needs_persons=True)


@app.route("/edit-access-request/<record_id>", methods=["GET", "POST"])
@require_login
def edit_access_request(record_id: str):
    return run_form_page(
        ACCESS_REQUEST_EDIT,
        "access_request_form.html",
        record_id=record_id,
        needs_persons=True,
    )


# =========================
# Computer Assignments
# =========================
@app.route("/computer-assignment", methods=["GET", "POST"])
@require_login
def computer_assignment():
    return run_form_page(
        ASSIGNMENT_CREATE,
        "computer_assignment_form.html",
        needs_persons=True,
        needs_computers=True,
    )


@app.route("/edit-computer-assignment/<record_id>", methods=["GET", "POST"])
@require_login
def edit_computer_assignment(record_id: str):
    return run_form_page(
        ASSIGNMENT_EDIT,
        "computer_assignment_form.html",
        record_id=record_id,
        needs_persons=True,
    )


if __name__ == "__main__":
    configure_logging()
    app.run(debug=True)
