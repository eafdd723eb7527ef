"""
Pytest configuration and shared fixtures.

HTTP traffic to the personnel API is mocked with respx against a real
httpx.Client, so the client code under test runs unchanged.
"""
from typing import Generator

import httpx
import pytest
import respx

from api_client import ApiSession, PersonnelApiClient

API_HOST = "http://api.test"
PREFIX = "/personnel-management"
TOKEN = "tok-123"


@pytest.fixture
def api_mock() -> Generator[respx.MockRouter, None, None]:
    """Router for the fake API; unmatched requests fail the test."""
    with respx.mock(base_url=API_HOST, assert_all_called=False) as router:
        yield router


@pytest.fixture
def http_client() -> Generator[httpx.Client, None, None]:
    with httpx.Client(base_url=API_HOST) as client:
        yield client


@pytest.fixture
def api(http_client: httpx.Client) -> PersonnelApiClient:
    """Client carrying a bearer token."""
    return PersonnelApiClient(http_client, ApiSession(TOKEN))


@pytest.fixture
def flask_app():
    """The web app pointed at the fake API, CSRF off."""
    from app import app

    app.config.update(TESTING=True, CSRF_ENABLED=False, PERSONNEL_API_URL=API_HOST)
    app.extensions.pop("personnel_http", None)
    yield app
    client = app.extensions.pop("personnel_http", None)
    if client is not None:
        client.close()


@pytest.fixture
def web(flask_app):
    """Test client with a logged-in session."""
    client = flask_app.test_client()
    with client.session_transaction() as sess:
        sess["api_token"] = TOKEN
    return client


@pytest.fixture
def persons_payload():
    return [
        {"id": 1, "name": "Ana", "status": "aprobado"},
        {"id": 2, "name": "Luis", "status": "Pendiente"},
        {"id": 3, "name": "Marta", "status": "Aprobado "},
    ]
