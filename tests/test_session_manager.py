"""Tests for the client-side session manager and API client."""

import base64
import time

import pytest
import requests
from fastapi.testclient import TestClient

from enigma_api.app.core.config import Settings
from enigma_api.app.core.security import create_access_token
from enigma_client import (
    ADMIN_SURFACE,
    DEFAULT_SURFACE,
    AuthenticationRequired,
    ConfigurationError,
    EnigmaClient,
    FileCredentialStore,
    HttpError,
    Identity,
    MemoryCredentialStore,
    NetworkUnreachable,
    ResponseFormatError,
    SessionManager,
    SessionState,
    ValidationError,
    decode_claims,
)
from tests.support import ADMIN_EMAIL, ADMIN_PASSWORD, FakeSession, TestClientSession, make_response

BASE_URL = "https://api.example.org/api/v1"
SIGNING = Settings(secret_key="client-tests")


def make_token(role="user", lifetime=3600, user_id=7):
    claims = {"sub": str(user_id), "userId": user_id, "name": "Ada", "email": "ada@example.com", "role": role}
    return create_access_token(claims, expires_delta=lifetime, config=SIGNING)


def unsigned_token(payload):
    body = base64.urlsafe_b64encode(payload.encode("utf-8")).rstrip(b"=").decode("ascii")
    return f"eyJhbGciOiJIUzI1NiJ9.{body}.c2ln"


def auth_envelope(token):
    return make_response(200, {"success": True, "data": {"token": token, "user": {}}})


def make_manager(*responses, token=None, clock=time.time):
    session = FakeSession(*responses)
    client = EnigmaClient(BASE_URL, session=session)
    navigations = []
    manager = SessionManager(client, MemoryCredentialStore(token), navigator=navigations.append, clock=clock)
    return manager, session, navigations


def test_restore_without_credential_is_absent():
    manager, _, _ = make_manager()

    assert manager.restore() is SessionState.ABSENT
    assert manager.identity is None
    assert manager.auth_headers() == {}


def test_restore_valid_credential_adopts_identity():
    token = make_token(role="moderator")
    manager, _, navigations = make_manager(token=token)

    assert manager.restore() is SessionState.VALID
    assert manager.identity.subject_id == "7"
    assert manager.identity.role == "moderator"
    assert manager.identity.email == "ada@example.com"
    assert manager.is_privileged
    assert manager.auth_headers() == {"Authorization": f"Bearer {token}"}
    # Restoring never navigates.
    assert navigations == []


def test_restore_expired_credential_discards_it():
    manager, session, _ = make_manager(make_response(200, {"ok": True}), token=make_token(lifetime=-5))

    assert manager.restore() is SessionState.ABSENT
    assert manager.store.load() is None
    assert not manager.is_authenticated

    manager.request("GET", "/events")
    assert "Authorization" not in session.calls[0]["headers"]


@pytest.mark.parametrize(
    "stored",
    [
        "garbage",
        "a.b.c",
        "x.bm90LWpzb24.y",
        unsigned_token('{"sub":"1","exp":1e400}'),
        unsigned_token('{"sub":"1","exp":NaN}'),
        unsigned_token('{"sub":"1","exp":4102444800,"iat":-1e400}'),
    ],
)
def test_restore_malformed_credential_is_invalid(stored):
    manager, _, _ = make_manager(token=stored)

    assert manager.restore() is SessionState.INVALID
    assert manager.store.load() is None
    assert manager.token is None


def test_credential_expiring_while_running_is_dropped():
    now = [time.time()]
    token = make_token(lifetime=60)
    manager, _, _ = make_manager(token=token, clock=lambda: now[0])
    manager.restore()
    assert manager.token == token

    now[0] += 120

    assert manager.token is None
    assert manager.state is SessionState.ABSENT
    assert manager.store.load() is None


def test_admin_login_routes_to_admin_surface():
    token = make_token(role="admin")
    manager, session, navigations = make_manager(auth_envelope(token))

    identity = manager.login("root@example.com", "secret")

    assert identity.role == "admin"
    assert manager.state is SessionState.VALID
    assert manager.store.load() == token
    assert navigations == [ADMIN_SURFACE]
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["url"] == f"{BASE_URL}/auth/login"
    assert session.calls[0]["json"] == {"email": "root@example.com", "password": "secret"}
    assert "Authorization" not in session.calls[0]["headers"]


def test_user_login_routes_to_default_surface():
    manager, _, navigations = make_manager(auth_envelope(make_token(role="user")))

    manager.login("ada@example.com", "secret")

    assert navigations == [DEFAULT_SURFACE]
    assert manager.last_navigation == DEFAULT_SURFACE
    assert not manager.is_privileged


def test_register_adopts_returned_credential():
    token = make_token()
    manager, session, navigations = make_manager(auth_envelope(token))

    manager.register({"email": "ada@example.com", "name": "Ada", "password": "analytical"})

    assert session.calls[0]["url"] == f"{BASE_URL}/auth/register"
    assert manager.token == token
    assert navigations == [DEFAULT_SURFACE]


def test_non_json_response_is_a_format_error():
    manager, _, navigations = make_manager(make_response(502, content_type="text/html", text="<h1>Bad gateway</h1>"))

    with pytest.raises(ResponseFormatError) as excinfo:
        manager.login("ada@example.com", "secret")

    assert excinfo.value.status_code == 502
    assert "non-JSON" in manager.error
    assert manager.state is SessionState.ABSENT
    assert navigations == []


def test_missing_envelope_is_a_format_error():
    manager, _, _ = make_manager(make_response(200, {"success": True, "token": "nope"}))

    with pytest.raises(ResponseFormatError, match="data.token"):
        manager.login("ada@example.com", "secret")

    assert manager.store.load() is None


def test_http_error_keeps_status_and_message():
    manager, _, _ = make_manager(make_response(401, {"success": False, "message": "Invalid credentials"}))

    with pytest.raises(HttpError) as excinfo:
        manager.login("ada@example.com", "wrong")

    assert not isinstance(excinfo.value, ValidationError)
    assert excinfo.value.status_code == 401
    assert manager.error == "Invalid credentials"


def test_validation_errors_reach_the_caller():
    errors = [{"field": "email", "message": "Email is already registered"}]
    manager, _, _ = make_manager(
        make_response(400, {"success": False, "message": "Validation failed", "errors": errors})
    )

    with pytest.raises(ValidationError) as excinfo:
        manager.register({"email": "ada@example.com", "name": "Ada", "password": "analytical"})

    assert excinfo.value.errors == errors
    assert manager.error == "Validation failed"


def test_unreachable_server_gets_a_diagnostic():
    manager, _, _ = make_manager(requests.ConnectionError("connection refused"))

    with pytest.raises(NetworkUnreachable) as excinfo:
        manager.login("ada@example.com", "secret")

    assert "Cannot connect to API server" in str(excinfo.value)
    assert f"API URL: {BASE_URL}" in manager.error


def test_missing_base_url_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("ENIGMA_API_BASE_URL", raising=False)
    session = FakeSession()
    manager = SessionManager(EnigmaClient(session=session), MemoryCredentialStore())

    with pytest.raises(ConfigurationError):
        manager.login("ada@example.com", "secret")

    assert session.calls == []


def test_rsvp_requires_a_valid_session():
    manager, session, _ = make_manager()
    manager.restore()

    with pytest.raises(AuthenticationRequired, match="must be logged in"):
        manager.rsvp("event-1")

    assert session.calls == []


def test_rsvp_sends_bearer_credential():
    token = make_token()
    manager, session, _ = make_manager(make_response(201, {"success": True}), token=token)
    manager.restore()

    assert manager.rsvp("event-1", {"guests": 2}) == {"success": True}

    call = session.calls[0]
    assert call["url"] == f"{BASE_URL}/rsvp"
    assert call["json"] == {"guests": 2, "eventId": "event-1"}
    assert call["headers"]["Authorization"] == f"Bearer {token}"


def test_logout_clears_credential_and_navigates_home():
    manager, _, navigations = make_manager(token=make_token(role="admin"))
    manager.restore()

    manager.logout()

    assert manager.state is SessionState.ABSENT
    assert manager.store.load() is None
    assert manager.identity is None
    assert navigations == [DEFAULT_SURFACE]


def test_identity_requires_expiry_claim():
    token = make_token()
    header, _, signature = token.split(".")
    # {"sub":"1"} without exp
    no_exp = f"{header}.eyJzdWIiOiIxIn0.{signature}"

    assert decode_claims(no_exp) == {"sub": "1"}
    manager, _, _ = make_manager(token=no_exp)
    assert manager.restore() is SessionState.INVALID
    assert Identity.from_token(token).expires_at > time.time()


def test_file_store_persists_between_managers(tmp_path):
    path = tmp_path / "nested" / "credentials"
    token = make_token()

    FileCredentialStore(str(path)).save(token)
    manager = SessionManager(EnigmaClient(BASE_URL, session=FakeSession()), FileCredentialStore(str(path)))

    assert manager.restore() is SessionState.VALID
    manager.logout()
    assert not path.exists()
    assert FileCredentialStore(str(path)).load() is None


def test_end_to_end_against_the_api(app):
    with TestClient(app) as test_client:
        client = EnigmaClient("http://testserver/api/v1", session=TestClientSession(test_client))
        store = MemoryCredentialStore()
        manager = SessionManager(client, store)

        identity = manager.login(ADMIN_EMAIL, ADMIN_PASSWORD)
        assert identity.role == "admin"
        assert manager.last_navigation == ADMIN_SURFACE

        me = manager.request("GET", "/auth/me")
        assert me["data"]["user"]["email"] == ADMIN_EMAIL

        # A fresh process restores the same session from the store.
        restored = SessionManager(client, store)
        assert restored.restore() is SessionState.VALID
        assert restored.is_privileged
