"""Enigma API client and session manager.

This module is the client half of the application.  It holds the
session credential issued by the API, decides locally whether that
credential can still be used, and attaches it to outgoing requests.

* :class:`EnigmaClient` – thin wrapper around ``requests`` that turns
  transport and HTTP failures into typed exceptions.
* :class:`SessionManager` – owns the stored credential and the session
  state (``absent``, ``valid``, ``expired``, ``invalid``), performs
  login, registration and logout, routes administrators to the admin
  surface, and guards actions such as RSVP that need a signed-in user.
* :class:`FileCredentialStore` / :class:`MemoryCredentialStore` – where
  the credential is persisted between runs.

Validation of a stored credential is purely local: the token's claims
are decoded and its ``exp`` compared with the clock, without a server
round trip.  The API re-verifies the signature on every protected
route, so this check only decides what the client offers to do.

The client reads its base URL from ``ENIGMA_API_BASE_URL`` unless one is
passed explicitly, e.g.::

    client = EnigmaClient("https://api.example.org/api/v1")
    session = SessionManager(client, FileCredentialStore())
    session.restore()
    if not session.is_authenticated:
        session.login("member@example.com", "secret")
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests


logger = logging.getLogger(__name__)

ADMIN_SURFACE = "/admin"
DEFAULT_SURFACE = "/"
PRIVILEGED_ROLES = frozenset({"admin", "moderator"})


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class ClientError(Exception):
    """Base class for errors raised by this module."""


class ConfigurationError(ClientError):
    """The API base URL is missing."""


class NetworkUnreachable(ClientError):
    """The API server could not be reached at all."""


class ResponseFormatError(ClientError):
    """The server answered with something other than the expected JSON envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HttpError(ClientError):
    """The server answered with a non-success status code."""

    def __init__(self, status_code: int, message: str, body: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.body = body or {}


class ValidationError(HttpError):
    """The server rejected the payload; ``errors`` lists the offending fields."""

    def __init__(self, status_code: int, message: str, errors: list, body: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code, message, body)
        self.errors = errors


class AuthenticationRequired(ClientError):
    """An action needs a valid session and none is held."""


class CredentialDecodeError(ClientError):
    """A credential could not be decoded into claims."""


class CredentialExpired(ClientError):
    """A credential's ``exp`` lies in the past."""


# ----------------------------------------------------------------------
# Credentials
# ----------------------------------------------------------------------
def _b64_url_decode(data: str) -> bytes:
    """Decode base64‑url encoded string, adding padding if necessary."""
    padding = '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def decode_claims(token: str) -> Dict[str, Any]:
    """Return the payload of a ``header.payload.signature`` token.

    The signature is not checked; only the server holds the key.

    Raises:
        CredentialDecodeError: If the token is not a three-part token
            with a JSON object payload.
    """
    parts = token.split('.') if isinstance(token, str) else []
    if len(parts) != 3:
        raise CredentialDecodeError("Credential is not a signed token")
    try:
        claims = json.loads(_b64_url_decode(parts[1]).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise CredentialDecodeError(f"Credential payload is not decodable: {exc}") from exc
    if not isinstance(claims, dict):
        raise CredentialDecodeError("Credential payload is not an object")
    return claims


@dataclass
class Identity:
    """Who the current credential says the user is."""

    subject_id: str
    role: str
    expires_at: int
    issued_at: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_privileged(self) -> bool:
        """True for roles allowed into the admin console."""
        return self.role in PRIVILEGED_ROLES

    @classmethod
    def from_token(cls, token: str) -> "Identity":
        claims = decode_claims(token)
        subject = claims.get("sub") or claims.get("userId")
        try:
            expires_at = int(claims["exp"])
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise CredentialDecodeError("Credential has no usable exp claim") from exc
        if subject is None:
            raise CredentialDecodeError("Credential has no subject")
        issued_at = claims.get("iat")
        try:
            issued_at = int(issued_at) if isinstance(issued_at, (int, float)) else None
        except (ValueError, OverflowError) as exc:
            raise CredentialDecodeError("Credential has an unusable iat claim") from exc
        return cls(
            subject_id=str(subject),
            role=str(claims.get("role") or "user"),
            expires_at=expires_at,
            issued_at=issued_at,
            name=claims.get("name"),
            email=claims.get("email"),
            claims=claims,
        )


class CredentialStore:
    """Where the session credential lives between runs."""

    def load(self) -> Optional[str]:
        raise NotImplementedError

    def save(self, token: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, token: Optional[str] = None) -> None:
        self.token = token

    def load(self) -> Optional[str]:
        return self.token

    def save(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


class FileCredentialStore(CredentialStore):
    """Keep the credential in a file readable only by the current user.

    The path defaults to ``ENIGMA_CREDENTIALS_PATH`` or
    ``~/.enigma/credentials``.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        default = os.getenv("ENIGMA_CREDENTIALS_PATH") or str(Path.home() / ".enigma" / "credentials")
        self.path = Path(path or default)

    def load(self) -> Optional[str]:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        os.chmod(self.path, 0o600)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


# ----------------------------------------------------------------------
# HTTP
# ----------------------------------------------------------------------
class EnigmaClient:
    """Client for the Enigma REST API.

    Every call returns the parsed JSON body or raises one of the
    :class:`ClientError` subclasses, so callers can tell an unreachable
    server, a non-JSON answer and an HTTP error status apart.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        url = base_url if base_url is not None else os.getenv("ENIGMA_API_BASE_URL", "")
        self.base_url = url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _network_error_message(self) -> str:
        return (
            "Network Error: Cannot connect to API server.\n\n"
            f"API URL: {self.base_url}\n\n"
            "Possible causes:\n"
            "1. ENIGMA_API_BASE_URL is not set correctly\n"
            "2. Backend server is not running or unreachable\n"
            "3. A proxy or firewall is blocking the request"
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        token: Optional[str] = None,
    ) -> Any:
        """Perform an HTTP request to the API.

        Args:
            method: HTTP method (``GET``, ``POST``, etc.).
            path: Path relative to :attr:`base_url` (e.g. ``/auth/login``).
            json_body: JSON body to send with the request.
            token: Bearer credential to attach, if any.
        Returns:
            The parsed JSON body (``None`` for empty responses).
        """
        if not self.base_url or self.base_url == "undefined":
            raise ConfigurationError(
                "API URL not configured! Set ENIGMA_API_BASE_URL or pass base_url to EnigmaClient."
            )
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.error("API server unreachable (%s): %s", url, exc)
            raise NetworkUnreachable(self._network_error_message()) from exc

        if not response.content:
            if response.ok:
                return None
            raise HttpError(response.status_code, response.reason or "Request failed")

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            raise ResponseFormatError(
                f"Server returned non-JSON response. Status: {response.status_code}. "
                "This might be a proxy or server configuration issue.",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ResponseFormatError(
                f"Server returned malformed JSON. Status: {response.status_code}.",
                status_code=response.status_code,
            ) from exc

        if not response.ok:
            raise self._http_error(response.status_code, body)
        return body

    @staticmethod
    def _http_error(status_code: int, body: Any) -> HttpError:
        if not isinstance(body, dict):
            return HttpError(status_code, str(body))
        message = body.get("message") or body.get("detail") or f"Request failed with status {status_code}"
        if not isinstance(message, str):
            message = str(message)
        errors = body.get("errors")
        if isinstance(errors, list):
            return ValidationError(status_code, message, errors, body)
        logger.error("API request failed (%s): %s", status_code, message)
        return HttpError(status_code, message, body)


# ----------------------------------------------------------------------
# Session
# ----------------------------------------------------------------------
class SessionState(str, Enum):
    ABSENT = "absent"
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


class SessionManager:
    """Owns the session credential and decides whether it can be used.

    Args:
        client: API client used for login, registration and gated calls.
        store: Where the credential is persisted.
        navigator: Called with the surface to show after login/logout
            (``/admin`` or ``/``).  Optional.
        clock: Returns the current UNIX time; injectable for tests.
    """

    def __init__(
        self,
        client: EnigmaClient,
        store: CredentialStore,
        navigator: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.store = store
        self.navigator = navigator
        self.clock = clock
        self.state = SessionState.ABSENT
        self.identity: Optional[Identity] = None
        self.error: Optional[str] = None
        self.last_navigation: Optional[str] = None
        self._token: Optional[str] = None

    # -- state ---------------------------------------------------------
    def restore(self) -> SessionState:
        """Load the persisted credential and classify it.

        Malformed credentials end in ``invalid`` and expired ones in
        ``absent``; both are removed from the store.
        """
        self._forget()
        token = self.store.load()
        if not token:
            self.state = SessionState.ABSENT
            return self.state
        try:
            identity = Identity.from_token(token)
        except CredentialDecodeError as exc:
            logger.warning("Discarding stored credential: %s", exc)
            self.store.clear()
            self.state = SessionState.INVALID
            return self.state
        if self._is_expired(identity):
            self._expire()
            return self.state
        self._set_valid(token, identity)
        return self.state

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def is_privileged(self) -> bool:
        """True when the UI may offer the admin console."""
        return self.is_authenticated and self.identity is not None and self.identity.is_privileged

    @property
    def token(self) -> Optional[str]:
        """The bearer credential, or ``None`` unless the session is valid.

        A credential that expired while the process was running is
        discarded here.
        """
        if self.state is not SessionState.VALID or self.identity is None:
            return None
        if self._is_expired(self.identity):
            self._expire()
            return None
        return self._token

    def auth_headers(self) -> Dict[str, str]:
        token = self.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    # -- actions -------------------------------------------------------
    def login(self, email: str, password: str) -> Identity:
        """Sign in and navigate to the surface matching the user's role."""
        return self._authenticate("/auth/login", {"email": email, "password": password})

    def register(self, user_data: Dict[str, Any]) -> Identity:
        """Create an account and sign in with the returned credential.

        A :class:`ValidationError` carries the server's field-level
        errors so forms can show them next to the inputs.
        """
        return self._authenticate("/auth/register", user_data)

    def logout(self) -> None:
        self.store.clear()
        self._forget()
        self.state = SessionState.ABSENT
        self._navigate(DEFAULT_SURFACE)

    def rsvp(self, event_id: Any, payload: Optional[Dict[str, Any]] = None) -> Any:
        """RSVP to an event.  Requires a valid session; otherwise no call is made."""
        token = self.token
        if token is None:
            self.error = "You must be logged in to RSVP"
            raise AuthenticationRequired(self.error)
        body = dict(payload or {})
        body["eventId"] = event_id
        return self.client.request("POST", "/rsvp", json_body=body, token=token)

    def request(self, method: str, path: str, *, json_body: Any = None) -> Any:
        """Call the API with the bearer credential attached while valid."""
        return self.client.request(method, path, json_body=json_body, token=self.token)

    # -- internals -----------------------------------------------------
    def _authenticate(self, path: str, payload: Dict[str, Any]) -> Identity:
        self.error = None
        try:
            body = self.client.request("POST", path, json_body=payload)
            token = self._extract_token(body)
            identity = Identity.from_token(token)
        except NetworkUnreachable as exc:
            self.error = str(exc)
            logger.error("Network error during %s", path)
            raise
        except ClientError as exc:
            self.error = str(exc) or "An unknown error occurred."
            raise
        if self._is_expired(identity):
            self.error = "Server issued an expired credential"
            raise CredentialExpired(self.error)
        self.store.save(token)
        self._set_valid(token, identity)
        self._navigate(ADMIN_SURFACE if identity.is_privileged else DEFAULT_SURFACE)
        return identity

    @staticmethod
    def _extract_token(body: Any) -> str:
        data = body.get("data") if isinstance(body, dict) else None
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise ResponseFormatError("Response is missing the data.token envelope")
        return token

    def _is_expired(self, identity: Identity) -> bool:
        return identity.expires_at <= self.clock()

    def _set_valid(self, token: str, identity: Identity) -> None:
        self._token = token
        self.identity = identity
        self.state = SessionState.VALID

    def _expire(self) -> None:
        logger.info("Stored credential expired; signing out")
        self.state = SessionState.EXPIRED
        self.store.clear()
        self._forget()
        self.state = SessionState.ABSENT

    def _forget(self) -> None:
        self._token = None
        self.identity = None

    def _navigate(self, target: str) -> None:
        self.last_navigation = target
        logger.info("Navigating to %s", target)
        if self.navigator is not None:
            self.navigator(target)
