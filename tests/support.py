"""Test support utilities for the Enigma API and client tests."""

import json

import requests
from fastapi.testclient import TestClient

from enigma_api.app.core.config import Settings
from enigma_api.app.core.db import Database

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass"
TEST_SECRET = "test-secret"


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        environment="development",
        secret_key=TEST_SECRET,
        database_url=str(tmp_path / "enigma.db"),
        bootstrap_timeout_seconds=5.0,
        default_admin_email=ADMIN_EMAIL,
        default_admin_password=ADMIN_PASSWORD,
        default_admin_name="Root Admin",
        rate_limit_basic="1000 per minute",
        rate_limit_auth="100 per minute",
    )
    values.update(overrides)
    return Settings(**values)


def table_count(db: Database, table: str) -> int:
    with db.get_cursor() as cursor:
        return cursor.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()["count"]


def make_response(status_code, body=None, content_type="application/json", text=None):
    """Build a ``requests.Response`` as the HTTP layer would return it."""
    response = requests.Response()
    response.status_code = status_code
    if text is not None:
        response._content = text.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


class FakeSession:
    """Stands in for ``requests.Session``; replays queued responses or errors."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers or {}})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class TestClientSession:
    """Routes ``requests``-style calls into a FastAPI ``TestClient``."""

    __test__ = False

    def __init__(self, test_client: TestClient):
        self.test_client = test_client

    def request(self, method, url, json=None, headers=None, timeout=None):
        upstream = self.test_client.request(method, url, json=json, headers=headers)
        response = requests.Response()
        response.status_code = upstream.status_code
        response._content = upstream.content
        response.headers.update(upstream.headers)
        return response
