"""
Shared pytest fixtures for the Enigma API test suite.

Provides:
    - settings: Settings pointing at a fresh SQLite file per test
    - app: application built from ``settings`` (own process state and rate windows)
    - client: FastAPI test client for ``app``
    - db: migrated Database handle on the same file
"""

import pytest
from fastapi.testclient import TestClient

from enigma_api.app.core.db import Database
from enigma_api.app.main import create_app
from tests.support import make_settings


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(settings):
    database = Database(settings.database_url)
    database.connect()
    return database
