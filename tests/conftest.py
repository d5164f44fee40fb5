"""
Shared pytest fixtures for the Control Tower test suite.

Provides:
    - app: Flask application (session-scoped)
    - client: Flask test client with an emptied cache store (function-scoped)
    - store: fresh MemoryCacheStore per test
    - NOW_ISO: fixed clock used across engine tests
"""

import pytest

from control_tower import create_app
from control_tower.services.cache_service import MemoryCacheStore

NOW_ISO = "2026-01-07T12:00:00.000Z"
WEEK_KEY = "2026-W02"


# ── App fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture()
def client(app):
    app.extensions["cache_store"].clear()
    return app.test_client()


# ── Engine fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def store():
    return MemoryCacheStore()


@pytest.fixture()
def now_iso():
    return NOW_ISO
