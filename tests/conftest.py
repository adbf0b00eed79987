"""
Shared pytest fixtures for the Org Chart Planner test suite.

Provides:
    - app: Flask application (session-scoped, "testing" config)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB recreate + cache reset (autouse)
    - client: Flask test client (function-scoped)
    - store / plan_cache / repo: planner collaborators bound to the test app
    - auth_headers: factory for identity bearer headers
    - make_plan: helper to build plan payloads
"""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest

from orgplan import create_app
from orgplan.models import db as _db
from orgplan.services.context import planner_extension

OWNER_EMAIL = "owner@example.com"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, recreate tables, reset planner state."""
    with app.app_context():
        ext = planner_extension(app)
        ext["cache"].clear_all()
        ext["access_sync"].failed.clear()
        yield
        ext["cache"].clear_all()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def store(app):
    return planner_extension(app)["store"]


@pytest.fixture()
def plan_cache(app):
    return planner_extension(app)["cache"]


@pytest.fixture()
def repo(app):
    from orgplan.services.context import build_plan_repository
    return build_plan_repository(app)


# ── Identity helpers ─────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers(app):
    """Return a function building ``Authorization`` headers for an email."""
    secret = app.config["IDENTITY_JWT_SECRET"]

    def _headers(email, **claims):
        payload = {
            "email": email,
            "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
            **claims,
        }
        return {"Authorization": f"Bearer {pyjwt.encode(payload, secret, algorithm='HS256')}"}

    return _headers


@pytest.fixture()
def owner_headers(auth_headers):
    return auth_headers(OWNER_EMAIL)


# ── Plan payloads ────────────────────────────────────────────────────────


def build_node(node_id, name, parent_id=None, **fields):
    node = {
        "id": node_id,
        "name": name,
        "position": fields.pop("position", ""),
        "grade": fields.pop("grade", ""),
        "level": fields.pop("level", 0),
        "parent_id": parent_id,
    }
    node.update(fields)
    return node


@pytest.fixture()
def make_plan():
    """Return a function building a small three-node plan payload."""

    def _make(name="Q1 proposal", period="2026-Q1", memo="", nodes=None):
        if nodes is None:
            nodes = [
                build_node("n1", "Alice", position="CEO", grade=1, level=1),
                build_node("n2", "Bob", "n1", position="CTO", grade=2, level=2),
                build_node("n3", "Carol", "n2", position="Engineer", grade=4, level=3,
                           employment="contract"),
            ]
        return {"name": name, "period": period, "memo": memo, "nodes": nodes}

    return _make
