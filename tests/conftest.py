"""
Shared pytest fixtures for the Apparel PLM test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_headers: ORM user factory and bearer-token helper
    - make_model: ORM product model factory (draft + two pending tracks)
    - InMemoryPermissionStore: dict-backed store for gate unit tests
"""

import pytest

from plm import create_app
from plm.models import db as _db
from plm.models.auth import User
from plm.models.product import (
    APPROVAL_TRACKS,
    ApprovalTrack,
    ModelLifecycle,
    ProductModel,
)
from plm.services.authorization import current_gate
from plm.services.capabilities import resolve
from plm.services.jwt_service import generate_access_token
from plm.services.permission_store import PermissionStore, validate_overrides


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


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
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


_counter = {"user": 0, "model": 0}


def _make_user(role="designer", **kwargs) -> User:
    _counter["user"] += 1
    n = _counter["user"]
    u = User(
        email=kwargs.pop("email", f"{role}{n}@plm.test"),
        full_name=kwargs.pop("full_name", f"{role.title()} {n}"),
        role=role,
        is_active=kwargs.pop("is_active", True),
        **kwargs,
    )
    _db.session.add(u)
    # Committed: error handlers roll the session back on 4xx responses.
    _db.session.commit()
    return u


def _make_model(created_by=None, status="draft", **kwargs) -> ProductModel:
    _counter["model"] += 1
    m = ProductModel(
        model_number=kwargs.pop("model_number", f"M-{_counter['model']:04d}"),
        model_name=kwargs.pop("model_name", "Test Shirt"),
        created_by=created_by,
        **kwargs,
    )
    m.lifecycle = ModelLifecycle(status=status, changed_by=created_by)
    m.approval_tracks = [ApprovalTrack(track=t, status="pending") for t in APPROVAL_TRACKS]
    _db.session.add(m)
    _db.session.commit()
    return m


@pytest.fixture()
def make_user():
    return _make_user


@pytest.fixture()
def make_model():
    return _make_model


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _headers


@pytest.fixture()
def gate():
    """The application's authorization gate (database-backed store)."""
    return current_gate()


# ── In-memory store ──────────────────────────────────────────────────────


class InMemoryPermissionStore(PermissionStore):
    """Dict-backed store: ``roles`` maps actor id to role name."""

    def __init__(self, roles=None):
        self.roles = dict(roles or {})
        self.overrides = {}
        self.reads = 0

    def get_permissions(self, actor_id):
        self.reads += 1
        if actor_id not in self.roles:
            return resolve(None, None)
        return resolve(self.roles[actor_id], self.overrides.get(actor_id))

    def get_overrides(self, actor_id):
        return dict(self.overrides.get(actor_id, {}))

    def set_overrides(self, actor_id, overrides):
        changes = validate_overrides(overrides)
        current = self.overrides.setdefault(actor_id, {})
        for name, value in changes.items():
            if value is None:
                current.pop(name, None)
            else:
                current[name] = value
        return self.get_permissions(actor_id)


@pytest.fixture()
def memory_store():
    return InMemoryPermissionStore()
