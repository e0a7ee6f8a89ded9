"""
Shared pytest fixtures for the licensing workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + fresh action coordinator (autouse)
    - client: Flask test client (function-scoped)
    - officers: Seeded directory, {role_code: User}
    - make_application: ORM factory placing an application in any status
    - auth_headers: Bearer-token headers for a user
"""

import pytest

from alms import create_app
from alms.models import db as _db
from alms.models.application import LicenseApplication
from alms.models.workflow import TERMINAL_STATUSES, StatusCode
from alms.services.action_coordinator import init_coordinator
from alms.services.jwt_service import generate_access_token


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
    """Per-test: open app context, recreate tables afterwards.

    Application ids restart at 1 for every test, so the coordinator's
    recently-completed entries must not survive from one test to the next.
    """
    with app.app_context():
        init_coordinator(app)
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory & application factories ────────────────────────────────────


@pytest.fixture()
def officers():
    """Seed roles, hierarchy and one officer per role; return {code: User}."""
    from alms.models.auth import User
    from alms.services.seed_service import seed_workflow_directory

    seed_workflow_directory()
    return {u.role.code: u for u in User.query.all()}


@pytest.fixture()
def make_application():
    """Create an application directly in the given status (bypasses the engine)."""

    def _make(status=StatusCode.FORWARD, holder=None, previous=None, **fields):
        status = StatusCode(status)
        terminal = status in TERMINAL_STATUSES
        app = LicenseApplication(
            applicant_name=fields.pop("applicant_name", "Ravi Kumar"),
            licence_type=fields.pop("licence_type", "NEW"),
            status_code=int(status),
            current_user_id=None if terminal or holder is None else holder.id,
            current_role_id=None if terminal or holder is None else holder.role_id,
            previous_user_id=previous.id if previous else None,
            previous_role_id=previous.role_id if previous else None,
            is_pending=not terminal and status is not StatusCode.DRAFT,
            **fields,
        )
        _db.session.add(app)
        _db.session.commit()
        return app

    return _make


@pytest.fixture()
def auth_headers():
    """Return Authorization headers carrying a signed token for *user*."""

    def _headers(user):
        token = generate_access_token(user.id, user.role.code if user.role else None)
        return {"Authorization": f"Bearer {token}"}

    return _headers
