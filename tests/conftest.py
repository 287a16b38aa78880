"""
Shared pytest fixtures for the AgencyFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / controller / other_controller / client_user / other_client: users
    - make_project: factory inserting a Project row directly
"""

import pytest

from agencyflow import create_app
from agencyflow.models import db as _db
from agencyflow.models.project import Project
from agencyflow.models.user import ROLE_ADMIN, ROLE_CLIENT, ROLE_CONTROLLER, User


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
        app.config["PROJECT_STRICT_TRANSITIONS"] = False
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(email, role, first_name="", last_name="", is_active=True):
    user = User(email=email, role=role, first_name=first_name, last_name=last_name, is_active=is_active)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin():
    return _make_user("admin@test.local", ROLE_ADMIN, "Ada", "Admin")


@pytest.fixture()
def controller():
    return _make_user("ctrl@test.local", ROLE_CONTROLLER, "Cem", "Controller")


@pytest.fixture()
def other_controller():
    return _make_user("ctrl2@test.local", ROLE_CONTROLLER, "Deniz", "Controller")


@pytest.fixture()
def client_user():
    return _make_user("client@test.local", ROLE_CLIENT, "Acme", "Client")


@pytest.fixture()
def other_client():
    return _make_user("client2@test.local", ROLE_CLIENT, "Globex", "Client")


# ── Projects ─────────────────────────────────────────────────────────────


@pytest.fixture()
def make_project():
    """Insert a project row directly (no notifications)."""

    def _make(client, controller=None, **fields):
        project = Project(
            title=fields.pop("title", "Website Relaunch"),
            client_id=client.id,
            controller_id=controller.id if controller else None,
            **fields,
        )
        _db.session.add(project)
        _db.session.commit()
        return project

    return _make
