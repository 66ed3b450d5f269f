"""
Shared pytest fixtures for the montage workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / office / installer: Actor fixtures
    - settings: default AutomationSettings snapshot
    - make_montage: factory creating a montage with its checklist
"""

import shutil

import pytest

from montage_flow import create_app
from montage_flow.auth import Actor
from montage_flow.models import db as _db
from montage_flow.services.settings_service import AutomationSettings


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    yield application
    shutil.rmtree(application.config["UPLOAD_FOLDER"], ignore_errors=True)


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
        app.extensions.pop("blob_storage", None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors & settings ────────────────────────────────────────────────────


@pytest.fixture()
def admin():
    return Actor(user_id="admin-1", role="admin")


@pytest.fixture()
def office():
    return Actor(user_id="office-1", role="office")


@pytest.fixture()
def installer():
    return Actor(user_id="installer-1", role="installer")


@pytest.fixture()
def settings():
    """Defaults: every rule enabled, installer required to leave lead."""
    return AutomationSettings()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_montage(office):
    """Create a montage through the service; ``status`` is forced directly."""
    from montage_flow.services.montage_service import create_montage

    def _make(client_name="Jan Kowalski", status=None, installer_id="installer-1", **fields):
        montage = create_montage(
            {"client_name": client_name, "installer_id": installer_id, **fields}, office,
        )
        if status is not None:
            montage.status = status
            _db.session.commit()
        return montage

    return _make

