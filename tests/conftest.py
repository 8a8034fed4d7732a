"""
Shared pytest fixtures for the portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / editor / viewer / manager: Principals for the gate
    - auth_headers: Bearer headers minted for a Principal
    - make_company / make_facility / make_application / make_submission: row builders
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.application import ActivitySubmission, Application
from portal.models.registry import Company, Facility, User
from portal.services.jwt_service import generate_access_token
from portal.services.permission import Principal


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
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Principals ───────────────────────────────────────────────────────────


@pytest.fixture()
def admin():
    return Principal(id="admin-1", role="system_admin", permission_level="owner")


@pytest.fixture()
def company(make_company):
    return make_company("Acme")


@pytest.fixture()
def facility(make_facility, company):
    return make_facility(company)


@pytest.fixture()
def editor(company):
    return Principal(id="editor-1", role="team_member", permission_level="editor", company_id=company.id)


@pytest.fixture()
def viewer(company):
    return Principal(id="viewer-1", role="team_member", permission_level="viewer", company_id=company.id)


@pytest.fixture()
def manager(company):
    return Principal(id="manager-1", role="team_member", permission_level="manager", company_id=company.id)


@pytest.fixture()
def auth_headers(app):
    """Return a callable: auth_headers(principal) -> {"Authorization": "Bearer ..."}."""

    def _headers(principal):
        with app.app_context():
            token = generate_access_token(principal)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Row builders ─────────────────────────────────────────────────────────


@pytest.fixture()
def make_company():
    def _make(name, short_name=None, **kwargs):
        row = Company(name=name, short_name=short_name or name.upper()[:6], **kwargs)
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_facility():
    def _make(company, name=None, code=None):
        count = Facility.query.filter_by(company_id=company.id).count()
        row = Facility(
            company_id=company.id,
            name=name or f"Plant {count + 1}",
            code=code or f"{count + 1:03d}",
        )
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_application():
    def _make(company, facility, application_id, activity_type="FRA", title="Boiler retrofit"):
        row = Application(
            application_id=application_id,
            company_id=company.id,
            facility_id=facility.id,
            activity_type=activity_type,
            title=title,
        )
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_submission():
    base = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def _make(application, activity_type, status="draft", minutes=0):
        at = base + timedelta(minutes=minutes)
        row = ActivitySubmission(
            application_id=application.id,
            activity_type=activity_type,
            data={},
            status=status,
            submitted_at=at if status != "draft" else None,
            created_at=at,
            updated_at=at,
        )
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make


@pytest.fixture()
def make_user():
    def _make(user_id, company, permission_level="viewer", role="team_member"):
        row = User(
            id=user_id,
            email=f"{user_id}@example.com",
            role=role,
            permission_level=permission_level,
            company_id=company.id if company is not None else None,
        )
        _db.session.add(row)
        _db.session.commit()
        return row

    return _make
