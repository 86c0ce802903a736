"""
Shared pytest fixtures for the Baaseteen case workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB reset + default roles/stages seed (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for active users of a given role
    - make_case: factory for cases at a given status
    - auth_headers: JWT Authorization headers for a user
"""

import itertools

import pytest

from baaseteen import create_app
from baaseteen.models import db as _db
from baaseteen.models.auth import User
from baaseteen.models.case import Case, CaseType
from baaseteen.services.jwt_service import generate_access_token
from baaseteen.services.permission_service import invalidate_all_cache
from baaseteen.services.seed_service import seed_workflow_defaults

_user_seq = itertools.count(1)
_case_seq = itertools.count(1)


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
    """Per-test: open app context, seed defaults, recreate tables afterwards."""
    with app.app_context():
        # ids are reused across tests; drop cached role grants
        invalidate_all_cache()
        seed_workflow_defaults()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Return a factory creating a committed, active user with *role*."""
    def _make(role, *, full_name=None, is_active=True):
        n = next(_user_seq)
        user = User(
            username=f"{role.replace(' ', '_').lower()}_{n}",
            full_name=full_name or f"{role} user {n}",
            email=f"user{n}@example.org",
            role=role,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_case():
    """Return a factory creating a committed case at *status*.

    The case is written directly, without going through the workflow
    engine, so no history rows exist for it.
    """
    def _make(status="draft", *, case_type="baaseteen", dcm=None, counselor=None,
              applicant_name="Test Applicant", its_number="30412345"):
        n = next(_case_seq)
        ct = CaseType.query.filter_by(name=case_type).first() if case_type else None
        case = Case(
            case_number=f"TEST-{n:05d}",
            case_type_id=ct.id if ct else None,
            applicant_name=applicant_name,
            its_number=its_number,
            status=status,
            workflow_history=[],
            assigned_dcm_id=dcm.id if dcm else None,
            assigned_counselor_id=counselor.id if counselor else None,
        )
        _db.session.add(case)
        _db.session.commit()
        return case
    return _make


@pytest.fixture()
def auth_headers():
    """Return a function building JWT Authorization + Content-Type headers."""
    def _headers(user):
        token = generate_access_token(user.id, user.role)
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
    return _headers
