"""Shared test fixtures for the AccountDesk test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: owner, assistant and outsider users; a workspace in
  America/New_York with two accounts (one assigned to the assistant);
  invitations in every state
- login: helper that signs a user in through /auth/login
"""

from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from accountdesk import create_app
from accountdesk.extensions import db as _db
from accountdesk.models.account import Account, AccountAssignment
from accountdesk.models.invitation import WorkspaceInvitation
from accountdesk.models.user import User
from accountdesk.models.workspace import Workspace, WorkspaceMember
from accountdesk.utils import utcnow

PASSWORD = "password123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def login(client):
    """Sign in as `email` and return the response."""

    def _login(email, password=PASSWORD):
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


def _user(email, full_name):
    user = User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        full_name=full_name,
    )
    _db.session.add(user)
    _db.session.flush()
    return user


@pytest.fixture
def seed_data(app, db_session):
    """Seed the database and return the created objects and their ids."""
    now = utcnow()

    owner = _user("owner@example.com", "Olivia Owner")
    assistant = _user("assistant@example.com", "Andy Assistant")
    outsider = _user("outsider@example.com", "Oscar Outsider")

    # --- Workspace ---
    workspace = Workspace(name="Acme Household", owner_id=owner.id, timezone="America/New_York")
    _db.session.add(workspace)
    _db.session.flush()

    _db.session.add(WorkspaceMember(workspace_id=workspace.id, user_id=owner.id, role="owner"))
    _db.session.add(WorkspaceMember(workspace_id=workspace.id, user_id=assistant.id, role="assistant"))

    # --- Accounts ---
    bank = Account(workspace_id=workspace.id, name="Bank", username="olivia", website="https://bank.example.com")
    utilities = Account(workspace_id=workspace.id, name="Utilities", username="acme-home")
    _db.session.add_all([bank, utilities])
    _db.session.flush()
    _db.session.add(AccountAssignment(account_id=bank.id, user_id=assistant.id))

    # --- Invitations ---
    pending = WorkspaceInvitation(
        workspace_id=workspace.id,
        email="new@example.com",
        role="assistant",
        status="pending",
        invited_by=owner.id,
        created_at=now,
        expires_at=now + timedelta(days=7),
    )
    outsider_invite = WorkspaceInvitation(
        workspace_id=workspace.id,
        email="outsider@example.com",
        role="assistant",
        status="pending",
        invited_by=owner.id,
        created_at=now,
        expires_at=now + timedelta(days=7),
    )
    # Stored as pending, but past its expiry
    stale = WorkspaceInvitation(
        workspace_id=workspace.id,
        email="late@example.com",
        role="assistant",
        status="pending",
        invited_by=owner.id,
        created_at=now - timedelta(days=8),
        expires_at=now - timedelta(days=1),
    )
    accepted = WorkspaceInvitation(
        workspace_id=workspace.id,
        email="assistant@example.com",
        role="assistant",
        status="accepted",
        invited_by=owner.id,
        created_at=now - timedelta(days=2),
        expires_at=now + timedelta(days=5),
        accepted_at=now - timedelta(days=1),
        accepted_by=assistant.id,
    )
    _db.session.add_all([pending, outsider_invite, stale, accepted])
    _db.session.commit()

    return {
        "owner": owner,
        "owner_id": owner.id,
        "assistant": assistant,
        "assistant_id": assistant.id,
        "outsider": outsider,
        "outsider_id": outsider.id,
        "workspace": workspace,
        "workspace_id": workspace.id,
        "bank": bank,
        "bank_id": bank.id,  # assigned to the assistant
        "utilities": utilities,
        "utilities_id": utilities.id,  # not assigned
        "pending_invite": pending,
        "pending_invite_id": pending.id,
        "outsider_invite": outsider_invite,
        "outsider_invite_id": outsider_invite.id,
        "stale_invite": stale,
        "stale_invite_id": stale.id,
        "accepted_invite": accepted,
        "accepted_invite_id": accepted.id,
    }
