"""
Pytest configuration and shared fixtures for the messaging API tests.

This file provides reusable test fixtures including:
- An in-memory MongoDB (mongomock-motor) initialized with Beanie
- A seeded user directory across two companies
- Bearer headers per seeded user
- A test client whose fan-out dispatcher records events and notifications
"""

import os

# Must be set before the app (and its settings) are imported
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PUSH_NOTIFICATIONS_ENABLED"] = "false"

from datetime import timedelta
from typing import AsyncGenerator, Dict, List

import pytest
from beanie import init_beanie
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient

from workspace_chat.core.rate_limit import limiter
from workspace_chat.core.security import create_access_token
from workspace_chat.db.mongodb import DOCUMENT_MODELS
from workspace_chat.dependencies import get_dispatcher
from workspace_chat.main import app
from workspace_chat.models.user import User, Role
from workspace_chat.services.dispatcher import FanOutDispatcher

limiter.enabled = False

COMPANY = "company-acme"
OTHER_COMPANY = "company-globex"


# ============================================================================
# Fan-out doubles
# ============================================================================

class RecordingConnections:
    """Stands in for ConnectionManager; every user counts as connected."""

    def __init__(self):
        self.sent: List[tuple] = []
        self.fail = False

    async def send_to_user(self, user_id: str, message: dict) -> int:
        if self.fail:
            raise ConnectionError("live channel unavailable")
        self.sent.append((user_id, message))
        return 1

    def events(self, event: str, user_id: str = None) -> List[dict]:
        return [
            frame["data"]
            for target, frame in self.sent
            if frame["event"] == event and (user_id is None or target == user_id)
        ]

    def recipients(self, event: str) -> List[str]:
        return [target for target, frame in self.sent if frame["event"] == event]


class RecordingNotifier:

    def __init__(self):
        self.calls: List[dict] = []
        self.fail = False

    async def notify(self, user_id, title, body, metadata):
        if self.fail:
            raise RuntimeError("push service down")
        self.calls.append({"user_id": user_id, "title": title, "body": body, "metadata": metadata})

    def recipients(self) -> List[str]:
        return [call["user_id"] for call in self.calls]


class FanOut:

    def __init__(self):
        self.connections = RecordingConnections()
        self.notifier = RecordingNotifier()

    def dispatcher(self) -> FanOutDispatcher:
        return FanOutDispatcher(self.connections, self.notifier)

    def reset(self):
        self.connections.sent.clear()
        self.notifier.calls.clear()


# ============================================================================
# Database and directory
# ============================================================================

@pytest.fixture(scope="function")
async def test_db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    db = client["test_workspace_chat"]

    await init_beanie(database=db, document_models=DOCUMENT_MODELS)

    yield db


@pytest.fixture
async def users(test_db) -> Dict[str, User]:
    """
    Directory of two companies.

    acme: two admins, three active employees (one without a name), one
    inactive employee. globex: one admin, one employee.
    """
    seed = [
        User(id="admin-1", name="Alice Admin", email="alice@acme.test", role=Role.ADMIN, company_id=COMPANY),
        User(id="admin-2", name="Adam Admin", email="adam@acme.test", role=Role.ADMIN, company_id=COMPANY),
        User(
            id="emp-1", name="Erin Employee", email="erin@acme.test", role=Role.EMPLOYEE,
            company_id=COMPANY, push_token="ExponentPushToken[erin]",
        ),
        User(id="emp-2", name="Evan Employee", email="evan@acme.test", role=Role.EMPLOYEE, company_id=COMPANY),
        User(id="emp-3", name="", email="ella@acme.test", role=Role.EMPLOYEE, company_id=COMPANY),
        User(
            id="emp-inactive", name="Ivan Inactive", email="ivan@acme.test", role=Role.EMPLOYEE,
            company_id=COMPANY, is_active=False,
        ),
        User(id="outsider-admin", name="Olga Admin", email="olga@globex.test", role=Role.ADMIN, company_id=OTHER_COMPANY),
        User(id="outsider-emp", name="Oscar Employee", email="oscar@globex.test", role=Role.EMPLOYEE, company_id=OTHER_COMPANY),
    ]
    for user in seed:
        await user.insert()
    return {user.id: user for user in seed}


def auth_headers(user: User, expires_delta: timedelta = timedelta(hours=1)) -> Dict[str, str]:
    token = create_access_token(user.id, user.role, user.company_id, expires_delta=expires_delta)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(users) -> Dict[str, Dict[str, str]]:
    """Bearer headers keyed by user id."""
    return {user_id: auth_headers(user) for user_id, user in users.items()}


# ============================================================================
# HTTP client
# ============================================================================

@pytest.fixture
def fanout() -> FanOut:
    return FanOut()


@pytest.fixture
async def test_client(users, fanout) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client against the app.

    Unexpected exceptions are rendered by the app's 500 handler instead of
    being re-raised into the test.
    """
    app.dependency_overrides[get_dispatcher] = fanout.dispatcher
    transport = ASGITransport(app=app, raise_app_exceptions=False)

    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def group(test_client, headers, fanout) -> dict:
    """Group created by admin-1 with emp-1 and emp-2."""
    response = await test_client.post(
        "/api/chat/groups",
        json={"name": "Launch", "description": "Launch planning", "member_ids": ["emp-1", "emp-2"]},
        headers=headers["admin-1"],
    )
    assert response.status_code == 201
    fanout.reset()
    return response.json()
