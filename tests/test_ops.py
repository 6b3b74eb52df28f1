"""
Tests for operational endpoints, the error envelope and the live channel.
"""

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from starlette.websockets import WebSocketDisconnect

from workspace_chat.core.security import create_access_token
from workspace_chat.dependencies import get_group_service
from workspace_chat.main import app
from workspace_chat.models.user import Role

from conftest import COMPANY


class TestHealth:

    async def test_health(self, test_client: AsyncClient):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["mongodb"] == "healthy"
        assert data["checks"]["redis"] == "not_configured"

    async def test_correlation_id_is_echoed(self, test_client: AsyncClient):
        response = await test_client.get("/health", headers={"X-Correlation-ID": "trace-123"})
        assert response.headers["X-Correlation-ID"] == "trace-123"


class TestErrorEnvelope:

    async def test_unexpected_error_is_500_with_message(self, test_client: AsyncClient, headers):
        class BrokenService:
            async def list_groups(self, principal):
                raise RuntimeError("database exploded")

        app.dependency_overrides[get_group_service] = lambda: BrokenService()

        response = await test_client.get("/api/chat/groups", headers=headers["emp-1"])

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error"}

    async def test_unknown_route(self, test_client: AsyncClient):
        response = await test_client.get("/api/chat/nope")

        assert response.status_code == 404
        assert "message" in response.json()


class TestLiveChannel:

    def test_ping_pong(self):
        token = create_access_token("emp-1", Role.EMPLOYEE, COMPANY)
        client = TestClient(app)

        with client.websocket_connect(f"/api/chat/ws?token={token}") as websocket:
            connected = websocket.receive_json()
            assert connected == {"type": "connected", "user_id": "emp-1", "company_id": COMPANY}

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

    def test_invalid_token_is_rejected(self):
        client = TestClient(app)

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/chat/ws?token=garbage") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008
