"""
Tests for group message endpoints.

Tests cover:
- Text normalization and length limits
- Unread counters on send and reset on fetch
- Chronological pagination
- Message deletion rules
- Fan-out: live events, notifications, mute, and failure isolation
"""

import pytest
from datetime import datetime
from httpx import AsyncClient

from workspace_chat.models.group import Group
from workspace_chat.models.message import GroupMessage


def messages_url(group: dict) -> str:
    return f"/api/chat/groups/{group['id']}/messages"


async def send(client: AsyncClient, group: dict, headers: dict, text: str):
    return await client.post(messages_url(group), json={"message_text": text}, headers=headers)


async def stored_messages(group: dict):
    stored = await Group.get(group["id"])
    return await GroupMessage.find(GroupMessage.group_id == stored.id).to_list()


class TestMessageCreation:
    """Tests for POST /api/chat/groups/{group_id}/messages"""

    async def test_send_trims_text(self, test_client: AsyncClient, headers, group):
        response = await send(test_client, group, headers["emp-1"], "  hi  ")

        assert response.status_code == 201
        data = response.json()
        assert data["message_text"] == "hi"
        assert data["sender_id"] == "emp-1"
        assert data["sender_name"] == "Erin Employee"
        assert data["group_id"] == group["id"]
        assert data["message_type"] == "text"

        messages = await stored_messages(group)
        assert [m.message_text for m in messages] == ["hi"]

    @pytest.mark.parametrize("text", ["", "   \n\t ", "x" * 1001, " " + "x" * 1001 + " "])
    async def test_invalid_text_creates_nothing(self, test_client: AsyncClient, headers, group, fanout, text):
        response = await send(test_client, group, headers["emp-1"], text)

        assert response.status_code == 400
        assert await stored_messages(group) == []
        assert (await Group.get(group["id"])).total_messages == 0
        assert fanout.connections.sent == []

    async def test_length_limit_applies_after_trimming(self, test_client: AsyncClient, headers, group):
        response = await send(test_client, group, headers["emp-1"], "  " + "x" * 1000 + "  ")

        assert response.status_code == 201
        assert len(response.json()["message_text"]) == 1000

    async def test_missing_text(self, test_client: AsyncClient, headers, group):
        response = await test_client.post(messages_url(group), json={}, headers=headers["emp-1"])

        assert response.status_code == 400
        assert response.json() == {"message": "Message text is required"}

    async def test_clients_cannot_send_system_messages(self, test_client: AsyncClient, headers, group):
        response = await test_client.post(
            messages_url(group),
            json={"message_text": "fake announcement", "message_type": "system"},
            headers=headers["emp-1"],
        )

        assert response.status_code == 400
        assert await stored_messages(group) == []

    async def test_attachment_and_reply_are_stored(self, test_client: AsyncClient, headers, group):
        first = (await send(test_client, group, headers["emp-1"], "original")).json()

        response = await test_client.post(
            messages_url(group),
            json={
                "message_text": "see file",
                "message_type": "file",
                "attachment": {"name": "plan.pdf", "mime_type": "application/pdf", "size": 3, "data": "AAA"},
                "reply_to": {"message_id": first["id"], "sender_name": "Erin Employee", "message_text": "original"},
            },
            headers=headers["emp-2"],
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message_type"] == "file"
        assert data["attachment"]["name"] == "plan.pdf"
        assert data["reply_to"]["message_id"] == first["id"]

    async def test_non_member_employee_forbidden(self, test_client: AsyncClient, headers, group):
        response = await send(test_client, group, headers["emp-3"], "let me in")

        assert response.status_code == 403
        assert response.json() == {"message": "Access denied to this group"}
        assert await stored_messages(group) == []

    async def test_non_member_admin_allowed(self, test_client: AsyncClient, headers, group):
        response = await send(test_client, group, headers["admin-2"], "admin drop-in")
        assert response.status_code == 201

    async def test_unknown_group(self, test_client: AsyncClient, headers):
        response = await test_client.post(
            "/api/chat/groups/507f1f77bcf86cd799439011/messages",
            json={"message_text": "hello?"},
            headers=headers["emp-1"],
        )
        assert response.status_code == 404

    async def test_send_updates_group_aggregate(self, test_client: AsyncClient, headers, group):
        before = (await Group.get(group["id"])).last_activity_at

        await send(test_client, group, headers["emp-1"], "one")
        await send(test_client, group, headers["emp-2"], "two")

        stored = await Group.get(group["id"])
        assert stored.total_messages == 2
        assert stored.last_activity_at >= before


class TestUnreadCounters:

    async def test_send_increments_everyone_but_sender(self, test_client: AsyncClient, headers, group, fanout):
        await send(test_client, group, headers["admin-1"], "standup in 5")
        await send(test_client, group, headers["admin-1"], "now")

        stored = await Group.get(group["id"])
        assert stored.get_member("admin-1").unread_count == 0
        assert stored.get_member("emp-1").unread_count == 2
        assert stored.get_member("emp-2").unread_count == 2

        updates = fanout.connections.events("unread_count_update", user_id="emp-1")
        assert updates == [
            {"type": "group", "group_id": group["id"], "count": 1},
            {"type": "group", "group_id": group["id"], "count": 2},
        ]
        assert fanout.connections.events("unread_count_update", user_id="admin-1") == []

    async def test_fetch_resets_counter_even_for_empty_page(self, test_client: AsyncClient, headers, group, fanout):
        for text in ("a", "b", "c"):
            await send(test_client, group, headers["emp-2"], text)
        fanout.reset()
        fetched_at = datetime.utcnow()

        # Page far beyond the end: no messages, counter still resets
        response = await test_client.get(
            messages_url(group),
            params={"page": 10, "page_size": 1},
            headers=headers["emp-1"],
        )

        assert response.status_code == 200
        assert response.json()["messages"] == []
        assert response.json()["total"] == 3

        member = (await Group.get(group["id"])).get_member("emp-1")
        assert member.unread_count == 0
        # Stored datetimes keep millisecond precision
        assert member.last_read_at >= fetched_at.replace(microsecond=fetched_at.microsecond // 1000 * 1000)

        assert fanout.connections.events("unread_count_update", user_id="emp-1") == [
            {"type": "group", "group_id": group["id"], "count": 0}
        ]

    async def test_admin_non_member_fetch_leaves_counters_alone(self, test_client: AsyncClient, headers, group, fanout):
        await send(test_client, group, headers["emp-1"], "hello")
        fanout.reset()

        response = await test_client.get(messages_url(group), headers=headers["admin-2"])

        assert response.status_code == 200
        assert len(response.json()["messages"]) == 1
        assert (await Group.get(group["id"])).get_member("emp-2").unread_count == 1
        assert fanout.connections.sent == []


class TestMessageListing:
    """Tests for GET /api/chat/groups/{group_id}/messages"""

    async def test_pages_are_chronological(self, test_client: AsyncClient, headers, group):
        for text in ("m1", "m2", "m3"):
            await send(test_client, group, headers["emp-1"], text)

        first = await test_client.get(messages_url(group), params={"page": 1, "page_size": 2}, headers=headers["emp-2"])
        data = first.json()
        assert [m["message_text"] for m in data["messages"]] == ["m2", "m3"]
        assert data["total"] == 3
        assert data["has_more"] is True

        second = await test_client.get(messages_url(group), params={"page": 2, "page_size": 2}, headers=headers["emp-2"])
        data = second.json()
        assert [m["message_text"] for m in data["messages"]] == ["m1"]
        assert data["has_more"] is False

    async def test_page_size_capped(self, test_client: AsyncClient, headers, group):
        response = await test_client.get(messages_url(group), params={"page_size": 101}, headers=headers["emp-1"])
        assert response.status_code == 400

    async def test_non_member_employee_cannot_read(self, test_client: AsyncClient, headers, group):
        response = await test_client.get(messages_url(group), headers=headers["emp-3"])
        assert response.status_code == 403


class TestMessageDeletion:
    """Tests for DELETE /api/chat/groups/{group_id}/messages/{message_id}"""

    async def test_sender_deletes_own_message(self, test_client: AsyncClient, headers, group):
        message = (await send(test_client, group, headers["emp-1"], "oops")).json()

        response = await test_client.delete(f"{messages_url(group)}/{message['id']}", headers=headers["emp-1"])

        assert response.status_code == 204
        assert await GroupMessage.get(message["id"]) is None

    async def test_other_member_cannot_delete(self, test_client: AsyncClient, headers, group):
        message = (await send(test_client, group, headers["emp-1"], "mine")).json()

        response = await test_client.delete(f"{messages_url(group)}/{message['id']}", headers=headers["emp-2"])

        assert response.status_code == 403
        assert response.json() == {"message": "You don't have permission to delete this message"}
        assert await GroupMessage.get(message["id"]) is not None

    async def test_admin_deletes_any_message(self, test_client: AsyncClient, headers, group):
        message = (await send(test_client, group, headers["emp-1"], "off topic")).json()

        response = await test_client.delete(f"{messages_url(group)}/{message['id']}", headers=headers["admin-2"])

        assert response.status_code == 204
        assert await GroupMessage.get(message["id"]) is None

    async def test_message_of_another_group_is_not_found(self, test_client: AsyncClient, headers, group):
        other = await test_client.post(
            "/api/chat/groups",
            json={"name": "Other", "member_ids": ["emp-1"]},
            headers=headers["admin-1"],
        )
        message = (await send(test_client, group, headers["emp-1"], "here")).json()

        response = await test_client.delete(
            f"/api/chat/groups/{other.json()['id']}/messages/{message['id']}",
            headers=headers["emp-1"],
        )

        assert response.status_code == 404
        assert response.json() == {"message": "Message not found"}

    async def test_cross_company_delete_is_not_found(self, test_client: AsyncClient, headers, group):
        message = (await send(test_client, group, headers["emp-1"], "private")).json()

        response = await test_client.delete(f"{messages_url(group)}/{message['id']}", headers=headers["outsider-admin"])

        assert response.status_code == 404
        assert await GroupMessage.get(message["id"]) is not None


class TestGroupFanOut:

    async def test_live_event_and_notification(self, test_client: AsyncClient, headers, group, fanout):
        response = await send(test_client, group, headers["emp-1"], "ship it")
        message = response.json()

        assert sorted(fanout.connections.recipients("group_message")) == ["admin-1", "emp-2"]
        event = fanout.connections.events("group_message", user_id="emp-2")[0]
        assert event["id"] == message["id"]
        assert event["message_text"] == "ship it"

        assert sorted(fanout.notifier.recipients()) == ["admin-1", "emp-2"]
        call = fanout.notifier.calls[0]
        assert call["title"] == "Launch"
        assert call["body"] == "Erin Employee: ship it"
        assert call["metadata"] == {"type": "group_chat", "group_id": group["id"], "sender_id": "emp-1"}

    async def test_muted_member_gets_event_but_no_notification(self, test_client: AsyncClient, headers, group, fanout):
        await test_client.patch(f"/api/chat/groups/{group['id']}/mute", json={"is_muted": True}, headers=headers["emp-2"])

        await send(test_client, group, headers["emp-1"], "quiet please")

        assert "emp-2" in fanout.connections.recipients("group_message")
        assert fanout.notifier.recipients() == ["admin-1"]
        assert (await Group.get(group["id"])).get_member("emp-2").unread_count == 1

    async def test_notifier_failure_does_not_fail_send(self, test_client: AsyncClient, headers, group, fanout):
        fanout.notifier.fail = True

        response = await send(test_client, group, headers["emp-1"], "still delivered")

        assert response.status_code == 201
        assert [m.message_text for m in await stored_messages(group)] == ["still delivered"]
        assert (await Group.get(group["id"])).get_member("emp-2").unread_count == 1

    async def test_live_channel_failure_does_not_fail_send(self, test_client: AsyncClient, headers, group, fanout):
        fanout.connections.fail = True

        response = await send(test_client, group, headers["emp-1"], "nobody online")

        assert response.status_code == 201
        assert len(await stored_messages(group)) == 1
        # Notifications are independent of the live channel
        assert sorted(fanout.notifier.recipients()) == ["admin-1", "emp-2"]
