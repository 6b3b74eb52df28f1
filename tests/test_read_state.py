"""
Tests for ReadStateManager group counters.

Each member's counter is its own write: the right member must be hit, a
failing write must not block the others, and users who left are skipped.
"""

import pytest
from prometheus_client import REGISTRY

from workspace_chat.models.group import Group, GroupMember
from workspace_chat.services.read_state import ReadStateManager

from conftest import COMPANY


def unread_updates(status: str) -> float:
    return REGISTRY.get_sample_value("chat_unread_updates_total", {"status": status}) or 0.0


@pytest.fixture
async def stored_group(test_db) -> Group:
    group = Group(
        company_id=COMPANY,
        name="Ops",
        created_by="a",
        members=[GroupMember(user_id=uid) for uid in ("a", "b", "c")],
    )
    await group.insert()
    return group


async def stored_counts(group: Group) -> dict:
    fresh = await Group.get(group.id)
    return {member.user_id: member.unread_count for member in fresh.members}


class TestIncrementGroupUnread:

    async def test_increments_only_the_given_members(self, stored_group):
        counts = await ReadStateManager().increment_group_unread(stored_group.id, ["b", "c"])

        assert counts == {"b": 1, "c": 1}
        assert await stored_counts(stored_group) == {"a": 0, "b": 1, "c": 1}

    async def test_counts_accumulate_per_member(self, stored_group):
        read_state = ReadStateManager()
        await read_state.increment_group_unread(stored_group.id, ["c"])

        counts = await read_state.increment_group_unread(stored_group.id, ["b", "c"])

        assert counts == {"b": 1, "c": 2}
        assert await stored_counts(stored_group) == {"a": 0, "b": 1, "c": 2}

    async def test_failed_update_does_not_block_others(self, stored_group, monkeypatch):
        original_find_one = Group.find_one

        def find_one(*args, **kwargs):
            if args and isinstance(args[0], dict) and args[0].get("members.user_id") == "b":
                raise ConnectionError("write timed out")
            return original_find_one(*args, **kwargs)

        monkeypatch.setattr(Group, "find_one", find_one)
        failed_before = unread_updates("failed")

        counts = await ReadStateManager().increment_group_unread(stored_group.id, ["b", "c"])

        assert counts == {"c": 1}
        assert unread_updates("failed") == failed_before + 1

        monkeypatch.undo()
        # Not retried
        assert await stored_counts(stored_group) == {"a": 0, "b": 0, "c": 1}

    async def test_member_who_left_is_skipped(self, stored_group):
        # "gone" was a recipient when the fan-out list was taken, then left
        skipped_before = unread_updates("skipped")

        counts = await ReadStateManager().increment_group_unread(stored_group.id, ["gone", "c"])

        assert counts == {"c": 1}
        assert unread_updates("skipped") == skipped_before + 1
        assert await stored_counts(stored_group) == {"a": 0, "b": 0, "c": 1}


class TestResetAndMute:

    async def test_reset_touches_only_the_reader(self, stored_group):
        read_state = ReadStateManager()
        await read_state.increment_group_unread(stored_group.id, ["a", "b", "c"])

        assert await read_state.reset_group_unread(stored_group.id, "b") is True

        assert await stored_counts(stored_group) == {"a": 1, "b": 0, "c": 1}

    async def test_reset_for_non_member(self, stored_group):
        assert await ReadStateManager().reset_group_unread(stored_group.id, "gone") is False

    async def test_mute_targets_the_caller(self, stored_group):
        updated = await ReadStateManager().set_muted(stored_group.id, "c", True)

        assert {m.user_id: m.is_muted for m in updated.members} == {"a": False, "b": False, "c": True}

    async def test_mute_for_non_member(self, stored_group):
        assert await ReadStateManager().set_muted(stored_group.id, "gone", True) is None
