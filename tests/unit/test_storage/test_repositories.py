"""Tests for repository implementations."""

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from eventthreads.storage.models import (
    AuditLogModel,
    ChatMessageModel,
    ThreadModel,
    UserModel,
)

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


def make_thread(thread_id="t1", creator_id="carol-id", **overrides):
    values = dict(
        thread_id=thread_id,
        title="Board games",
        description="Bring your own",
        location="Library",
        creator_id=creator_id,
        creator_name="carol",
        created_at=NOW,
        expires_at=NOW + timedelta(hours=2),
        tags=["games"],
        members=[creator_id],
    )
    values.update(overrides)
    return ThreadModel(**values)


def make_message(message_id, thread_id="t1", **overrides):
    values = dict(
        message_id=message_id,
        thread_id=thread_id,
        author_name="carol",
        author_id="carol-id",
        body=f"body {message_id}",
        created_at=NOW,
    )
    values.update(overrides)
    return ChatMessageModel(**values)


class TestUserRepository:
    """Test user repository."""

    async def test_create_and_get_user(self, storage):
        user = UserModel(user_id="u1", username="alice", created_at=NOW)

        await storage.users.create_user(user)
        retrieved = await storage.users.get_user("u1")

        assert retrieved is not None
        assert retrieved.username == "alice"
        assert retrieved.is_admin is False
        assert retrieved.created_at == NOW

    async def test_username_lookup_ignores_case(self, storage):
        await storage.users.create_user(
            UserModel(user_id="u1", username="Alice", created_at=NOW)
        )

        found = await storage.users.get_by_username("aLiCe")

        assert found is not None
        assert found.user_id == "u1"

    async def test_duplicate_username_rejected(self, storage):
        await storage.users.create_user(
            UserModel(user_id="u1", username="alice", created_at=NOW)
        )

        with pytest.raises(sqlite3.IntegrityError):
            await storage.users.create_user(
                UserModel(user_id="u2", username="ALICE", created_at=NOW)
            )

    async def test_get_users_skips_unknown_ids(self, storage):
        await storage.users.create_user(
            UserModel(user_id="u1", username="alice", created_at=NOW)
        )

        users = await storage.users.get_users(["u1", "missing", "u1"])

        assert list(users) == ["u1"]
        assert await storage.users.get_users([]) == {}

    async def test_all_users_newest_first(self, storage):
        await storage.users.create_user(
            UserModel(user_id="u1", username="alice", created_at=NOW)
        )
        await storage.users.create_user(
            UserModel(
                user_id="u2", username="bob", created_at=NOW + timedelta(minutes=1)
            )
        )

        users = await storage.users.get_all_users()

        assert [user.user_id for user in users] == ["u2", "u1"]
        assert len(users) == 2


class TestThreadRepository:
    """Test thread aggregate storage."""

    async def test_create_and_load_aggregate(self, storage):
        await storage.threads.create_thread(make_thread())

        thread = await storage.threads.get_thread("t1")

        assert thread is not None
        assert thread.title == "Board games"
        assert thread.tags == ["games"]
        assert thread.members == ["carol-id"]
        assert thread.pending_requests == []
        assert thread.chat == []
        assert thread.expires_at == NOW + timedelta(hours=2)

    async def test_missing_thread(self, storage):
        assert await storage.threads.get_thread("nope") is None

    async def test_expiry_must_follow_creation(self, storage):
        with pytest.raises(sqlite3.IntegrityError):
            await storage.threads.create_thread(make_thread(expires_at=NOW))

    async def test_list_threads_newest_first(self, storage):
        await storage.threads.create_thread(make_thread("old"))
        await storage.threads.create_thread(
            make_thread(
                "new",
                created_at=NOW + timedelta(minutes=5),
                expires_at=NOW + timedelta(hours=3),
            )
        )
        await storage.memberships.add_request("old", "bob-id", NOW)

        threads = await storage.threads.list_threads()

        assert [thread.thread_id for thread in threads] == ["new", "old"]
        assert threads[1].pending_requests == ["bob-id"]
        assert threads[0].pending_requests == []

    async def test_update_fields(self, storage):
        await storage.threads.create_thread(make_thread())

        changed = await storage.threads.update_fields(
            "t1", {"title": "Chess", "tags": ["chess", "games"]}
        )
        thread = await storage.threads.get_thread("t1")

        assert changed == 1
        assert thread.title == "Chess"
        assert thread.tags == ["chess", "games"]
        assert thread.location == "Library"

    async def test_update_rejects_other_columns(self, storage):
        await storage.threads.create_thread(make_thread())

        with pytest.raises(ValueError):
            await storage.threads.update_fields("t1", {"expires_at": NOW})

    async def test_delete_removes_everything(self, storage):
        await storage.threads.create_thread(make_thread())
        await storage.memberships.add_request("t1", "bob-id", NOW)
        await storage.chat.append_message(make_message("m1"))

        assert await storage.threads.delete_thread("t1") is True
        assert await storage.threads.get_thread("t1") is None
        async with storage.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM chat_messages WHERE thread_id = ?", ("t1",)
            )
            assert (await cursor.fetchone())[0] == 0
        assert await storage.threads.delete_thread("t1") is False


class TestMembershipRepository:
    """Test join request transitions."""

    async def test_duplicate_request_rejected(self, storage):
        await storage.threads.create_thread(make_thread())
        await storage.memberships.add_request("t1", "bob-id", NOW)

        with pytest.raises(sqlite3.IntegrityError):
            await storage.memberships.add_request("t1", "bob-id", NOW)

    async def test_approve_moves_requester_and_posts_notice(self, storage):
        await storage.threads.create_thread(make_thread())
        await storage.memberships.add_request("t1", "bob-id", NOW)
        notice = make_message(
            "n1", author_name="System", author_id=None, is_system=True
        )

        await storage.memberships.approve_request("t1", "bob-id", NOW, notice)
        thread = await storage.threads.get_thread("t1")

        assert thread.members == ["carol-id", "bob-id"]
        assert thread.pending_requests == []
        assert [message.message_id for message in thread.chat] == ["n1"]
        assert thread.chat[0].is_system is True
        assert thread.chat[0].author_id is None
        assert notice.seq is not None

    async def test_approve_without_request_changes_nothing(self, storage):
        await storage.threads.create_thread(make_thread())

        with pytest.raises(LookupError):
            await storage.memberships.approve_request(
                "t1", "bob-id", NOW, make_message("n1")
            )

        thread = await storage.threads.get_thread("t1")
        assert thread.members == ["carol-id"]
        assert thread.chat == []

    async def test_deny(self, storage):
        await storage.threads.create_thread(make_thread())
        await storage.memberships.add_request("t1", "bob-id", NOW)

        assert await storage.memberships.deny_request("t1", "bob-id") is True
        assert await storage.memberships.deny_request("t1", "bob-id") is False

        thread = await storage.threads.get_thread("t1")
        assert thread.pending_requests == []
        assert thread.members == ["carol-id"]


class TestChatRepository:
    """Test chat log storage."""

    async def test_messages_keep_insertion_order(self, storage):
        await storage.threads.create_thread(make_thread())
        # Same timestamp for all; order comes from the sequence
        for message_id in ("m3", "m1", "m2"):
            await storage.chat.append_message(make_message(message_id))

        messages = (await storage.threads.get_thread("t1")).chat

        assert [message.message_id for message in messages] == ["m3", "m1", "m2"]
        assert messages[0].seq < messages[1].seq < messages[2].seq

    async def test_message_requires_existing_thread(self, storage):
        with pytest.raises(sqlite3.IntegrityError):
            await storage.chat.append_message(make_message("m1", thread_id="nope"))


class TestAuditLogRepository:
    """Test audit log storage."""

    async def test_log_and_read_back(self, storage):
        await storage.audit.log_event(
            AuditLogModel(
                event_type="ThreadCreatedEvent",
                timestamp=NOW,
                user_id="carol-id",
                event_data={"thread_id": "t1", "duration_hours": 2},
            )
        )
        await storage.audit.log_event(
            AuditLogModel(event_type="JoinRequestedEvent", timestamp=NOW)
        )

        recent = await storage.audit.get_recent_audit_log(limit=10)
        carol_entries = [entry for entry in recent if entry.user_id == "carol-id"]

        assert [entry.event_type for entry in recent] == [
            "JoinRequestedEvent",
            "ThreadCreatedEvent",
        ]
        assert carol_entries[0].event_data == {"thread_id": "t1", "duration_hours": 2}
        assert carol_entries[0].timestamp == NOW
