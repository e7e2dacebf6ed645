"""
VoiceConnect Backend: Notification Service Tests
==================================================

What:  Tests for the notification queue (write side) and the inbox
       queries (read side).
How:   Each queue test builds its own NotificationService on the test
       database, so the autouse `notifications` mock of the shared
       instance does not interfere.

What we test:
    ✅ Title/message built from the actor and post title
    ✅ Queued notifications are written once drained
    ✅ User preferences skip a notification without failing
    ✅ Unknown recipients mark the item failed, the queue keeps going
    ✅ Items staged on a session queue on commit and vanish on rollback
    ✅ Listing, unread_count, mark_read (owner only) and mark_all_read
"""

import uuid

import pytest
from sqlalchemy import select

from voiceconnect.database import async_session_factory
from voiceconnect.exceptions import NotFoundError
from voiceconnect.models.notification import Notification
from voiceconnect.models.user import User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.services.notification_service import NotificationService, build_content


class TestBuildContent:

    def test_connection_request_includes_note(self):
        content = build_content(
            "connection_request", {"actor_name": "Alice", "message": "Loved your post"}
        )
        assert content["title"] == "New Connection Request"
        assert content["message"] == 'Alice sent you a connection request: "Loved your post"'

    def test_post_like_with_title(self):
        content = build_content("post_like", {"actor_name": "Bob", "post_title": "Morning"})
        assert content["message"] == 'Bob liked your post: "Morning"'

    def test_missing_actor_falls_back(self):
        content = build_content("new_post", {})
        assert content["message"] == "Someone shared a new audio post"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            build_content("mystery", {})


class TestQueue:

    def setup_method(self):
        self.service = NotificationService(session_factory=async_session_factory)

    @pytest.mark.asyncio
    async def test_send_then_drain_writes_row(self, db_session, user_factory):
        alice = await user_factory("alice")

        item = self.service.send(
            alice.id, "connection_accepted", {"actor_id": str(uuid.uuid4()), "actor_name": "Bob"}
        )
        await self.service.drain()

        assert item.status == "sent"
        assert self.service.pending == 0
        rows = (
            await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
        ).scalars().all()
        assert len(rows) == 1
        assert rows[0].title == "Connection Accepted"
        assert rows[0].message == "Bob accepted your connection request"
        assert rows[0].is_read is False

    @pytest.mark.asyncio
    async def test_preference_skips_notification(self, db_session, user_factory):
        alice = await user_factory("alice", notify_new_post=False)

        item = self.service.send(alice.id, "new_post", {"actor_name": "Bob"})
        await self.service.drain()

        assert item.status == "skipped"
        rows = (
            await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
        ).scalars().all()
        assert rows == []

    @pytest.mark.asyncio
    async def test_unknown_user_fails_without_blocking_queue(self, db_session, user_factory):
        alice = await user_factory("alice")

        missing = self.service.send(uuid.uuid4(), "post_like", {"actor_name": "Bob"})
        delivered = self.service.send(alice.id, "post_like", {"actor_name": "Bob"})
        await self.service.drain()

        assert missing.status == "failed"
        assert "not found" in missing.error.lower()
        assert delivered.status == "sent"

    @pytest.mark.asyncio
    async def test_burst_shares_one_drain_task(self, db_session, user_factory):
        alice = await user_factory("alice")

        first = self.service.send(alice.id, "post_like", {"actor_name": "Bob"})
        task = self.service._task
        rest = [self.service.send(alice.id, "post_like", {"actor_name": name}) for name in ("Carol", "Dave")]

        assert self.service._task is task
        await self.service.drain()

        assert task.done()
        assert [item.status for item in [first, *rest]] == ["sent", "sent", "sent"]
        rows = (
            await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
        ).scalars().all()
        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_staged_notification_waits_for_commit(self, db_session, user_factory):
        alice = await user_factory("alice")

        async with async_session_factory() as session:
            await session.get(User, alice.id)
            item = self.service.send(alice.id, "post_like", {"actor_name": "Bob"}, db=session)
            assert self.service.pending == 0
            await session.commit()

        await self.service.drain()
        assert item.status == "sent"

    @pytest.mark.asyncio
    async def test_staged_notification_dropped_on_rollback(self, db_session, user_factory):
        alice = await user_factory("alice")

        async with async_session_factory() as session:
            await session.get(User, alice.id)
            item = self.service.send(alice.id, "post_like", {"actor_name": "Bob"}, db=session)
            await session.rollback()
            await session.commit()

        await self.service.drain()
        assert item.status == "pending"
        rows = (
            await db_session.execute(select(Notification).where(Notification.user_id == alice.id))
        ).scalars().all()
        assert rows == []

    @pytest.mark.asyncio
    async def test_none_values_dropped_from_data(self, db_session, user_factory):
        alice = await user_factory("alice")

        self.service.send(alice.id, "post_comment", {"actor_name": "Bob", "post_title": None})
        await self.service.drain()

        row = await db_session.scalar(select(Notification).where(Notification.user_id == alice.id))
        assert row.data == {"actor_name": "Bob"}
        assert row.message == "Bob commented on your post"


class TestInbox:

    def setup_method(self):
        self.service = NotificationService(session_factory=async_session_factory)
        self.page = PaginationParams(limit=20, skip=0)

    async def _seed(self, db, user_id, count, is_read=False):
        rows = [
            Notification(
                user_id=user_id,
                type="post_like",
                title="New Like on Your Post",
                message=f"like {i}",
                data={},
                is_read=is_read,
            )
            for i in range(count)
        ]
        db.add_all(rows)
        await db.flush()
        return rows

    @pytest.mark.asyncio
    async def test_list_and_unread_count(self, db_session, user_factory):
        alice = await user_factory("alice")
        await self._seed(db_session, alice.id, 3)
        await self._seed(db_session, alice.id, 2, is_read=True)

        result = await self.service.list_notifications(db_session, alice.id, self.page)
        assert result.total == 5
        assert result.unread_count == 3

        unread = await self.service.list_notifications(
            db_session, alice.id, self.page, unread_only=True
        )
        assert unread.total == 3
        assert all(not n.is_read for n in unread.notifications)

    @pytest.mark.asyncio
    async def test_mark_read(self, db_session, user_factory):
        alice = await user_factory("alice")
        (row,) = await self._seed(db_session, alice.id, 1)

        result = await self.service.mark_read(db_session, alice.id, row.id)
        assert result.is_read is True
        assert result.read_at is not None
        assert await self.service.unread_count(db_session, alice.id) == 0

    @pytest.mark.asyncio
    async def test_mark_read_other_users_notification(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        (row,) = await self._seed(db_session, alice.id, 1)

        with pytest.raises(NotFoundError):
            await self.service.mark_read(db_session, bob.id, row.id)

    @pytest.mark.asyncio
    async def test_mark_all_read(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self._seed(db_session, alice.id, 4)
        await self._seed(db_session, bob.id, 1)

        assert await self.service.mark_all_read(db_session, alice.id) == 4
        assert await self.service.unread_count(db_session, alice.id) == 0
        assert await self.service.unread_count(db_session, bob.id) == 1
