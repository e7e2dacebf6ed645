"""
VoiceConnect Backend: Connection Service Tests
================================================

What:  Tests for the connection request workflow on a real SQLite session.

What we test:
    ✅ Requests start pending and notify the recipient
    ✅ No self-connections, no second row for a pair in either direction
    ✅ Auto-accepting recipients connect immediately (counts on both sides)
    ✅ Only the recipient answers, and only once
    ✅ Removing and blocking decrement connection_count
    ✅ Unblock only works for the blocker
    ✅ Suggestions exclude connections and blocked users
"""

import uuid

import pytest

from voiceconnect.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.services.connection_service import ConnectionService

PAGE = PaginationParams(limit=20, skip=0)


async def refresh_counts(db, *users):
    for user in users:
        await db.refresh(user, attribute_names=["connection_count"])


class TestSendRequest:

    def setup_method(self):
        self.service = ConnectionService()

    @pytest.mark.asyncio
    async def test_request_is_pending(self, db_session, user_factory, notifications):
        alice = await user_factory("alice")
        bob = await user_factory("bob")

        connection, auto_accepted = await self.service.send_request(
            db_session, alice, bob.id, message="Hi Bob"
        )

        assert auto_accepted is False
        assert connection.status == "pending"
        assert connection.requester.id == alice.id
        assert connection.recipient.id == bob.id
        assert connection.message == "Hi Bob"

        notifications.assert_called_once()
        recipient_id, notification_type, data = notifications.call_args.args
        assert recipient_id == bob.id
        assert notification_type == "connection_request"
        assert data["message"] == "Hi Bob"

        await refresh_counts(db_session, alice, bob)
        assert alice.connection_count == 0
        assert bob.connection_count == 0

    @pytest.mark.asyncio
    async def test_cannot_connect_with_self(self, db_session, user_factory):
        alice = await user_factory("alice")
        with pytest.raises(ValidationError, match="Cannot connect with yourself"):
            await self.service.send_request(db_session, alice, alice.id)

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, db_session, user_factory):
        alice = await user_factory("alice")
        with pytest.raises(NotFoundError):
            await self.service.send_request(db_session, alice, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_duplicate_in_reverse_direction(self, db_session, user_factory):
        """One row per pair: bob cannot answer alice's request with his own."""
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self.service.send_request(db_session, alice, bob.id)

        with pytest.raises(ValidationError, match="Connection already pending"):
            await self.service.send_request(db_session, bob, alice.id)

    @pytest.mark.asyncio
    async def test_auto_accept(self, db_session, user_factory, notifications):
        alice = await user_factory("alice")
        bob = await user_factory("bob", auto_accept_connections=True)

        connection, auto_accepted = await self.service.send_request(db_session, alice, bob.id)

        assert auto_accepted is True
        assert connection.status == "accepted"
        assert connection.accepted_at is not None
        await refresh_counts(db_session, alice, bob)
        assert alice.connection_count == 1
        assert bob.connection_count == 1
        assert notifications.call_args.args[:2] == (alice.id, "connection_accepted")


class TestRespond:

    def setup_method(self):
        self.service = ConnectionService()

    @pytest.mark.asyncio
    async def test_accept_increments_both_counts(self, db_session, user_factory, notifications):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        request, _ = await self.service.send_request(db_session, alice, bob.id)

        result = await self.service.respond(db_session, bob, request.id, "accepted")

        assert result.status == "accepted"
        assert result.accepted_at is not None
        await refresh_counts(db_session, alice, bob)
        assert (alice.connection_count, bob.connection_count) == (1, 1)
        assert await self.service.are_connected(db_session, alice.id, bob.id)
        assert notifications.call_args.args[:2] == (alice.id, "connection_accepted")

    @pytest.mark.asyncio
    async def test_reject_leaves_counts(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        request, _ = await self.service.send_request(db_session, alice, bob.id)

        result = await self.service.respond(db_session, bob, request.id, "rejected")

        assert result.status == "rejected"
        await refresh_counts(db_session, alice, bob)
        assert (alice.connection_count, bob.connection_count) == (0, 0)

    @pytest.mark.asyncio
    async def test_requester_cannot_respond(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        request, _ = await self.service.send_request(db_session, alice, bob.id)

        with pytest.raises(PermissionDeniedError):
            await self.service.respond(db_session, alice, request.id, "accepted")

    @pytest.mark.asyncio
    async def test_cannot_respond_twice(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        request, _ = await self.service.send_request(db_session, alice, bob.id)
        await self.service.respond(db_session, bob, request.id, "accepted")

        with pytest.raises(PermissionDeniedError):
            await self.service.respond(db_session, bob, request.id, "rejected")

    @pytest.mark.asyncio
    async def test_unknown_request(self, db_session, user_factory):
        bob = await user_factory("bob")
        with pytest.raises(NotFoundError):
            await self.service.respond(db_session, bob, uuid.uuid4(), "accepted")


class TestRemoveAndBlock:

    def setup_method(self):
        self.service = ConnectionService()

    async def _connect(self, db, a, b):
        request, _ = await self.service.send_request(db, a, b.id)
        await self.service.respond(db, b, request.id, "accepted")

    @pytest.mark.asyncio
    async def test_remove_connection(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self._connect(db_session, alice, bob)

        await self.service.remove(db_session, bob, alice.id)

        await refresh_counts(db_session, alice, bob)
        assert (alice.connection_count, bob.connection_count) == (0, 0)
        assert await self.service.find_between(db_session, alice.id, bob.id) is None

    @pytest.mark.asyncio
    async def test_remove_without_connection(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        with pytest.raises(NotFoundError):
            await self.service.remove(db_session, alice, bob.id)

    @pytest.mark.asyncio
    async def test_block_connected_user(self, db_session, user_factory):
        """Blocking rewrites the existing row with the blocker as requester."""
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self._connect(db_session, alice, bob)

        blocked = await self.service.block(db_session, bob, alice.id)

        assert blocked.status == "blocked"
        assert blocked.requester.id == bob.id
        await refresh_counts(db_session, alice, bob)
        assert (alice.connection_count, bob.connection_count) == (0, 0)

        listing = await self.service.list_blocked(db_session, bob, PAGE)
        assert listing.total == 1
        assert listing.blocked[0].blocked_by == "me"

    @pytest.mark.asyncio
    async def test_blocked_pair_cannot_request(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self.service.block(db_session, bob, alice.id)

        with pytest.raises(ValidationError, match="Connection already blocked"):
            await self.service.send_request(db_session, alice, bob.id)

    @pytest.mark.asyncio
    async def test_only_blocker_can_unblock(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self.service.block(db_session, bob, alice.id)

        with pytest.raises(NotFoundError, match="Blocked user not found"):
            await self.service.unblock(db_session, alice, bob.id)

        await self.service.unblock(db_session, bob, alice.id)
        assert await self.service.find_between(db_session, alice.id, bob.id) is None

    @pytest.mark.asyncio
    async def test_cannot_block_self(self, db_session, user_factory):
        alice = await user_factory("alice")
        with pytest.raises(ValidationError):
            await self.service.block(db_session, alice, alice.id)


class TestListings:

    def setup_method(self):
        self.service = ConnectionService()

    @pytest.mark.asyncio
    async def test_pending_lists(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        await self.service.send_request(db_session, alice, bob.id)

        received = await self.service.pending_received(db_session, bob, PAGE)
        sent = await self.service.pending_sent(db_session, alice, PAGE)

        assert received.total == 1 and received.requests[0].requester.id == alice.id
        assert sent.total == 1 and sent.requests[0].recipient.id == bob.id
        assert await self.service.pending_count(db_session, bob.id) == 1

    @pytest.mark.asyncio
    async def test_list_connections_shows_other_party(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob", auto_accept_connections=True)
        await self.service.send_request(db_session, alice, bob.id)

        for viewer, other in ((alice, bob), (bob, alice)):
            listing = await self.service.list_connections(db_session, viewer, PAGE)
            assert listing.total == 1
            assert listing.connections[0].user.id == other.id

    @pytest.mark.asyncio
    async def test_suggestions_exclude_connected_and_blocked(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob", auto_accept_connections=True)
        carol = await user_factory("carol")
        dave = await user_factory("dave")
        erin = await user_factory("erin")
        await self.service.send_request(db_session, alice, bob.id)
        await self.service.block(db_session, carol, alice.id)
        await self.service.send_request(db_session, alice, dave.id)

        suggestions = await self.service.suggestions(db_session, alice, PAGE)

        ids = {u.id for u in suggestions.users}
        # Pending requests do not exclude: dave is still suggested
        assert ids == {dave.id, erin.id}
        assert suggestions.total == 2
