"""
VoiceConnect Backend: Contact Reveal Tests
============================================

What we test:
    ✅ Only accepted connections may ask for contact details
    ✅ One pending request at a time, none once revealed
    ✅ auto_connected recipients reveal immediately
    ✅ Only the recipient answers; only the requester cancels
    ✅ Revealed contacts list shows the other party's private contact
    ✅ status() summarizes connection, reveal and pending state
"""

import uuid

import pytest

from voiceconnect.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.services.connection_service import connection_service
from voiceconnect.services.contact_service import ContactService

PAGE = PaginationParams(limit=20, skip=0)


@pytest.fixture
def connected_pair(db_session, user_factory):
    """alice and bob, connected; bob keeps a private contact."""

    async def _create(**bob_overrides):
        alice = await user_factory("alice")
        bob = await user_factory(
            "bob",
            auto_accept_connections=True,
            private_contact="bob@signal.example",
            **bob_overrides,
        )
        await connection_service.send_request(db_session, alice, bob.id)
        return alice, bob

    return _create


class TestRequestReveal:

    def setup_method(self):
        self.service = ContactService()

    @pytest.mark.asyncio
    async def test_request_pending(self, db_session, connected_pair, notifications):
        alice, bob = await connected_pair()

        reveal = await self.service.request_reveal(db_session, alice, bob.id, message="Coffee?")

        assert reveal.status == "pending"
        assert reveal.message == "Coffee?"
        assert notifications.call_args.args[:2] == (bob.id, "contact_reveal_request")
        assert bob.contact_revealed is False

    @pytest.mark.asyncio
    async def test_requires_connection(self, db_session, user_factory):
        alice = await user_factory("alice")
        bob = await user_factory("bob")
        with pytest.raises(ValidationError, match="must be connected"):
            await self.service.request_reveal(db_session, alice, bob.id)

    @pytest.mark.asyncio
    async def test_cannot_request_self(self, db_session, user_factory):
        alice = await user_factory("alice")
        with pytest.raises(ValidationError, match="from yourself"):
            await self.service.request_reveal(db_session, alice, alice.id)

    @pytest.mark.asyncio
    async def test_unknown_target(self, db_session, user_factory):
        alice = await user_factory("alice")
        with pytest.raises(NotFoundError):
            await self.service.request_reveal(db_session, alice, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_second_pending_request_rejected(self, db_session, connected_pair):
        alice, bob = await connected_pair()
        await self.service.request_reveal(db_session, alice, bob.id)

        with pytest.raises(ValidationError, match="already pending"):
            await self.service.request_reveal(db_session, alice, bob.id)

    @pytest.mark.asyncio
    async def test_auto_reveal_policy(self, db_session, connected_pair, notifications):
        alice, bob = await connected_pair(contact_reveal_policy="auto_connected")

        reveal = await self.service.request_reveal(db_session, alice, bob.id)

        assert reveal.status == "accepted"
        assert reveal.responded_at is not None
        assert bob.contact_revealed is True
        assert notifications.call_args.args[:2] == (alice.id, "contact_reveal_accepted")

        with pytest.raises(ValidationError, match="already revealed"):
            await self.service.request_reveal(db_session, alice, bob.id)


class TestRespondAndCancel:

    def setup_method(self):
        self.service = ContactService()

    @pytest.mark.asyncio
    async def test_accept_reveals_contact(self, db_session, connected_pair):
        alice, bob = await connected_pair()
        request = await self.service.request_reveal(db_session, alice, bob.id)

        result = await self.service.respond(db_session, bob, request.id, "accepted")

        assert result.status == "accepted"
        assert await self.service.is_revealed(db_session, alice.id, bob.id)

        revealed = await self.service.revealed(db_session, alice, PAGE)
        assert revealed.total == 1
        assert revealed.contacts[0].user.id == bob.id
        assert revealed.contacts[0].private_contact == "bob@signal.example"

    @pytest.mark.asyncio
    async def test_reject(self, db_session, connected_pair):
        alice, bob = await connected_pair()
        request = await self.service.request_reveal(db_session, alice, bob.id)

        result = await self.service.respond(db_session, bob, request.id, "rejected")

        assert result.status == "rejected"
        assert not await self.service.is_revealed(db_session, alice.id, bob.id)

    @pytest.mark.asyncio
    async def test_requester_cannot_respond(self, db_session, connected_pair):
        alice, bob = await connected_pair()
        request = await self.service.request_reveal(db_session, alice, bob.id)

        with pytest.raises(PermissionDeniedError):
            await self.service.respond(db_session, alice, request.id, "accepted")

    @pytest.mark.asyncio
    async def test_cancel_by_requester(self, db_session, connected_pair):
        alice, bob = await connected_pair()
        request = await self.service.request_reveal(db_session, alice, bob.id)

        with pytest.raises(PermissionDeniedError):
            await self.service.cancel(db_session, bob, request.id)

        await self.service.cancel(db_session, alice, request.id)
        pending = await self.service.pending_received(db_session, bob, PAGE)
        assert pending.total == 0


class TestStatus:

    @pytest.mark.asyncio
    async def test_status_with_pending_request(self, db_session, connected_pair):
        service = ContactService()
        alice, bob = await connected_pair()
        request = await service.request_reveal(db_session, alice, bob.id)

        status = await service.status(db_session, alice, bob.id)

        assert status.is_connected is True
        assert status.is_contact_revealed is False
        assert status.has_pending_request is True
        assert status.pending_request.id == request.id
