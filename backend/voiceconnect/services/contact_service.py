"""
VoiceConnect Backend: Contact Reveal Service
==============================================

What:  The second opt-in after a connection: asking a connected user to
       share their private contact details.

Request checks, in order:
    1. target exists                                  → 404
    2. not yourself                                   → 400
    3. users are connected                            → 400
    4. no accepted reveal between the pair yet        → 400
    5. no pending request between the pair            → 400

Recipients with contact_reveal_policy = auto_connected accept at once.
Accepting sets the recipient's `contact_revealed` flag, which is what
makes `private_contact` visible on their profile to connections.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from voiceconnect.models.base import utcnow
from voiceconnect.models.contact_reveal import (
    REVEAL_ACCEPTED,
    REVEAL_PENDING,
    REVEAL_REJECTED,
    ContactReveal,
)
from voiceconnect.models.notification import (
    NOTIFICATION_CONTACT_REVEAL_ACCEPTED,
    NOTIFICATION_CONTACT_REVEAL_REQUEST,
)
from voiceconnect.models.user import REVEAL_POLICY_AUTO_CONNECTED, User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.contact import (
    ContactRevealList,
    ContactRevealResponse,
    ContactStatus,
    RevealedContact,
    RevealedContactList,
)
from voiceconnect.services.connection_service import actor_name, connection_service
from voiceconnect.services.notification_service import notification_service

logger = logging.getLogger(__name__)


def _between(a: uuid.UUID, b: uuid.UUID):
    return or_(
        and_(ContactReveal.requester_id == a, ContactReveal.recipient_id == b),
        and_(ContactReveal.requester_id == b, ContactReveal.recipient_id == a),
    )


class ContactService:
    async def _find(
        self, db: AsyncSession, a: uuid.UUID, b: uuid.UUID, status: str
    ) -> Optional[ContactReveal]:
        return await db.scalar(
            select(ContactReveal)
            .where(_between(a, b), ContactReveal.status == status)
            .order_by(ContactReveal.created_at.desc())
            .limit(1)
        )

    async def is_revealed(self, db: AsyncSession, a: uuid.UUID, b: uuid.UUID) -> bool:
        return await self._find(db, a, b, REVEAL_ACCEPTED) is not None

    def _accept(self, reveal: ContactReveal, recipient: User) -> None:
        reveal.status = REVEAL_ACCEPTED
        reveal.responded_at = utcnow()
        recipient.contact_revealed = True

    async def request_reveal(
        self,
        db: AsyncSession,
        requester: User,
        target_id: uuid.UUID,
        message: Optional[str] = None,
    ) -> ContactRevealResponse:
        recipient = await db.get(User, target_id)
        if recipient is None or not recipient.is_active:
            raise NotFoundError(resource="user", resource_id=str(target_id))

        if requester.id == target_id:
            raise ValidationError(message="Cannot request contact information from yourself")

        if not await connection_service.are_connected(db, requester.id, target_id):
            raise ValidationError(message="You must be connected to request contact information")

        if await self.is_revealed(db, requester.id, target_id):
            raise ValidationError(message="Contact information already revealed")

        if await self._find(db, requester.id, target_id, REVEAL_PENDING) is not None:
            raise ValidationError(message="Contact reveal request already pending")

        reveal = ContactReveal(
            requester_id=requester.id,
            recipient_id=recipient.id,
            requester=requester,
            recipient=recipient,
            status=REVEAL_PENDING,
            message=message,
        )
        auto_accept = recipient.contact_reveal_policy == REVEAL_POLICY_AUTO_CONNECTED
        if auto_accept:
            self._accept(reveal, recipient)

        db.add(reveal)
        await db.flush()

        if auto_accept:
            notification_service.send(
                requester.id,
                NOTIFICATION_CONTACT_REVEAL_ACCEPTED,
                {"actor_id": str(recipient.id), "actor_name": actor_name(recipient)},
                db=db,
            )
            logger.info("Contact reveal auto-accepted: %s -> %s", requester.id, recipient.id)
        else:
            notification_service.send(
                recipient.id,
                NOTIFICATION_CONTACT_REVEAL_REQUEST,
                {
                    "actor_id": str(requester.id),
                    "actor_name": actor_name(requester),
                    "request_id": str(reveal.id),
                    "message": message,
                },
                db=db,
            )
            logger.info("Contact reveal requested: %s -> %s", requester.id, recipient.id)

        return ContactRevealResponse.model_validate(reveal)

    async def respond(
        self, db: AsyncSession, user: User, request_id: uuid.UUID, status: str
    ) -> ContactRevealResponse:
        reveal = await db.get(ContactReveal, request_id)
        if reveal is None:
            raise NotFoundError(resource="contact reveal request", resource_id=str(request_id))
        if not reveal.can_respond(user.id):
            raise PermissionDeniedError(
                "You can only respond to pending requests sent to you",
                context={"request_id": str(request_id), "status": reveal.status},
            )

        if status == REVEAL_ACCEPTED:
            self._accept(reveal, user)
            notification_service.send(
                reveal.requester_id,
                NOTIFICATION_CONTACT_REVEAL_ACCEPTED,
                {"actor_id": str(user.id), "actor_name": actor_name(user)},
                db=db,
            )
        else:
            reveal.status = REVEAL_REJECTED
            reveal.responded_at = utcnow()
        await db.flush()

        logger.info("Contact reveal %s %s by %s", reveal.id, reveal.status, user.id)
        return ContactRevealResponse.model_validate(reveal)

    async def cancel(self, db: AsyncSession, user: User, request_id: uuid.UUID) -> None:
        reveal = await db.get(ContactReveal, request_id)
        if reveal is None:
            raise NotFoundError(resource="contact reveal request", resource_id=str(request_id))
        if not reveal.can_cancel(user.id):
            raise PermissionDeniedError("You can only cancel your own pending requests")
        await db.delete(reveal)
        await db.flush()
        logger.info("Contact reveal %s cancelled by %s", request_id, user.id)

    async def _list(self, db: AsyncSession, conditions, page: PaginationParams):
        total = await db.scalar(select(func.count()).select_from(ContactReveal).where(*conditions))
        rows = (
            await db.execute(
                select(ContactReveal)
                .where(*conditions)
                .order_by(ContactReveal.created_at.desc())
                .offset(page.skip)
                .limit(page.limit)
            )
        ).scalars().all()
        return total, rows

    async def pending_received(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> ContactRevealList:
        total, rows = await self._list(
            db,
            [ContactReveal.recipient_id == user.id, ContactReveal.status == REVEAL_PENDING],
            page,
        )
        return ContactRevealList(
            requests=[ContactRevealResponse.model_validate(r) for r in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def sent(self, db: AsyncSession, user: User, page: PaginationParams) -> ContactRevealList:
        total, rows = await self._list(db, [ContactReveal.requester_id == user.id], page)
        return ContactRevealList(
            requests=[ContactRevealResponse.model_validate(r) for r in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def revealed(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> RevealedContactList:
        total, rows = await self._list(
            db,
            [
                or_(ContactReveal.requester_id == user.id, ContactReveal.recipient_id == user.id),
                ContactReveal.status == REVEAL_ACCEPTED,
            ],
            page,
        )
        return RevealedContactList(
            contacts=[RevealedContact.from_reveal(r, user.id) for r in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def status(self, db: AsyncSession, user: User, target_id: uuid.UUID) -> ContactStatus:
        target = await db.get(User, target_id)
        if target is None or not target.is_active:
            raise NotFoundError(resource="user", resource_id=str(target_id))

        pending = await self._find(db, user.id, target_id, REVEAL_PENDING)
        return ContactStatus(
            is_connected=await connection_service.are_connected(db, user.id, target_id),
            is_contact_revealed=await self.is_revealed(db, user.id, target_id),
            has_pending_request=pending is not None,
            pending_request=ContactRevealResponse.model_validate(pending) if pending else None,
        )


contact_service = ContactService()
