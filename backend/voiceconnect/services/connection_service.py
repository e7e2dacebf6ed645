"""
VoiceConnect Backend: Connection Service
==========================================

What:  Friend-request workflow between users: request, accept/reject,
       remove, block/unblock, and the listings built on top of it.

Invariants enforced here:
    - no self-connections
    - at most one row per pair of users, whichever direction it was created in
    - only the recipient answers a request, and only while it is pending
    - connection_count on both users moves exactly when a row enters or
      leaves the `accepted` state

Counters are adjusted with single UPDATE ... SET x = x ± 1 statements so
concurrent accepts cannot lose an increment.
"""

import logging
import uuid
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.models.base import utcnow
from voiceconnect.models.connection import (
    STATUS_ACCEPTED,
    STATUS_BLOCKED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Connection,
)
from voiceconnect.models.notification import (
    NOTIFICATION_CONNECTION_ACCEPTED,
    NOTIFICATION_CONNECTION_REQUEST,
)
from voiceconnect.models.user import User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.connection import (
    BlockedUser,
    BlockedUserList,
    ConnectedUser,
    ConnectedUserList,
    ConnectionList,
    ConnectionResponse,
)
from voiceconnect.schemas.user import UserList, UserPublic
from voiceconnect.services.notification_service import notification_service

logger = logging.getLogger(__name__)


def _between(a: uuid.UUID, b: uuid.UUID):
    return or_(
        and_(Connection.requester_id == a, Connection.recipient_id == b),
        and_(Connection.requester_id == b, Connection.recipient_id == a),
    )


def _involving(user_id: uuid.UUID):
    return or_(Connection.requester_id == user_id, Connection.recipient_id == user_id)


def actor_name(user: User) -> str:
    return user.display_name or user.username


class ConnectionService:

    # ── Lookups ───────────────────────────────────────────────────────────

    async def find_between(
        self, db: AsyncSession, a: uuid.UUID, b: uuid.UUID
    ) -> Optional[Connection]:
        return await db.scalar(select(Connection).where(_between(a, b)))

    async def are_connected(self, db: AsyncSession, a: Optional[uuid.UUID], b: uuid.UUID) -> bool:
        if a is None or a == b:
            return False
        row = await db.scalar(
            select(Connection.id).where(_between(a, b), Connection.status == STATUS_ACCEPTED)
        )
        return row is not None

    async def connected_user_ids(self, db: AsyncSession, user_id: uuid.UUID) -> List[uuid.UUID]:
        rows = await db.execute(
            select(Connection.requester_id, Connection.recipient_id).where(
                _involving(user_id), Connection.status == STATUS_ACCEPTED
            )
        )
        return [
            recipient if requester == user_id else requester
            for requester, recipient in rows.all()
        ]

    async def statuses_with(
        self, db: AsyncSession, user_id: uuid.UUID, other_ids: Iterable[uuid.UUID]
    ) -> dict:
        """Maps each of `other_ids` that has a row with `user_id` to its status."""
        other_ids = list(other_ids)
        if not other_ids:
            return {}
        rows = await db.execute(
            select(Connection.requester_id, Connection.recipient_id, Connection.status).where(
                or_(
                    and_(Connection.requester_id == user_id, Connection.recipient_id.in_(other_ids)),
                    and_(Connection.recipient_id == user_id, Connection.requester_id.in_(other_ids)),
                )
            )
        )
        return {
            (recipient if requester == user_id else requester): status
            for requester, recipient, status in rows.all()
        }

    async def pending_count(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        return await db.scalar(
            select(func.count())
            .select_from(Connection)
            .where(Connection.recipient_id == user_id, Connection.status == STATUS_PENDING)
        )

    async def _adjust_counts(self, db: AsyncSession, user_ids: List[uuid.UUID], delta: int) -> None:
        stmt = update(User).where(User.id.in_(user_ids))
        if delta < 0:
            stmt = stmt.where(User.connection_count > 0)
        await db.execute(stmt.values(connection_count=User.connection_count + delta))

    async def _get_active_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    # ── Request workflow ──────────────────────────────────────────────────

    async def send_request(
        self,
        db: AsyncSession,
        requester: User,
        recipient_id: uuid.UUID,
        message: Optional[str] = None,
    ) -> Tuple[ConnectionResponse, bool]:
        """
        Creates a connection request.

        Returns:
            (connection, auto_accepted). auto_accepted is True when the
            recipient accepts everyone automatically; the route answers 200
            instead of 201 in that case.

        Raises:
            ValidationError: self request, or a row already exists either way
            NotFoundError: unknown recipient
        """
        if requester.id == recipient_id:
            raise ValidationError(message="Cannot connect with yourself", field="user_id")

        recipient = await self._get_active_user(db, recipient_id)

        existing = await self.find_between(db, requester.id, recipient_id)
        if existing is not None:
            raise ValidationError(
                message=f"Connection already {existing.status}",
                context={"connection_id": str(existing.id)},
            )

        connection = Connection(
            requester_id=requester.id,
            recipient_id=recipient.id,
            requester=requester,
            recipient=recipient,
            message=message,
        )
        auto_accepted = recipient.auto_accept_connections
        if auto_accepted:
            now = utcnow()
            connection.status = STATUS_ACCEPTED
            connection.accepted_at = now
            connection.responded_at = now

        try:
            db.add(connection)
            await db.flush()
            if auto_accepted:
                await self._adjust_counts(db, [requester.id, recipient.id], +1)
        except Exception as e:
            logger.error("Failed to create connection request: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        if auto_accepted:
            notification_service.send(
                requester.id,
                NOTIFICATION_CONNECTION_ACCEPTED,
                {"actor_id": str(recipient.id), "actor_name": actor_name(recipient)},
                db=db,
            )
            logger.info("Connection auto-accepted: %s -> %s", requester.id, recipient.id)
        else:
            notification_service.send(
                recipient.id,
                NOTIFICATION_CONNECTION_REQUEST,
                {
                    "actor_id": str(requester.id),
                    "actor_name": actor_name(requester),
                    "connection_id": str(connection.id),
                    "message": message,
                },
                db=db,
            )
            logger.info("Connection requested: %s -> %s", requester.id, recipient.id)

        return ConnectionResponse.model_validate(connection), auto_accepted

    async def respond(
        self,
        db: AsyncSession,
        user: User,
        request_id: uuid.UUID,
        status: str,
    ) -> ConnectionResponse:
        connection = await db.get(Connection, request_id)
        if connection is None:
            raise NotFoundError(resource="connection request", resource_id=str(request_id))
        if not connection.can_respond(user.id):
            raise PermissionDeniedError(
                "You can only respond to pending requests sent to you",
                context={"connection_id": str(request_id), "status": connection.status},
            )

        now = utcnow()
        connection.responded_at = now
        if status == STATUS_ACCEPTED:
            connection.status = STATUS_ACCEPTED
            connection.accepted_at = now
            await db.flush()
            await self._adjust_counts(db, [connection.requester_id, connection.recipient_id], +1)
            notification_service.send(
                connection.requester_id,
                NOTIFICATION_CONNECTION_ACCEPTED,
                {"actor_id": str(user.id), "actor_name": actor_name(user)},
                db=db,
            )
        else:
            connection.status = STATUS_REJECTED
            await db.flush()

        logger.info("Connection %s %s by %s", connection.id, connection.status, user.id)
        return ConnectionResponse.model_validate(connection)

    async def remove(self, db: AsyncSession, user: User, other_id: uuid.UUID) -> None:
        """Deletes an accepted connection and decrements both counts."""
        connection = await db.scalar(
            select(Connection).where(
                _between(user.id, other_id), Connection.status == STATUS_ACCEPTED
            )
        )
        if connection is None:
            raise NotFoundError(resource="connection", resource_id=str(other_id))

        await db.delete(connection)
        await db.flush()
        await self._adjust_counts(db, [user.id, other_id], -1)
        logger.info("Connection removed between %s and %s", user.id, other_id)

    # ── Blocking ──────────────────────────────────────────────────────────

    async def block(self, db: AsyncSession, user: User, target_id: uuid.UUID) -> ConnectionResponse:
        """
        Blocks a user. An existing row of any status becomes a blocked row
        owned by the blocker (requester = blocker).
        """
        if user.id == target_id:
            raise ValidationError(message="Cannot block yourself", field="user_id")
        target = await self._get_active_user(db, target_id)

        connection = await self.find_between(db, user.id, target_id)
        if connection is None:
            connection = Connection(
                requester_id=user.id,
                recipient_id=target.id,
                requester=user,
                recipient=target,
                status=STATUS_BLOCKED,
            )
            db.add(connection)
        elif connection.status != STATUS_BLOCKED:
            was_accepted = connection.status == STATUS_ACCEPTED
            connection.requester_id = user.id
            connection.recipient_id = target.id
            connection.requester = user
            connection.recipient = target
            connection.status = STATUS_BLOCKED
            connection.accepted_at = None
            connection.responded_at = utcnow()
            if was_accepted:
                await db.flush()
                await self._adjust_counts(db, [user.id, target.id], -1)

        await db.flush()
        logger.info("User %s blocked %s", user.id, target_id)
        return ConnectionResponse.model_validate(connection)

    async def unblock(self, db: AsyncSession, user: User, target_id: uuid.UUID) -> None:
        result = await db.execute(
            delete(Connection).where(
                Connection.requester_id == user.id,
                Connection.recipient_id == target_id,
                Connection.status == STATUS_BLOCKED,
            )
        )
        if not result.rowcount:
            raise NotFoundError(
                resource="blocked user",
                resource_id=str(target_id),
                message="Blocked user not found",
            )
        logger.info("User %s unblocked %s", user.id, target_id)

    # ── Listings ──────────────────────────────────────────────────────────

    async def _page(self, db: AsyncSession, conditions, order_by, page: PaginationParams):
        total = await db.scalar(select(func.count()).select_from(Connection).where(*conditions))
        rows = (
            await db.execute(
                select(Connection)
                .where(*conditions)
                .order_by(order_by)
                .offset(page.skip)
                .limit(page.limit)
            )
        ).scalars().all()
        return total, rows

    async def pending_received(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> ConnectionList:
        total, rows = await self._page(
            db,
            [Connection.recipient_id == user.id, Connection.status == STATUS_PENDING],
            Connection.created_at.desc(),
            page,
        )
        return ConnectionList(
            requests=[ConnectionResponse.model_validate(c) for c in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def pending_sent(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> ConnectionList:
        total, rows = await self._page(
            db,
            [Connection.requester_id == user.id, Connection.status == STATUS_PENDING],
            Connection.created_at.desc(),
            page,
        )
        return ConnectionList(
            requests=[ConnectionResponse.model_validate(c) for c in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def list_connections(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> ConnectedUserList:
        try:
            total, rows = await self._page(
                db,
                [_involving(user.id), Connection.status == STATUS_ACCEPTED],
                Connection.accepted_at.desc(),
                page,
            )
        except Exception as e:
            logger.error("Failed to list connections for %s: %s", user.id, str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})
        return ConnectedUserList(
            connections=[ConnectedUser.from_connection(c, user.id) for c in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def list_blocked(
        self, db: AsyncSession, user: User, page: PaginationParams
    ) -> BlockedUserList:
        total, rows = await self._page(
            db,
            [_involving(user.id), Connection.status == STATUS_BLOCKED],
            Connection.updated_at.desc(),
            page,
        )
        return BlockedUserList(
            blocked=[BlockedUser.from_connection(c, user.id) for c in rows],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def suggestions(self, db: AsyncSession, user: User, page: PaginationParams) -> UserList:
        """
        Active users who are neither the caller, an accepted connection, nor
        on either side of a block. Most connected first, then most posts.
        """
        try:
            excluded = select(Connection.recipient_id).where(
                Connection.requester_id == user.id,
                Connection.status.in_((STATUS_ACCEPTED, STATUS_BLOCKED)),
            ).union(
                select(Connection.requester_id).where(
                    Connection.recipient_id == user.id,
                    Connection.status.in_((STATUS_ACCEPTED, STATUS_BLOCKED)),
                )
            )
            conditions = [
                User.id != user.id,
                User.is_active.is_(True),
                User.id.not_in(excluded),
            ]
            total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
            users = (
                await db.execute(
                    select(User)
                    .where(*conditions)
                    .order_by(User.connection_count.desc(), User.post_count.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).scalars().all()
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("Failed to build suggestions for %s: %s", user.id, str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        return UserList(
            users=[UserPublic.model_validate(u) for u in users],
            total=total,
            limit=page.limit,
            skip=page.skip,
        )


connection_service = ConnectionService()
