"""
VoiceConnect Backend: Connection Model
========================================

A directed row between two users: requester → recipient. The relationship
is mutual once `status == 'accepted'`; lookups therefore always check both
directions (see ConnectionService.find_between).

Status lifecycle:
    pending ──accept──▶ accepted
       └────reject──▶ rejected
    (any) ──block──▶ blocked      (row deleted on unblock)

Invariants:
    - requester_id != recipient_id (checked in the service and by a CHECK constraint)
    - one row per ordered pair (unique constraint); the service also refuses
      a request when a row exists in the opposite direction
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voiceconnect.database import Base
from voiceconnect.models.base import TimestampMixin, UUIDPrimaryKeyMixin
from voiceconnect.models.user import User


STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_REJECTED = "rejected"
STATUS_BLOCKED = "blocked"
CONNECTION_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED, STATUS_REJECTED, STATUS_BLOCKED)


class Connection(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "connections"

    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=STATUS_PENDING)
    message: Mapped[str | None] = mapped_column(String(200), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # selectin: both parties are needed by every listing endpoint, and
    # AsyncSession cannot lazy-load on attribute access
    requester: Mapped[User] = relationship(foreign_keys=[requester_id], lazy="selectin")
    recipient: Mapped[User] = relationship(foreign_keys=[recipient_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("requester_id", "recipient_id", name="uq_connections_pair"),
        CheckConstraint("requester_id <> recipient_id", name="ck_connections_not_self"),
        Index("idx_connections_recipient_status", "recipient_id", "status"),
        Index("idx_connections_requester_status", "requester_id", "status"),
    )

    def can_respond(self, user_id: uuid.UUID) -> bool:
        """Only the recipient may answer, and only while the request is pending."""
        return self.status == STATUS_PENDING and self.recipient_id == user_id

    def other_party(self, user_id: uuid.UUID) -> User:
        return self.recipient if self.requester_id == user_id else self.requester

    def __repr__(self) -> str:
        return (
            f"<Connection({self.requester_id} -> {self.recipient_id}, status='{self.status}')>"
        )
