"""
VoiceConnect Backend: Contact Reveal Model
============================================

A second opt-in gate on top of an accepted connection: the requester asks
the recipient to share their private contact details. Accepting flips the
recipient's `contact_revealed` flag, after which connected users see
`private_contact` on the profile.
"""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voiceconnect.database import Base
from voiceconnect.models.base import TimestampMixin, UUIDPrimaryKeyMixin
from voiceconnect.models.user import User


REVEAL_PENDING = "pending"
REVEAL_ACCEPTED = "accepted"
REVEAL_REJECTED = "rejected"
REVEAL_STATUSES = (REVEAL_PENDING, REVEAL_ACCEPTED, REVEAL_REJECTED)


class ContactReveal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "contact_reveals"

    requester_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=REVEAL_PENDING)
    message: Mapped[str | None] = mapped_column(String(200), nullable=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    requester: Mapped[User] = relationship(foreign_keys=[requester_id], lazy="selectin")
    recipient: Mapped[User] = relationship(foreign_keys=[recipient_id], lazy="selectin")

    __table_args__ = (
        CheckConstraint("requester_id <> recipient_id", name="ck_contact_reveals_not_self"),
        Index("idx_contact_reveals_recipient_status", "recipient_id", "status"),
        Index("idx_contact_reveals_requester", "requester_id"),
    )

    def can_respond(self, user_id: uuid.UUID) -> bool:
        return self.status == REVEAL_PENDING and self.recipient_id == user_id

    def can_cancel(self, user_id: uuid.UUID) -> bool:
        return self.status == REVEAL_PENDING and self.requester_id == user_id
