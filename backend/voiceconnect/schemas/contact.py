"""Schemas for /api/contact (contact-reveal requests)."""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from voiceconnect.models.contact_reveal import ContactReveal
from voiceconnect.schemas.common import PageMeta
from voiceconnect.schemas.user import UserSummary


class ContactRequestBody(BaseModel):
    message: Optional[str] = Field(default=None, max_length=200)


class ContactRespondBody(BaseModel):
    status: Literal["accepted", "rejected"]


class ContactRevealResponse(BaseModel):
    id: uuid.UUID
    requester: UserSummary
    recipient: UserSummary
    status: str
    message: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RevealedContact(BaseModel):
    reveal_id: uuid.UUID
    user: UserSummary
    private_contact: Optional[str] = None
    revealed_at: Optional[datetime] = None

    @classmethod
    def from_reveal(cls, reveal: ContactReveal, viewer_id: uuid.UUID) -> "RevealedContact":
        other = reveal.recipient if reveal.requester_id == viewer_id else reveal.requester
        return cls(
            reveal_id=reveal.id,
            user=UserSummary.model_validate(other),
            private_contact=other.private_contact,
            revealed_at=reveal.responded_at,
        )


class ContactRevealList(PageMeta):
    requests: List[ContactRevealResponse]


class RevealedContactList(PageMeta):
    contacts: List[RevealedContact]


class ContactStatus(BaseModel):
    is_connected: bool
    is_contact_revealed: bool
    has_pending_request: bool
    pending_request: Optional[ContactRevealResponse] = None
