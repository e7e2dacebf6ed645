"""Schemas for /api/connections."""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from voiceconnect.models.connection import Connection
from voiceconnect.schemas.common import PageMeta
from voiceconnect.schemas.user import UserPublic, UserSummary


class ConnectionRequestBody(BaseModel):
    message: Optional[str] = Field(default=None, max_length=200)


class ConnectionRespondBody(BaseModel):
    status: Literal["accepted", "rejected"]


class ConnectionResponse(BaseModel):
    id: uuid.UUID
    requester: UserSummary
    recipient: UserSummary
    status: str
    message: Optional[str] = None
    accepted_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ConnectedUser(BaseModel):
    """An accepted connection seen from one side: the other user plus when."""

    connection_id: uuid.UUID
    user: UserPublic
    connected_since: Optional[datetime] = None

    @classmethod
    def from_connection(cls, connection: Connection, viewer_id: uuid.UUID) -> "ConnectedUser":
        return cls(
            connection_id=connection.id,
            user=UserPublic.model_validate(connection.other_party(viewer_id)),
            connected_since=connection.accepted_at,
        )


class BlockedUser(BaseModel):
    connection_id: uuid.UUID
    user: UserSummary
    blocked_by: Literal["me", "them"]
    created_at: datetime

    @classmethod
    def from_connection(cls, connection: Connection, viewer_id: uuid.UUID) -> "BlockedUser":
        # The requester of a blocked row is whoever issued the block
        return cls(
            connection_id=connection.id,
            user=UserSummary.model_validate(connection.other_party(viewer_id)),
            blocked_by="me" if connection.requester_id == viewer_id else "them",
            created_at=connection.updated_at,
        )


class ConnectionList(PageMeta):
    requests: List[ConnectionResponse]


class ConnectedUserList(PageMeta):
    connections: List[ConnectedUser]


class BlockedUserList(PageMeta):
    blocked: List[BlockedUser]
