"""Request and response bodies for /api/auth."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from voiceconnect.schemas.user import UserPrivate


USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"


class RegisterRequest(BaseModel):
    username: str = Field(
        min_length=3,
        max_length=30,
        pattern=USERNAME_PATTERN,
        description="Letters, digits and underscores",
    )
    email: EmailStr = Field(description="Stored lowercase")
    password: str = Field(min_length=6, max_length=128)
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=50)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return v.lower()


class RefreshRequest(BaseModel):
    # Optional so a missing token is a 401 from the service, not a 400
    refresh_token: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthPayload(TokenPair):
    user: UserPrivate


class GoogleAuthUrl(BaseModel):
    auth_url: str


class GoogleDriveConnectRequest(BaseModel):
    code: str = Field(min_length=1, description="Authorization code from the consent screen")
