"""
Request-scoped dependencies shared by the routers.

    get_current_user   bearer token required; 401 otherwise
    get_optional_user  bearer token optional; an invalid token is treated
                       the same as no token, so public listings still work
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from voiceconnect.database import get_db_session
from voiceconnect.exceptions import AuthenticationError
from voiceconnect.models.user import User
from voiceconnect.services.auth_service import auth_service

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    return await auth_service.authenticate_token(db, credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await auth_service.authenticate_token(db, credentials.credentials)
    except AuthenticationError:
        return None
