import logging
import uuid
from typing import Annotated, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.service import decode_access_token, find_live_session, get_user
from app.common.errors import Forbidden, TokenExpired, Unauthorized
from app.database import get_db

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token provided")
    token = credentials.credentials

    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected token: %s", exc)
        raise Unauthorized("Token is malformed or invalid")

    # Signature alone is not enough: logout and password changes delete the row.
    if await find_live_session(db, token) is None:
        raise Unauthorized("Token has expired or is invalid")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise Unauthorized("Token is malformed or invalid")

    user = await get_user(db, user_id)
    if user is None or not user.is_active:
        raise Unauthorized("User account not found or inactive")

    request.state.user = user
    request.state.token = token
    return user


async def get_current_token(
    current_user: Annotated[User, Depends(get_current_user)],
    request: Request,
) -> str:
    return request.state.token


def require_roles(*roles: str):
    async def role_checker(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role.value not in roles:
            raise Forbidden("Insufficient permissions")
        return current_user

    return role_checker
