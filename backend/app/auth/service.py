import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import Session, User, UserRole
from app.auth.schemas import ProfileUpdate, RegisterRequest
from app.common.base_models import utcnow
from app.common.errors import Conflict
from app.config import settings
from app.database import async_session

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── Tokens & sessions ───────────────────────────────────────────────


def create_access_token(user_id: str, email: str, session_id: str, issued_at: datetime, expires_at: datetime) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "jti": session_id,
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry. Raises ``jwt.ExpiredSignatureError`` or ``jwt.InvalidTokenError``."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )


async def issue_session(db: AsyncSession, user: User) -> str:
    """Sign a token and persist its session row, both expiring at the same instant."""
    issued_at = utcnow().replace(microsecond=0)
    expires_at = issued_at + timedelta(minutes=settings.jwt_expire_minutes)
    session_id = uuid.uuid4()

    token = create_access_token(str(user.id), user.email, str(session_id), issued_at, expires_at)
    db.add(Session(id=session_id, user_id=user.id, token=token, expires_at=expires_at))
    await db.flush()
    return token


async def find_live_session(db: AsyncSession, token: str) -> Optional[Session]:
    result = await db.execute(select(Session).where(Session.token == token, Session.expires_at > utcnow()))
    return result.scalar_one_or_none()


async def revoke_session(db: AsyncSession, token: str) -> int:
    result = await db.execute(delete(Session).where(Session.token == token))
    return result.rowcount


async def revoke_other_sessions(db: AsyncSession, user_id: uuid.UUID, current_token: str) -> int:
    result = await db.execute(delete(Session).where(Session.user_id == user_id, Session.token != current_token))
    return result.rowcount


async def revoke_all_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(delete(Session).where(Session.user_id == user_id))
    return result.rowcount


async def purge_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(Session).where(Session.expires_at <= utcnow()))
    return result.rowcount


async def count_sessions(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(select(func.count(Session.id)).where(Session.user_id == user_id))
    return result.scalar_one()


# ── Users ───────────────────────────────────────────────────────────


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, data: RegisterRequest, role: UserRole = UserRole.user) -> User:
    if await get_user_by_email(db, data.email) is not None:
        raise Conflict("An account with this email already exists")

    user = User(
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        firm_name=data.firm_name or None,
        phone=data.phone or None,
        role=role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        logger.warning("Duplicate email on insert: %s", user.email)
        raise Conflict("An account with this email already exists")
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the user for valid credentials on an active account, else None.

    Unknown email, wrong password and disabled accounts are indistinguishable
    to the caller.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        # Keep timing comparable to a real hash check.
        pwd_context.dummy_verify()
        return None

    if not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        logger.info("Login refused for disabled account %s", user.id)
        return None

    user.last_login = utcnow()
    await db.flush()
    return user


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    await db.flush()
    await db.refresh(user)
    return user


async def change_password(db: AsyncSession, user: User, new_password: str, current_token: str) -> int:
    user.password_hash = hash_password(new_password)
    user.updated_at = utcnow()
    await db.flush()
    revoked = await revoke_other_sessions(db, user.id, current_token)
    logger.info("Password changed for user %s; revoked %d other session(s)", user.id, revoked)
    return revoked


async def bootstrap_admin() -> None:
    """Create the first admin user if no users exist."""
    async with async_session() as db:
        result = await db.execute(select(User).limit(1))
        if result.scalar_one_or_none() is not None:
            return

        admin = User(
            email=settings.first_admin_email.lower(),
            password_hash=hash_password(settings.first_admin_password),
            first_name="Admin",
            last_name="User",
            role=UserRole.admin,
        )
        db.add(admin)
        await db.commit()
        logger.info("Bootstrap admin created: %s", settings.first_admin_email)
