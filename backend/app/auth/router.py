from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import (
    AuthResponse,
    LoginRequest,
    PasswordChange,
    ProfileUpdate,
    RegisterRequest,
    UserEnvelope,
    UserResponse,
    VerifyResponse,
)
from app.auth.service import (
    authenticate_user,
    change_password,
    create_user,
    issue_session,
    revoke_session,
    update_profile,
    verify_password,
)
from app.common.errors import Unauthorized, ValidationFailed
from app.common.schemas import MessageResponse
from app.database import get_db
from app.dependencies import get_current_token, get_current_user

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: Annotated[AsyncSession, Depends(get_db)]):
    user = await create_user(db, data)
    token = await issue_session(db, user)
    return AuthResponse(message="User registered successfully", user=UserResponse.model_validate(user), token=token)


@router.post("/login", response_model=AuthResponse)
async def login(data: LoginRequest, db: Annotated[AsyncSession, Depends(get_db)]):
    user = await authenticate_user(db, data.email, data.password)
    if user is None:
        raise Unauthorized("Email or password is incorrect")

    token = await issue_session(db, user)
    return AuthResponse(message="Login successful", user=UserResponse.model_validate(user), token=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    token: Annotated[str, Depends(get_current_token)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    await revoke_session(db, token)
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=UserEnvelope, response_model_exclude_none=True)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]):
    return UserEnvelope(user=UserResponse.model_validate(current_user))


@router.get("/verify", response_model=VerifyResponse)
async def verify(current_user: Annotated[User, Depends(get_current_user)]):
    return VerifyResponse(user=UserResponse.model_validate(current_user))


@router.put("/profile", response_model=UserEnvelope)
async def update_my_profile(
    data: ProfileUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    if not data.model_fields_set:
        raise ValidationFailed("At least one field must be provided for update")

    user = await update_profile(db, current_user, data)
    return UserEnvelope(message="Profile updated successfully", user=UserResponse.model_validate(user))


@router.put("/password", response_model=MessageResponse)
async def change_my_password(
    data: PasswordChange,
    current_user: Annotated[User, Depends(get_current_user)],
    token: Annotated[str, Depends(get_current_token)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    if not verify_password(data.current_password, current_user.password_hash):
        raise Unauthorized("Current password is incorrect")

    await change_password(db, current_user, data.new_password, token)
    return MessageResponse(message="Password changed successfully")
