import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.schemas import UserEnvelope, UserResponse
from app.auth.service import get_user
from app.cases.schemas import CaseSummary
from app.cases.service import get_case_stats, get_recent_cases
from app.common.errors import NotFound
from app.common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Pagination
from app.database import get_db
from app.deadlines.service import get_upcoming_deadlines
from app.dependencies import get_current_user, require_roles
from app.documents.service import get_document_stats
from app.users.schemas import (
    ActivityPagination,
    ActivityResponse,
    ActivityType,
    AdminUserUpdate,
    DashboardResponse,
    UserListResponse,
    UserStatsResponse,
)
from app.users.service import (
    admin_update_user,
    get_activity,
    get_case_type_distribution,
    get_recent_activity,
    get_user_stats,
    list_users,
)

router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return DashboardResponse(
        case_stats=await get_case_stats(db, current_user.id),
        recent_cases=[CaseSummary.model_validate(c) for c in await get_recent_cases(db, current_user.id)],
        upcoming_deadlines=await get_upcoming_deadlines(db, current_user.id),
        document_stats=await get_document_stats(db, current_user.id),
        recent_activity=await get_recent_activity(db, current_user.id),
    )


@router.get("/activity", response_model=ActivityResponse)
async def activity(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    activity_type: Annotated[Optional[ActivityType], Query(alias="type")] = None,
):
    items, has_more = await get_activity(db, current_user.id, page, limit, activity_type)
    return ActivityResponse(
        activities=items,
        pagination=ActivityPagination(page=page, limit=limit, has_more=has_more),
    )


@router.get("/stats", response_model=UserStatsResponse)
async def stats(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return UserStatsResponse(
        overview=await get_user_stats(db, current_user.id),
        case_types=await get_case_type_distribution(db, current_user.id),
    )


@router.get("/admin/all", response_model=UserListResponse)
async def list_all_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(require_roles("admin"))],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
):
    users, total = await list_users(db, page, limit, search)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination.create(total=total, page=page, limit=limit),
    )


@router.put("/admin/{user_id}", response_model=UserEnvelope)
async def update_user_as_admin(
    user_id: uuid.UUID,
    data: AdminUserUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    admin: Annotated[User, Depends(require_roles("admin"))],
):
    target = await get_user(db, user_id)
    if target is None:
        raise NotFound("User not found")
    user = await admin_update_user(db, admin, target, data)
    return UserEnvelope(message="User updated successfully", user=UserResponse.model_validate(user))
