import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.service import revoke_all_sessions
from app.cases.models import Case, CaseNote
from app.cases.service import get_case_stats
from app.common.errors import ValidationFailed
from app.deadlines.models import Deadline
from app.documents.models import Document
from app.documents.service import get_document_stats
from app.users.schemas import ActivityItem, ActivityType, AdminUserUpdate, CaseTypeCount, UserStatsOverview

logger = logging.getLogger(__name__)

ADMIN_UPDATE_COLUMNS: dict[str, str] = {
    "role": "role",
    "isActive": "is_active",
}


def _subtype(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


_CASE_COLUMNS = (Case.id.label("case_id"), Case.case_number, Case.title.label("case_title"))


def _activity_query(kind: ActivityType, user_id: uuid.UUID):
    if kind is ActivityType.note:
        return (
            select(CaseNote.id, CaseNote.note, CaseNote.note_type, CaseNote.created_at, *_CASE_COLUMNS)
            .join(Case, CaseNote.case_id == Case.id)
            .where(Case.user_id == user_id)
            .order_by(CaseNote.created_at.desc())
        )
    if kind is ActivityType.document:
        return (
            select(Document.id, Document.original_name, Document.document_type, Document.uploaded_at, *_CASE_COLUMNS)
            .join(Case, Document.case_id == Case.id)
            .where(Case.user_id == user_id)
            .order_by(Document.uploaded_at.desc())
        )
    if kind is ActivityType.deadline:
        return (
            select(Deadline.id, Deadline.title, Deadline.priority, Deadline.created_at, *_CASE_COLUMNS)
            .join(Case, Deadline.case_id == Case.id)
            .where(Case.user_id == user_id)
            .order_by(Deadline.created_at.desc())
        )
    return (
        select(Case.id, Case.title.label("content"), Case.case_type, Case.created_at, *_CASE_COLUMNS)
        .where(Case.user_id == user_id)
        .order_by(Case.created_at.desc())
    )


async def _collect_activity(
    db: AsyncSession, user_id: uuid.UUID, kinds: Iterable[ActivityType], window: int
) -> list[ActivityItem]:
    """Newest ``window`` items of each kind, merged newest first."""
    items: list[ActivityItem] = []
    for kind in kinds:
        result = await db.execute(_activity_query(kind, user_id).limit(window))
        for item_id, content, subtype, created_at, case_id, case_number, case_title in result.all():
            items.append(
                ActivityItem(
                    type=kind,
                    id=item_id,
                    content=content,
                    subtype=_subtype(subtype),
                    created_at=created_at,
                    case_id=case_id,
                    case_number=case_number,
                    case_title=case_title,
                )
            )
    items.sort(key=lambda item: item.created_at, reverse=True)
    return items


async def get_activity(
    db: AsyncSession,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
    kind: Optional[ActivityType] = None,
) -> tuple[list[ActivityItem], bool]:
    """One page of the merged activity feed and whether another page follows.

    Each source is read up to the end of the requested page plus one row, so
    the merged slice is exact regardless of how the kinds interleave.
    """
    kinds = [kind] if kind else list(ActivityType)
    start = (page - 1) * limit
    merged = await _collect_activity(db, user_id, kinds, start + limit + 1)
    return merged[start : start + limit], len(merged) > start + limit


async def get_recent_activity(db: AsyncSession, user_id: uuid.UUID, limit: int = 10) -> list[ActivityItem]:
    merged = await _collect_activity(db, user_id, (ActivityType.note, ActivityType.document), limit)
    return merged[:limit]


async def _count_for_user(db: AsyncSession, model, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(model.id)).select_from(model).join(Case, model.case_id == Case.id).where(Case.user_id == user_id)
    )
    return result.scalar_one()


async def get_user_stats(db: AsyncSession, user_id: uuid.UUID) -> UserStatsOverview:
    case_stats = await get_case_stats(db, user_id)
    document_stats = await get_document_stats(db, user_id)
    return UserStatsOverview(
        total_cases=case_stats.total_cases,
        open_cases=case_stats.open_cases,
        settled_cases=case_stats.settled_cases,
        closed_cases=case_stats.closed_cases,
        dismissed_cases=case_stats.dismissed_cases,
        total_documents=document_stats.total_documents,
        total_notes=await _count_for_user(db, CaseNote, user_id),
        total_deadlines=await _count_for_user(db, Deadline, user_id),
        total_settlements=case_stats.total_settlements,
        avg_settlement=case_stats.avg_settlement,
        total_storage_used=document_stats.total_storage_used,
    )


async def get_case_type_distribution(db: AsyncSession, user_id: uuid.UUID) -> list[CaseTypeCount]:
    count = func.count(Case.id).label("count")
    result = await db.execute(
        select(Case.case_type, count).where(Case.user_id == user_id).group_by(Case.case_type).order_by(count.desc())
    )
    return [CaseTypeCount(case_type=case_type, count=n) for case_type, n in result.all()]


async def list_users(
    db: AsyncSession, page: int = 1, limit: int = 20, search: Optional[str] = None
) -> tuple[list[User], int]:
    query = select(User)
    count_query = select(func.count(User.id))

    search = (search or "").strip()
    if search:
        search_filter = or_(
            User.email.icontains(search, autoescape=True),
            User.first_name.icontains(search, autoescape=True),
            User.last_name.icontains(search, autoescape=True),
            User.firm_name.icontains(search, autoescape=True),
        )
        query = query.where(search_filter)
        count_query = count_query.where(search_filter)

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * limit
    result = await db.execute(query.order_by(User.created_at.desc(), User.id).offset(offset).limit(limit))
    return list(result.scalars().all()), total


async def admin_update_user(db: AsyncSession, admin: User, target: User, data: AdminUserUpdate) -> User:
    changes = data.model_dump(exclude_unset=True, by_alias=True)
    if not changes:
        raise ValidationFailed("At least one field must be provided for update")

    values = {}
    for key, value in changes.items():
        column = ADMIN_UPDATE_COLUMNS.get(key)
        if column is None:
            raise ValidationFailed(f"Field '{key}' cannot be updated", details=[{"field": key}])
        values[column] = value

    if target.id == admin.id and (values.get("is_active") is False or values.get("role", admin.role) != admin.role):
        raise ValidationFailed("Administrators cannot deactivate or demote their own account")

    for column, value in values.items():
        setattr(target, column, value)
    await db.flush()

    if values.get("is_active") is False:
        revoked = await revoke_all_sessions(db, target.id)
        logger.info("User %s deactivated by %s; %d session(s) revoked", target.id, admin.id, revoked)

    await db.refresh(target)
    return target
