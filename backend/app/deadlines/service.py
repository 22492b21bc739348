import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cases.models import Case
from app.common.base_models import utcnow
from app.deadlines.models import Deadline, DeadlineStatus
from app.deadlines.schemas import DeadlineCreate, UpcomingDeadline


async def add_deadline(db: AsyncSession, case: Case, user_id: uuid.UUID, data: DeadlineCreate) -> Deadline:
    deadline = Deadline(
        case_id=case.id,
        user_id=user_id,
        title=data.title,
        description=data.description or None,
        due_date=data.due_date,
        priority=data.priority,
        status=DeadlineStatus.pending,
    )
    db.add(deadline)
    await db.flush()
    await db.refresh(deadline)
    return deadline


async def get_case_deadlines(db: AsyncSession, case_id: uuid.UUID) -> list[Deadline]:
    result = await db.execute(select(Deadline).where(Deadline.case_id == case_id).order_by(Deadline.due_date.asc()))
    return list(result.scalars().all())


async def get_upcoming_deadlines(db: AsyncSession, user_id: uuid.UUID, limit: int = 5) -> list[UpcomingDeadline]:
    """Pending deadlines still in the future, soonest first, scoped through the owning case."""
    result = await db.execute(
        select(Deadline, Case.case_number, Case.title)
        .join(Case, Deadline.case_id == Case.id)
        .where(
            Case.user_id == user_id,
            Deadline.status == DeadlineStatus.pending,
            Deadline.due_date > utcnow(),
        )
        .order_by(Deadline.due_date.asc())
        .limit(limit)
    )
    upcoming = []
    for deadline, case_number, case_title in result.all():
        item = UpcomingDeadline.model_validate(
            {**_as_dict(deadline), "case_number": case_number, "case_title": case_title}
        )
        upcoming.append(item)
    return upcoming


def _as_dict(deadline: Deadline) -> dict:
    return {column.key: getattr(deadline, column.key) for column in Deadline.__table__.columns}
