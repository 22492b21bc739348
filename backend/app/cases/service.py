import logging
import secrets
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import case as sql_case
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cases.models import Case, CaseNote, CaseStatus, CaseType, Priority
from app.cases.schemas import CaseCreate, CaseStats, CaseUpdate, NoteCreate
from app.common.base_models import utcnow
from app.common.errors import Conflict, ValidationFailed
from app.documents.models import Document

logger = logging.getLogger(__name__)

STATUTE_OF_LIMITATIONS_YEARS = 2
CASE_NUMBER_ATTEMPTS = 10

# API field name -> Case column. The only keys an update may touch.
CASE_UPDATE_COLUMNS: dict[str, str] = {
    "title": "title",
    "clientName": "client_name",
    "clientEmail": "client_email",
    "clientPhone": "client_phone",
    "status": "status",
    "priority": "priority",
    "description": "description",
    "settlementAmount": "settlement_amount",
    "insuranceCompany": "insurance_company",
    "insuranceAdjuster": "insurance_adjuster",
    "insuranceClaimNumber": "insurance_claim_number",
}


def statute_of_limitations(incident_date: Optional[date]) -> Optional[date]:
    if incident_date is None:
        return None
    try:
        return incident_date.replace(year=incident_date.year + STATUTE_OF_LIMITATIONS_YEARS)
    except ValueError:
        # Feb 29 -> Feb 28
        return incident_date.replace(year=incident_date.year + STATUTE_OF_LIMITATIONS_YEARS, day=28)


def generate_case_number(case_type: CaseType, year: int) -> str:
    return f"{case_type.value.upper()}-{year}-{secrets.randbelow(1000):03d}"


async def _case_number_taken(db: AsyncSession, case_number: str) -> bool:
    result = await db.execute(select(Case.id).where(Case.case_number == case_number))
    return result.first() is not None


async def _allocate_case_number(db: AsyncSession, case_type: CaseType) -> str:
    year = utcnow().year
    for _ in range(CASE_NUMBER_ATTEMPTS):
        candidate = generate_case_number(case_type, year)
        if not await _case_number_taken(db, candidate):
            return candidate
    logger.warning("Case number space for %s-%s is saturated", case_type.value, year)
    raise Conflict("Could not allocate a unique case number, please retry")


def _scoped(user_id: uuid.UUID):
    return select(Case).where(Case.user_id == user_id)


async def get_cases(
    db: AsyncSession,
    user_id: uuid.UUID,
    page: int = 1,
    limit: int = 20,
    status: Optional[CaseStatus] = None,
    priority: Optional[Priority] = None,
    search: Optional[str] = None,
) -> tuple[list[Case], int]:
    query = _scoped(user_id)
    count_query = select(func.count(Case.id)).where(Case.user_id == user_id)

    if status:
        query = query.where(Case.status == status)
        count_query = count_query.where(Case.status == status)

    if priority:
        query = query.where(Case.priority == priority)
        count_query = count_query.where(Case.priority == priority)

    search = (search or "").strip()
    if search:
        search_filter = or_(
            Case.title.icontains(search, autoescape=True),
            Case.client_name.icontains(search, autoescape=True),
            Case.case_number.icontains(search, autoescape=True),
        )
        query = query.where(search_filter)
        count_query = count_query.where(search_filter)

    total = (await db.execute(count_query)).scalar_one()
    offset = (page - 1) * limit
    result = await db.execute(query.order_by(Case.created_at.desc(), Case.id).offset(offset).limit(limit))
    return list(result.scalars().all()), total


async def get_case(db: AsyncSession, user_id: uuid.UUID, case_id: uuid.UUID) -> Optional[Case]:
    """Return the case only if it belongs to ``user_id``; absent and foreign look the same."""
    result = await db.execute(_scoped(user_id).where(Case.id == case_id))
    return result.scalar_one_or_none()


async def create_case(db: AsyncSession, user_id: uuid.UUID, data: CaseCreate) -> Case:
    case_number = await _allocate_case_number(db, data.case_type)
    case = Case(
        user_id=user_id,
        case_number=case_number,
        title=data.title,
        client_name=data.client_name,
        client_email=data.client_email or None,
        client_phone=data.client_phone or None,
        case_type=data.case_type,
        priority=data.priority,
        status=CaseStatus.open,
        description=data.description or None,
        incident_date=data.incident_date,
        statute_of_limitations=statute_of_limitations(data.incident_date),
        insurance_company=data.insurance_company or None,
        insurance_adjuster=data.insurance_adjuster or None,
        insurance_claim_number=data.insurance_claim_number or None,
    )
    db.add(case)
    try:
        await db.flush()
    except IntegrityError:
        logger.warning("Case number collision on insert: %s", case_number)
        raise Conflict("Could not allocate a unique case number, please retry")
    await db.refresh(case)
    return case


def case_update_values(data: CaseUpdate) -> dict:
    values = {}
    for key, value in data.model_dump(exclude_unset=True, by_alias=True).items():
        column = CASE_UPDATE_COLUMNS.get(key)
        if column is None:
            raise ValidationFailed(f"Field '{key}' cannot be updated", details=[{"field": key}])
        values[column] = value
    return values


async def update_case(db: AsyncSession, case: Case, data: CaseUpdate) -> Case:
    values = case_update_values(data)
    if not values:
        raise ValidationFailed("At least one field must be provided for update")

    values["updated_at"] = utcnow()
    await db.execute(
        update(Case)
        .where(Case.id == case.id, Case.user_id == case.user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(case)
    return case


async def delete_case(db: AsyncSession, case: Case) -> list[str]:
    """Delete the case row and return the stored paths of its documents.

    Notes, deadlines and document rows go with the database cascade; the
    caller is responsible for removing the returned files once committed.
    """
    result = await db.execute(select(Document.file_path).where(Document.case_id == case.id))
    file_paths = list(result.scalars().all())
    await db.delete(case)
    await db.flush()
    return file_paths


async def add_note(db: AsyncSession, case: Case, user_id: uuid.UUID, data: NoteCreate) -> CaseNote:
    note = CaseNote(case_id=case.id, user_id=user_id, note=data.note, note_type=data.note_type)
    db.add(note)
    await db.flush()
    await db.refresh(note)
    return note


async def get_case_notes(db: AsyncSession, case_id: uuid.UUID) -> list[CaseNote]:
    result = await db.execute(
        select(CaseNote).where(CaseNote.case_id == case_id).order_by(CaseNote.created_at.desc())
    )
    return list(result.scalars().all())


async def get_case_stats(db: AsyncSession, user_id: uuid.UUID) -> CaseStats:
    def _count(status: CaseStatus):
        return func.count(sql_case((Case.status == status, 1)))

    result = await db.execute(
        select(
            func.count(Case.id),
            _count(CaseStatus.open),
            _count(CaseStatus.settled),
            _count(CaseStatus.closed),
            _count(CaseStatus.dismissed),
            func.coalesce(func.sum(Case.settlement_amount), 0),
            func.coalesce(func.avg(Case.settlement_amount), 0),
        ).where(Case.user_id == user_id)
    )
    total, open_, settled, closed, dismissed, total_settlements, avg_settlement = result.one()
    return CaseStats(
        total_cases=total,
        open_cases=open_,
        settled_cases=settled,
        closed_cases=closed,
        dismissed_cases=dismissed,
        total_settlements=float(total_settlements or 0),
        avg_settlement=float(avg_settlement or 0),
    )


async def get_recent_cases(db: AsyncSession, user_id: uuid.UUID, limit: int = 5) -> list[Case]:
    result = await db.execute(_scoped(user_id).order_by(Case.created_at.desc()).limit(limit))
    return list(result.scalars().all())
