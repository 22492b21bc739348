import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.cases.models import Case, CaseStatus, Priority
from app.cases.schemas import (
    CaseCreate,
    CaseDetailResponse,
    CaseEnvelope,
    CaseListResponse,
    CaseResponse,
    CaseStatsResponse,
    CaseSummary,
    CaseUpdate,
    NoteCreate,
    NoteEnvelope,
    NoteResponse,
)
from app.cases.service import (
    add_note,
    create_case,
    delete_case,
    get_case,
    get_case_notes,
    get_case_stats,
    get_cases,
    get_recent_cases,
    update_case,
)
from app.common.errors import NotFound
from app.common.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Pagination
from app.common.schemas import MessageResponse
from app.database import get_db
from app.deadlines.schemas import DeadlineCreate, DeadlineEnvelope, DeadlineResponse
from app.deadlines.service import add_deadline, get_case_deadlines, get_upcoming_deadlines
from app.dependencies import get_current_user
from app.documents.schemas import DocumentResponse
from app.documents.service import get_case_documents
from app.documents.storage import LocalFileStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_case(db: AsyncSession, user: User, case_id: uuid.UUID, action: str) -> Case:
    case = await get_case(db, user.id, case_id)
    if case is None:
        raise NotFound(f"Case not found or you do not have permission to {action}")
    return case


@router.get("", response_model=CaseListResponse)
async def list_cases(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    status: Optional[CaseStatus] = None,
    priority: Optional[Priority] = None,
    search: Optional[str] = None,
):
    cases, total = await get_cases(db, current_user.id, page, limit, status, priority, search)
    return CaseListResponse(
        cases=[CaseResponse.model_validate(c) for c in cases],
        pagination=Pagination.create(total=total, page=page, limit=limit),
    )


@router.get("/stats/overview", response_model=CaseStatsResponse)
async def case_stats_overview(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return CaseStatsResponse(
        stats=await get_case_stats(db, current_user.id),
        recent_cases=[CaseSummary.model_validate(c) for c in await get_recent_cases(db, current_user.id)],
        upcoming_deadlines=await get_upcoming_deadlines(db, current_user.id),
    )


@router.get("/{case_id}", response_model=CaseDetailResponse)
async def get_case_detail(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await _owned_case(db, current_user, case_id, "view it")
    return CaseDetailResponse(
        case=CaseResponse.model_validate(case),
        notes=[NoteResponse.model_validate(n) for n in await get_case_notes(db, case.id)],
        deadlines=[DeadlineResponse.model_validate(d) for d in await get_case_deadlines(db, case.id)],
        documents=[DocumentResponse.model_validate(d) for d in await get_case_documents(db, case.id)],
    )


@router.post("", response_model=CaseEnvelope, status_code=status.HTTP_201_CREATED)
async def create_new_case(
    data: CaseCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await create_case(db, current_user.id, data)
    logger.info("Case %s created by user %s", case.case_number, current_user.id)
    return CaseEnvelope(message="Case created successfully", case=CaseResponse.model_validate(case))


@router.put("/{case_id}", response_model=CaseEnvelope)
async def update_existing_case(
    case_id: uuid.UUID,
    data: CaseUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await _owned_case(db, current_user, case_id, "update it")
    updated = await update_case(db, case, data)
    return CaseEnvelope(message="Case updated successfully", case=CaseResponse.model_validate(updated))


@router.delete("/{case_id}", response_model=MessageResponse)
async def delete_existing_case(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    storage: Annotated[LocalFileStorage, Depends(get_storage)],
):
    case = await _owned_case(db, current_user, case_id, "delete it")
    file_paths = await delete_case(db, case)
    # Files go only once the rows are committed.
    await db.commit()
    removed = storage.remove_many(file_paths)
    logger.info("Case %s deleted; removed %d of %d stored file(s)", case_id, removed, len(file_paths))
    return MessageResponse(message="Case deleted successfully")


@router.post("/{case_id}/notes", response_model=NoteEnvelope, status_code=status.HTTP_201_CREATED)
async def add_case_note(
    case_id: uuid.UUID,
    data: NoteCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await _owned_case(db, current_user, case_id, "add notes")
    note = await add_note(db, case, current_user.id, data)
    return NoteEnvelope(message="Note added successfully", note=NoteResponse.model_validate(note))


@router.post("/{case_id}/deadlines", response_model=DeadlineEnvelope, status_code=status.HTTP_201_CREATED)
async def add_case_deadline(
    case_id: uuid.UUID,
    data: DeadlineCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await _owned_case(db, current_user, case_id, "add deadlines")
    deadline = await add_deadline(db, case, current_user.id, data)
    return DeadlineEnvelope(message="Deadline added successfully", deadline=DeadlineResponse.model_validate(deadline))
