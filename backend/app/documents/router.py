import logging
import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.cases.service import get_case
from app.common.errors import NotFound
from app.common.schemas import MessageResponse
from app.database import get_db
from app.dependencies import get_current_user
from app.documents.models import DocumentType
from app.documents.schemas import (
    DocumentEnvelope,
    DocumentListResponse,
    DocumentResponse,
    DocumentStatsResponse,
    DocumentUpdate,
)
from app.documents.service import (
    delete_document,
    get_case_documents,
    get_document_stats,
    get_owned_document,
    get_recent_documents,
    update_document,
    upload_document,
)
from app.documents.storage import LocalFileStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats/overview", response_model=DocumentStatsResponse)
async def document_stats_overview(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    return DocumentStatsResponse(
        stats=await get_document_stats(db, current_user.id),
        recent_documents=await get_recent_documents(db, current_user.id),
    )


@router.post("/upload/{case_id}", response_model=DocumentEnvelope, status_code=status.HTTP_201_CREATED)
async def upload_case_document(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    storage: Annotated[LocalFileStorage, Depends(get_storage)],
    document: UploadFile = File(...),
    document_type: DocumentType = Form(DocumentType.other, alias="documentType"),
    description: Optional[str] = Form(None),
):
    doc = await upload_document(db, storage, current_user.id, case_id, document, document_type, description)
    logger.info("Document %s uploaded to case %s (%d bytes)", doc.id, case_id, doc.file_size)
    return DocumentEnvelope(message="Document uploaded successfully", document=DocumentResponse.model_validate(doc))


@router.get("/case/{case_id}", response_model=DocumentListResponse)
async def list_case_documents(
    case_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    case = await get_case(db, current_user.id, case_id)
    if case is None:
        raise NotFound("Case not found or you do not have permission to view it")
    docs = await get_case_documents(db, case.id)
    return DocumentListResponse(documents=[DocumentResponse.model_validate(d) for d in docs])


@router.get("/download/{document_id}")
async def download_document(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    storage: Annotated[LocalFileStorage, Depends(get_storage)],
):
    doc = await get_owned_document(db, current_user.id, document_id)
    if doc is None:
        raise NotFound("Document not found")
    if not storage.exists(doc.file_path):
        logger.warning("Stored file missing for document %s: %s", doc.id, doc.file_path)
        raise NotFound("File not found")
    return FileResponse(storage.path_for(doc.file_path), media_type=doc.mime_type, filename=doc.original_name)


@router.put("/{document_id}", response_model=DocumentEnvelope)
async def update_document_metadata(
    document_id: uuid.UUID,
    data: DocumentUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    doc = await get_owned_document(db, current_user.id, document_id)
    if doc is None:
        raise NotFound("Document not found")
    doc = await update_document(db, doc, data)
    return DocumentEnvelope(message="Document updated successfully", document=DocumentResponse.model_validate(doc))


@router.delete("/{document_id}", response_model=MessageResponse)
async def delete_existing_document(
    document_id: uuid.UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    storage: Annotated[LocalFileStorage, Depends(get_storage)],
):
    doc = await get_owned_document(db, current_user.id, document_id)
    if doc is None:
        raise NotFound("Document not found")
    file_path = await delete_document(db, doc)
    # Files go only once the row is committed.
    await db.commit()
    if not storage.remove(file_path):
        logger.info("File for document %s was already missing: %s", document_id, file_path)
    return MessageResponse(message="Document deleted successfully")
