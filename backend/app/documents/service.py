import logging
import uuid
from typing import Optional

from fastapi import UploadFile
from sqlalchemy import case as sql_case
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cases.models import Case
from app.cases.service import get_case
from app.common.errors import NotFound, ValidationFailed
from app.documents.models import Document, DocumentType
from app.documents.schemas import DocumentStats, DocumentUpdate, RecentDocument
from app.documents.storage import LocalFileStorage, UnsupportedFileType, is_allowed_mime_type, normalize_mime_type

logger = logging.getLogger(__name__)

DOCUMENT_UPDATE_COLUMNS: dict[str, str] = {
    "documentType": "document_type",
    "description": "description",
}


async def upload_document(
    db: AsyncSession,
    storage: LocalFileStorage,
    user_id: uuid.UUID,
    case_id: uuid.UUID,
    upload: UploadFile,
    document_type: DocumentType = DocumentType.other,
    description: Optional[str] = None,
) -> Document:
    """Store an upload against an owned case.

    Order: type check, write file, ownership check, insert row. The written
    file is removed whenever a later step fails.
    """
    if not is_allowed_mime_type(upload.content_type):
        raise UnsupportedFileType(upload.content_type)

    stored = await storage.save(upload)
    try:
        case = await get_case(db, user_id, case_id)
        if case is None:
            raise NotFound("Case not found or you do not have permission to upload documents")

        doc = Document(
            case_id=case.id,
            user_id=case.user_id,
            filename=stored.filename,
            original_name=upload.filename or stored.filename,
            file_path=stored.relative_path,
            file_size=stored.size,
            mime_type=normalize_mime_type(upload.content_type),
            document_type=document_type,
            description=(description or "").strip() or None,
        )
        db.add(doc)
        await db.flush()
        await db.refresh(doc)
    except BaseException:
        storage.remove(stored.relative_path)
        raise
    return doc


async def get_owned_document(db: AsyncSession, user_id: uuid.UUID, document_id: uuid.UUID) -> Optional[Document]:
    """Resolve a document through its case so the case owner is authoritative."""
    result = await db.execute(
        select(Document).join(Case, Document.case_id == Case.id).where(Document.id == document_id, Case.user_id == user_id)
    )
    doc = result.scalar_one_or_none()
    if doc is not None and doc.user_id != user_id:
        logger.warning("Document %s owner copy disagrees with its case owner", doc.id)
    return doc


async def get_case_documents(db: AsyncSession, case_id: uuid.UUID) -> list[Document]:
    result = await db.execute(
        select(Document).where(Document.case_id == case_id).order_by(Document.uploaded_at.desc())
    )
    return list(result.scalars().all())


async def update_document(db: AsyncSession, doc: Document, data: DocumentUpdate) -> Document:
    changes = data.model_dump(exclude_unset=True, by_alias=True)
    if not changes:
        raise ValidationFailed("At least one field must be provided for update")

    for key, value in changes.items():
        column = DOCUMENT_UPDATE_COLUMNS.get(key)
        if column is None:
            raise ValidationFailed(f"Field '{key}' cannot be updated", details=[{"field": key}])
        if column == "document_type" and value is None:
            raise ValidationFailed("documentType cannot be null", details=[{"field": key}])
        setattr(doc, column, value)
    await db.flush()
    await db.refresh(doc)
    return doc


async def delete_document(db: AsyncSession, doc: Document) -> str:
    """Delete the row and return its stored path. The caller removes the file once committed."""
    file_path = doc.file_path
    await db.delete(doc)
    await db.flush()
    return file_path


async def get_document_stats(db: AsyncSession, user_id: uuid.UUID) -> DocumentStats:
    def _count(document_type: DocumentType):
        return func.count(sql_case((Document.document_type == document_type, 1)))

    result = await db.execute(
        select(
            func.count(Document.id),
            _count(DocumentType.contract),
            _count(DocumentType.medical_record),
            _count(DocumentType.police_report),
            _count(DocumentType.insurance_doc),
            _count(DocumentType.correspondence),
            _count(DocumentType.photo),
            func.coalesce(func.sum(Document.file_size), 0),
        )
        .select_from(Document)
        .join(Case, Document.case_id == Case.id)
        .where(Case.user_id == user_id)
    )
    total, contracts, medical, police, insurance, correspondence, photos, storage_used = result.one()
    return DocumentStats(
        total_documents=total,
        contracts=contracts,
        medical_records=medical,
        police_reports=police,
        insurance_docs=insurance,
        correspondence=correspondence,
        photos=photos,
        total_storage_used=int(storage_used or 0),
    )


async def get_recent_documents(db: AsyncSession, user_id: uuid.UUID, limit: int = 10) -> list[RecentDocument]:
    result = await db.execute(
        select(Document, Case.case_number, Case.title)
        .join(Case, Document.case_id == Case.id)
        .where(Case.user_id == user_id)
        .order_by(Document.uploaded_at.desc())
        .limit(limit)
    )
    return [
        RecentDocument(
            id=doc.id,
            original_name=doc.original_name,
            document_type=doc.document_type,
            uploaded_at=doc.uploaded_at,
            case_id=doc.case_id,
            case_number=case_number,
            case_title=case_title,
        )
        for doc, case_number, case_title in result.all()
    ]
