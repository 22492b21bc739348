import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from app.common.schemas import CamelModel, StrictCamelModel
from app.documents.models import DocumentType


class DocumentResponse(CamelModel):
    id: uuid.UUID
    case_id: uuid.UUID
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    document_type: DocumentType
    description: Optional[str] = None
    uploaded_at: datetime


class DocumentEnvelope(CamelModel):
    message: Optional[str] = None
    document: DocumentResponse


class DocumentListResponse(CamelModel):
    documents: list[DocumentResponse]


class DocumentUpdate(StrictCamelModel):
    document_type: Optional[DocumentType] = None
    description: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class DocumentStats(CamelModel):
    total_documents: int = 0
    contracts: int = 0
    medical_records: int = 0
    police_reports: int = 0
    insurance_docs: int = 0
    correspondence: int = 0
    photos: int = 0
    total_storage_used: int = 0


class RecentDocument(CamelModel):
    id: uuid.UUID
    original_name: str
    document_type: DocumentType
    uploaded_at: datetime
    case_id: uuid.UUID
    case_number: str
    case_title: str


class DocumentStatsResponse(CamelModel):
    stats: DocumentStats
    recent_documents: list[RecentDocument]
