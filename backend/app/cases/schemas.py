import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from app.cases.models import CaseStatus, CaseType, NoteType, Priority
from app.common.pagination import Pagination
from app.common.schemas import CamelModel, StrictCamelModel
from app.deadlines.schemas import DeadlineResponse, UpcomingDeadline
from app.documents.schemas import DocumentResponse

_TEXT_FIELDS = (
    "title",
    "client_name",
    "client_phone",
    "description",
    "insurance_company",
    "insurance_adjuster",
    "insurance_claim_number",
)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class CaseCreate(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    client_name: str = Field(min_length=1, max_length=255)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(default=None, max_length=50)
    case_type: CaseType
    priority: Priority = Priority.medium
    description: Optional[str] = None
    incident_date: Optional[date] = None
    insurance_company: Optional[str] = Field(default=None, max_length=255)
    insurance_adjuster: Optional[str] = Field(default=None, max_length=255)
    insurance_claim_number: Optional[str] = Field(default=None, max_length=100)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class CaseUpdate(StrictCamelModel):
    """Partial update. Only these keys are accepted; anything else is a 400."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    client_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(default=None, max_length=50)
    status: Optional[CaseStatus] = None
    priority: Optional[Priority] = None
    description: Optional[str] = None
    settlement_amount: Optional[float] = Field(default=None, ge=0)
    insurance_company: Optional[str] = Field(default=None, max_length=255)
    insurance_adjuster: Optional[str] = Field(default=None, max_length=255)
    insurance_claim_number: Optional[str] = Field(default=None, max_length=100)

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @model_validator(mode="after")
    def required_columns_not_null(self) -> "CaseUpdate":
        for field in ("title", "client_name", "status", "priority"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class CaseResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    case_number: str
    title: str
    client_name: str
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    case_type: CaseType
    status: CaseStatus
    priority: Priority
    description: Optional[str] = None
    incident_date: Optional[date] = None
    statute_of_limitations: Optional[date] = None
    settlement_amount: Optional[float] = None
    insurance_company: Optional[str] = None
    insurance_adjuster: Optional[str] = None
    insurance_claim_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CaseSummary(CamelModel):
    id: uuid.UUID
    case_number: str
    title: str
    client_name: str
    status: CaseStatus
    priority: Priority
    created_at: datetime


class CaseEnvelope(CamelModel):
    message: Optional[str] = None
    case: CaseResponse


class CaseListResponse(CamelModel):
    cases: list[CaseResponse]
    pagination: Pagination


class NoteCreate(CamelModel):
    note: str = Field(min_length=1)
    note_type: NoteType = NoteType.general

    @field_validator("note", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)


class NoteResponse(CamelModel):
    id: uuid.UUID
    case_id: uuid.UUID
    user_id: uuid.UUID
    note: str
    note_type: NoteType
    created_at: datetime


class NoteEnvelope(CamelModel):
    message: str
    note: NoteResponse


class CaseDetailResponse(CamelModel):
    case: CaseResponse
    notes: list[NoteResponse]
    deadlines: list[DeadlineResponse]
    documents: list[DocumentResponse]


class CaseStats(CamelModel):
    total_cases: int = 0
    open_cases: int = 0
    settled_cases: int = 0
    closed_cases: int = 0
    dismissed_cases: int = 0
    total_settlements: float = 0.0
    avg_settlement: float = 0.0


class CaseStatsResponse(CamelModel):
    stats: CaseStats
    recent_cases: list[CaseSummary]
    upcoming_deadlines: list[UpcomingDeadline]
