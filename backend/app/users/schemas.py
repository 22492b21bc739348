import enum
import uuid
from datetime import datetime
from typing import Optional

from pydantic import model_validator

from app.auth.models import UserRole
from app.auth.schemas import UserResponse
from app.cases.models import CaseType
from app.cases.schemas import CaseStats, CaseSummary
from app.common.pagination import Pagination
from app.common.schemas import CamelModel, StrictCamelModel
from app.deadlines.schemas import UpcomingDeadline
from app.documents.schemas import DocumentStats


class ActivityType(str, enum.Enum):
    note = "note"
    document = "document"
    case = "case"
    deadline = "deadline"


class ActivityItem(CamelModel):
    type: ActivityType
    id: uuid.UUID
    content: str
    subtype: Optional[str] = None
    created_at: datetime
    case_id: uuid.UUID
    case_number: str
    case_title: str


class ActivityPagination(CamelModel):
    page: int
    limit: int
    has_more: bool


class ActivityResponse(CamelModel):
    activities: list[ActivityItem]
    pagination: ActivityPagination


class DashboardResponse(CamelModel):
    case_stats: CaseStats
    recent_cases: list[CaseSummary]
    upcoming_deadlines: list[UpcomingDeadline]
    document_stats: DocumentStats
    recent_activity: list[ActivityItem]


class UserStatsOverview(CamelModel):
    total_cases: int = 0
    open_cases: int = 0
    settled_cases: int = 0
    closed_cases: int = 0
    dismissed_cases: int = 0
    total_documents: int = 0
    total_notes: int = 0
    total_deadlines: int = 0
    total_settlements: float = 0.0
    avg_settlement: float = 0.0
    total_storage_used: int = 0


class CaseTypeCount(CamelModel):
    case_type: CaseType
    count: int


class UserStatsResponse(CamelModel):
    overview: UserStatsOverview
    case_types: list[CaseTypeCount]


class UserListResponse(CamelModel):
    users: list[UserResponse]
    pagination: Pagination


class AdminUserUpdate(StrictCamelModel):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def fields_not_null(self) -> "AdminUserUpdate":
        for field in ("role", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self
