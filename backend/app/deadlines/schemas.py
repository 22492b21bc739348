import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from app.cases.models import Priority
from app.common.schemas import CamelModel
from app.deadlines.models import DeadlineStatus


class DeadlineCreate(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    due_date: datetime
    description: Optional[str] = None
    priority: Priority = Priority.medium

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class DeadlineResponse(CamelModel):
    id: uuid.UUID
    case_id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: Optional[str] = None
    due_date: datetime
    priority: Priority
    status: DeadlineStatus
    created_at: datetime


class UpcomingDeadline(DeadlineResponse):
    case_number: str
    case_title: str


class DeadlineEnvelope(CamelModel):
    message: str
    deadline: DeadlineResponse
