import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.cases.models import Priority
from app.common.base_models import GUID, CreatedAtMixin, UTCDateTime, UUIDBase


class DeadlineStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    missed = "missed"


class Deadline(UUIDBase, CreatedAtMixin):
    __tablename__ = "deadlines"

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), nullable=False, default=Priority.medium)
    status: Mapped[DeadlineStatus] = mapped_column(Enum(DeadlineStatus), nullable=False, default=DeadlineStatus.pending)

    case = relationship("Case", back_populates="deadlines")
