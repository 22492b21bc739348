import enum
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.common.base_models import GUID, CreatedAtMixin, TimestampMixin, UUIDBase


class CaseType(str, enum.Enum):
    personal_injury = "personal_injury"
    auto_accident = "auto_accident"
    medical_malpractice = "medical_malpractice"
    workers_comp = "workers_comp"
    other = "other"


class CaseStatus(str, enum.Enum):
    open = "open"
    closed = "closed"
    settled = "settled"
    dismissed = "dismissed"


class Priority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class NoteType(str, enum.Enum):
    general = "general"
    phone_call = "phone_call"
    meeting = "meeting"
    court = "court"
    research = "research"


class Case(UUIDBase, TimestampMixin):
    __tablename__ = "cases"

    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    case_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    case_type: Mapped[CaseType] = mapped_column(Enum(CaseType), nullable=False)
    status: Mapped[CaseStatus] = mapped_column(Enum(CaseStatus), nullable=False, default=CaseStatus.open, index=True)
    priority: Mapped[Priority] = mapped_column(Enum(Priority), nullable=False, default=Priority.medium)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    incident_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    statute_of_limitations: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    settlement_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(15, 2), nullable=True)
    insurance_company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    insurance_adjuster: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    insurance_claim_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Children are removed by the database cascade; never lazy-loaded.
    owner = relationship("User", back_populates="cases")
    notes = relationship("CaseNote", back_populates="case", cascade="all, delete-orphan", passive_deletes=True)
    deadlines = relationship("Deadline", back_populates="case", cascade="all, delete-orphan", passive_deletes=True)
    documents = relationship("Document", back_populates="case", cascade="all, delete-orphan", passive_deletes=True)


class CaseNote(UUIDBase, CreatedAtMixin):
    __tablename__ = "case_notes"

    case_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    note_type: Mapped[NoteType] = mapped_column(Enum(NoteType), nullable=False, default=NoteType.general)

    case = relationship("Case", back_populates="notes")
