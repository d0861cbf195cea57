from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CandidateRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tg_id: int = Field(index=True, unique=True)
    username: Optional[str] = Field(default=None)
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    approved: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class InterviewRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    candidate_id: int = Field(foreign_key="candidaterecord.id", index=True)
    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    finished_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))


class AnswerRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    candidate_id: int = Field(foreign_key="candidaterecord.id", index=True)
    question_index: int
    answer_text: str
    meta: Optional[str] = Field(default=None)  # JSON string: latency and signals, or voice duration
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class FlagRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    candidate_id: int = Field(foreign_key="candidaterecord.id", index=True)
    code: str
    severity: int
    details: Optional[str] = Field(default=None)  # JSON string
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class AuditRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    candidate_id: int = Field(foreign_key="candidaterecord.id", index=True)
    event: str
    payload: Optional[str] = Field(default=None)  # JSON string
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
