"""
Async data store for candidates, answers, flags and audit rows.

Rows carry JSON payloads as strings, the same way telemetry payloads are kept.
Errors are not caught here: every failure surfaces as ``SQLAlchemyError`` to
the caller, which decides whether the write was critical.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from screenbot.anticheat import Flag, RecentAnswer
from screenbot.db import session_scope
from screenbot.models import (
    AnswerRecord,
    AuditRecord,
    CandidateRecord,
    FlagRecord,
    InterviewRecord,
    utcnow,
)
from screenbot.transport import Identity

LOG = logging.getLogger("screenbot.store")


@dataclass(frozen=True)
class ExportRow:
    candidate_id: int
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    approved: bool
    question_index: int
    answer_text: str
    answer_at: datetime


def _dump(payload: Optional[Dict[str, Any]]) -> str:
    return json.dumps(payload or {}, default=str)


class InterviewStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- candidates -------------------------------------------------------

    async def ensure_candidate(self, identity: Identity) -> int:
        async with session_scope(self._session_factory) as session:
            existing = (
                await session.exec(select(CandidateRecord).where(CandidateRecord.tg_id == identity.id))
            ).first()
            if existing:
                return existing.id
            candidate = CandidateRecord(
                tg_id=identity.id,
                username=identity.username,
                first_name=identity.first_name,
                last_name=identity.last_name,
            )
            session.add(candidate)
            await session.flush()
            session.add(InterviewRecord(candidate_id=candidate.id))
            await session.commit()
            LOG.info("Registered candidate %s (tg_id=%s)", candidate.id, identity.id)
            return candidate.id

    async def is_approved(self, candidate_id: int) -> bool:
        async with session_scope(self._session_factory) as session:
            candidate = await session.get(CandidateRecord, candidate_id)
            return bool(candidate and candidate.approved)

    async def _set_approval(self, tg_id: int, approved: bool) -> bool:
        async with session_scope(self._session_factory) as session:
            candidate = (
                await session.exec(select(CandidateRecord).where(CandidateRecord.tg_id == tg_id))
            ).first()
            if candidate is None:
                return False
            candidate.approved = approved
            session.add(candidate)
            await session.commit()
            return True

    async def approve_candidate(self, tg_id: int) -> bool:
        return await self._set_approval(tg_id, True)

    async def revoke_candidate(self, tg_id: int) -> bool:
        return await self._set_approval(tg_id, False)

    async def get_candidate(self, candidate_id: int) -> Optional[CandidateRecord]:
        async with session_scope(self._session_factory) as session:
            return await session.get(CandidateRecord, candidate_id)

    async def list_candidates(self) -> List[CandidateRecord]:
        async with session_scope(self._session_factory) as session:
            return list((await session.exec(select(CandidateRecord).order_by(CandidateRecord.id))).all())

    # -- interview progress -----------------------------------------------

    async def store_answer(
        self,
        candidate_id: int,
        question_index: int,
        text: str,
        meta: Optional[Dict[str, Any]] = None,
        flags: Iterable[Flag] = (),
        finalize: bool = False,
    ) -> None:
        """Write the answer, its flags and optionally the finalization in one transaction."""
        async with session_scope(self._session_factory) as session:
            session.add(
                AnswerRecord(
                    candidate_id=candidate_id,
                    question_index=question_index,
                    answer_text=text,
                    meta=_dump(meta),
                )
            )
            for item in flags:
                session.add(self._flag_row(candidate_id, item))
            if finalize:
                await self._close_interview(session, candidate_id)
            await session.commit()

    async def record_flag(self, candidate_id: int, flag: Flag) -> None:
        async with session_scope(self._session_factory) as session:
            session.add(self._flag_row(candidate_id, flag))
            await session.commit()

    @staticmethod
    def _flag_row(candidate_id: int, flag: Flag) -> FlagRecord:
        return FlagRecord(
            candidate_id=candidate_id,
            code=flag.code.value,
            severity=int(flag.severity),
            details=_dump(flag.details),
        )

    async def log_audit_event(self, candidate_id: int, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        async with session_scope(self._session_factory) as session:
            session.add(AuditRecord(candidate_id=candidate_id, event=event, payload=_dump(payload)))
            await session.commit()

    async def sample_recent_answers(self, limit: int = 200) -> List[RecentAnswer]:
        async with session_scope(self._session_factory) as session:
            rows = (
                await session.exec(
                    select(AnswerRecord.candidate_id, AnswerRecord.answer_text)
                    .order_by(col(AnswerRecord.id).desc())
                    .limit(limit)
                )
            ).all()
            return [RecentAnswer(candidate_id=cid, text=text or "") for cid, text in rows]

    async def finalize_interview(self, candidate_id: int) -> None:
        async with session_scope(self._session_factory) as session:
            await self._close_interview(session, candidate_id)
            await session.commit()

    @staticmethod
    async def _close_interview(session: AsyncSession, candidate_id: int) -> None:
        open_rows = (
            await session.exec(
                select(InterviewRecord).where(
                    InterviewRecord.candidate_id == candidate_id,
                    col(InterviewRecord.finished_at).is_(None),
                )
            )
        ).all()
        now = utcnow()
        for row in open_rows:
            row.finished_at = now
            session.add(row)

    async def interview_finished(self, candidate_id: int) -> bool:
        async with session_scope(self._session_factory) as session:
            row = (
                await session.exec(
                    select(InterviewRecord).where(
                        InterviewRecord.candidate_id == candidate_id,
                        col(InterviewRecord.finished_at).is_not(None),
                    )
                )
            ).first()
            return row is not None

    # -- read side for reports ----------------------------------------------

    async def flags_for(self, candidate_id: int) -> List[FlagRecord]:
        async with session_scope(self._session_factory) as session:
            return list(
                (
                    await session.exec(
                        select(FlagRecord)
                        .where(FlagRecord.candidate_id == candidate_id)
                        .order_by(FlagRecord.created_at, FlagRecord.id)
                    )
                ).all()
            )

    async def answers_for(self, candidate_id: int) -> List[AnswerRecord]:
        async with session_scope(self._session_factory) as session:
            return list(
                (
                    await session.exec(
                        select(AnswerRecord)
                        .where(AnswerRecord.candidate_id == candidate_id)
                        .order_by(AnswerRecord.question_index, AnswerRecord.id)
                    )
                ).all()
            )

    async def audit_for(self, candidate_id: int) -> List[AuditRecord]:
        async with session_scope(self._session_factory) as session:
            return list(
                (
                    await session.exec(
                        select(AuditRecord).where(AuditRecord.candidate_id == candidate_id).order_by(AuditRecord.id)
                    )
                ).all()
            )

    async def export_rows(self) -> List[ExportRow]:
        async with session_scope(self._session_factory) as session:
            rows = (
                await session.exec(
                    select(CandidateRecord, AnswerRecord)
                    .where(CandidateRecord.id == AnswerRecord.candidate_id)
                    .order_by(CandidateRecord.id, AnswerRecord.question_index)
                )
            ).all()
            return [
                ExportRow(
                    candidate_id=candidate.id,
                    username=candidate.username,
                    first_name=candidate.first_name,
                    last_name=candidate.last_name,
                    approved=candidate.approved,
                    question_index=answer.question_index,
                    answer_text=answer.answer_text,
                    answer_at=answer.created_at,
                )
                for candidate, answer in rows
            ]
