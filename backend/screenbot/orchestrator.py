"""
Per-chat interview progression.

A chat moves through identity challenge -> question 0..N-1 -> completed. Each
inbound event is handled under the session store's per-chat lock, and the
session is only updated after the writes for that step have committed, so a
failed write leaves the chat exactly where it was and the same message can
simply be sent again.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from screenbot import config, messages
from screenbot.admin import AdminCommands
from screenbot.anticheat import DEFAULT_POLICY, Flag, FlagCode, ScoringPolicy, Severity, score_answer
from screenbot.sessions import Session, SessionSlot, SessionState, SessionStore
from screenbot.store import InterviewStore
from screenbot.transport import EventKind, InboundEvent, Transport, command_name

LOG = logging.getLogger("screenbot.orchestrator")

SELFIE_MIN_BYTES = 30_000
VOICE_MIN_SECONDS = 2
WARN_SIGNAL_COUNT = 2

Handler = Callable[[SessionSlot, Session, InboundEvent], Awaitable[None]]


def now_ms() -> int:
    return int(time.time() * 1000)


def new_challenge_code() -> str:
    return str(random.randint(1000, 9999))


class InterviewOrchestrator:
    def __init__(
        self,
        store: InterviewStore,
        transport: Transport,
        sessions: Optional[SessionStore] = None,
        questions: Optional[Sequence[str]] = None,
        admin: Optional[AdminCommands] = None,
        policy: ScoringPolicy = DEFAULT_POLICY,
        clock: Callable[[], int] = now_ms,
        code_factory: Callable[[], str] = new_challenge_code,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.sessions = sessions if sessions is not None else SessionStore()
        self.questions: List[str] = list(questions if questions is not None else config.DEFAULT_QUESTIONS)
        if not self.questions:
            raise ValueError("An interview needs at least one question")
        self.admin = admin if admin is not None else AdminCommands(store, transport)
        self.policy = policy
        self.clock = clock
        self.code_factory = code_factory
        self._on_change = on_change or (lambda: None)

    async def handle(self, event: InboundEvent) -> None:
        if event.kind == EventKind.COMMAND:
            await self._handle_command(event)
            return

        async with self.sessions.acquire(event.chat_id) as slot:
            session = slot.session
            if session is None:
                return
            handler = self._dispatch(session, event)
            if handler is None:
                return
            try:
                await handler(slot, session, event)
            except SQLAlchemyError:
                LOG.exception(
                    "Persistence failed; %s event dropped (chat=%s candidate=%s step=%s)",
                    event.kind.value,
                    event.chat_id,
                    session.candidate_id,
                    session.step,
                )
                await self.transport.send_message(event.chat_id, messages.TEMPORARY_FAILURE)

    def _dispatch(self, session: Session, event: InboundEvent) -> Optional[Handler]:
        if session.state == SessionState.IDENTITY_CHALLENGE:
            if event.kind == EventKind.PHOTO and event.photos:
                return self._on_selfie
            return None
        if session.state == SessionState.QUESTION:
            if event.kind == EventKind.VOICE:
                return self._on_voice
            if event.kind == EventKind.TEXT and event.text is not None:
                return self._on_text
        return None

    # -- commands -----------------------------------------------------------

    async def _handle_command(self, event: InboundEvent) -> None:
        name = command_name(event.text)
        is_admin = self.admin.is_admin(event.sender.id)
        if name == "start":
            if is_admin:
                await self.admin.greet(event)
            else:
                await self.start(event)
        elif name == "help":
            if is_admin:
                await self.admin.help(event)
            else:
                await self.transport.send_message(event.chat_id, messages.CANDIDATE_HELP, parse_mode=messages.MARKDOWN)
        elif is_admin:
            await self.admin.handle(event)

    async def start(self, event: InboundEvent) -> None:
        async with self.sessions.acquire(event.chat_id) as slot:
            try:
                candidate_id = await self.store.ensure_candidate(event.sender)
                if not await self.store.is_approved(candidate_id):
                    await self.transport.send_message(event.chat_id, messages.NOT_APPROVED)
                    return
                existing = slot.session
                if existing is not None:
                    await self._reprompt(event.chat_id, existing)
                    return
                if await self.store.interview_finished(candidate_id):
                    await self.transport.send_message(event.chat_id, messages.ALREADY_COMPLETED)
                    return
            except SQLAlchemyError:
                LOG.exception("Could not start interview (chat=%s tg_id=%s)", event.chat_id, event.sender.id)
                await self.transport.send_message(event.chat_id, messages.TEMPORARY_FAILURE)
                return

            # no await between this check and put(), so two chats cannot both pass it
            if self.sessions.chat_for(candidate_id) is not None:
                await self.transport.send_message(event.chat_id, messages.ACTIVE_ELSEWHERE)
                return

            now = self.clock()
            code = self.code_factory()
            slot.put(Session(candidate_id=candidate_id, challenge_code=code, started_at=now, last_prompt_at=now))
            LOG.info("Interview started (chat=%s candidate=%s)", event.chat_id, candidate_id)

            await self.transport.send_message(event.chat_id, messages.welcome(event.sender.first_name))
            await self._audit(candidate_id, "challenge_issued", {"code": code})
            await self.transport.send_message(event.chat_id, messages.challenge(code), parse_mode=messages.MARKDOWN)
            await self.transport.send_message(event.chat_id, messages.CANDIDATE_HELP, parse_mode=messages.MARKDOWN)

    async def _reprompt(self, chat_id: int, session: Session) -> None:
        if session.state == SessionState.IDENTITY_CHALLENGE:
            await self.transport.send_message(
                chat_id, messages.challenge(session.challenge_code), parse_mode=messages.MARKDOWN
            )
        else:
            idx = session.question_index
            await self.transport.send_message(chat_id, messages.question(idx, self.questions[idx]))

    # -- identity challenge -------------------------------------------------

    async def _on_selfie(self, slot: SessionSlot, session: Session, event: InboundEvent) -> None:
        caption = (event.caption or "").strip()
        if session.challenge_code not in caption:
            await self.store.record_flag(
                session.candidate_id,
                Flag(
                    FlagCode.SELFIE_CODE_MISMATCH,
                    Severity.SERIOUS,
                    {"expected": session.challenge_code, "got": caption},
                ),
            )
            self._on_change()
            await self.transport.send_message(event.chat_id, messages.CODE_MISMATCH)
            return

        biggest = max(event.photos, key=lambda p: (p.width * p.height, p.file_size))
        if biggest.file_size < SELFIE_MIN_BYTES:
            await self.store.record_flag(
                session.candidate_id,
                Flag(FlagCode.LOW_QUALITY_SELFIE, Severity.ADVISORY, {"size": biggest.file_size}),
            )
            self._on_change()
            await self.transport.send_message(event.chat_id, messages.LOW_QUALITY_SELFIE)

        await self._audit(session.candidate_id, "selfie_passed", {"file_id": biggest.file_id})
        LOG.info("Selfie accepted (chat=%s candidate=%s)", event.chat_id, session.candidate_id)
        await self._ask(slot, event.chat_id, replace(session, state=SessionState.QUESTION, question_index=0))

    # -- question loop ------------------------------------------------------

    async def _on_voice(self, slot: SessionSlot, session: Session, event: InboundEvent) -> None:
        duration = event.voice_duration or 0
        flags: List[Flag] = []
        if duration < VOICE_MIN_SECONDS:
            flags.append(Flag(FlagCode.TOO_SHORT_VOICE, Severity.ADVISORY, {"duration": duration}))

        await self._save_answer(session, messages.VOICE_PLACEHOLDER, {"type": "voice", "duration": duration}, flags)
        if flags:
            await self.transport.send_message(event.chat_id, messages.VOICE_TOO_SHORT)
        await self._advance(slot, event.chat_id, session)

    async def _on_text(self, slot: SessionSlot, session: Session, event: InboundEvent) -> None:
        now = self.clock()
        answer = (event.text or "").strip()
        sample = await self.store.sample_recent_answers(self.policy.sample_size)
        score = score_answer(session.last_prompt_at, now, answer, sample, self.policy)

        duplicate = score.duplicate_flag
        meta: Dict[str, Any] = {
            "latencyMs": score.latency_ms,
            "signals": [signal.value for signal in score.signals],
        }
        await self._save_answer(session, answer, meta, [duplicate] if duplicate else [])
        if score.signals:
            LOG.info(
                "Answer signals (candidate=%s q=%s): %s",
                session.candidate_id,
                session.question_index,
                ", ".join(signal.value for signal in score.signals),
            )
        if len(score.signals) >= WARN_SIGNAL_COUNT:
            await self.transport.send_message(event.chat_id, messages.INTEGRITY_WARNING)
        await self._advance(slot, event.chat_id, session)

    def _is_last(self, session: Session) -> bool:
        return session.question_index + 1 >= len(self.questions)

    async def _save_answer(self, session: Session, text: str, meta: Dict[str, Any], flags: List[Flag]) -> None:
        await self.store.store_answer(
            session.candidate_id,
            session.question_index,
            text,
            meta,
            flags=flags,
            finalize=self._is_last(session),
        )
        self._on_change()

    async def _advance(self, slot: SessionSlot, chat_id: int, session: Session) -> None:
        if self._is_last(session):
            session.state = SessionState.COMPLETED
            slot.evict()
            LOG.info("Interview completed (chat=%s candidate=%s)", chat_id, session.candidate_id)
            await self.transport.send_message(chat_id, messages.COMPLETED)
            return
        await self._ask(slot, chat_id, replace(session, question_index=session.question_index + 1))

    async def _ask(self, slot: SessionSlot, chat_id: int, session: Session) -> None:
        idx = session.question_index
        text = self.questions[idx]
        await self._audit(session.candidate_id, "question_sent", {"idx": idx, "text": text})
        session.last_prompt_at = self.clock()
        slot.put(session)
        await self.transport.send_message(chat_id, messages.question(idx, text))

    async def _audit(self, candidate_id: int, event: str, payload: Dict[str, Any]) -> None:
        try:
            await self.store.log_audit_event(candidate_id, event, payload)
        except SQLAlchemyError as exc:
            LOG.warning("Failed to log %s audit event (candidate=%s): %s", event, candidate_id, exc)
