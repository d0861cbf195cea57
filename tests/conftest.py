from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from screenbot.admin import AdminCommands
from screenbot.db import init_db, make_engine, make_sessionmaker
from screenbot.orchestrator import InterviewOrchestrator
from screenbot.reports import ExportProjection
from screenbot.store import InterviewStore
from screenbot.transport import EventKind, Identity, InboundEvent, PhotoSize

ADMIN_ID = 999
QUESTIONS = ["First question?", "Second question?", "Third question?"]


class FakeTransport:
    def __init__(self) -> None:
        self.sent: List[Tuple[int, str, Optional[str]]] = []
        self.documents: List[Tuple[int, Path, Optional[str]]] = []

    async def send_message(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> bool:
        self.sent.append((chat_id, text, parse_mode))
        return True

    async def send_document(self, chat_id: int, path: Path, caption: Optional[str] = None) -> bool:
        self.documents.append((chat_id, Path(path), caption))
        return True

    def texts(self, chat_id: Optional[int] = None) -> List[str]:
        return [text for cid, text, _ in self.sent if chat_id is None or cid == chat_id]

    def clear(self) -> None:
        self.sent.clear()
        self.documents.clear()


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def user(user_id: int = 101, first_name: str = "Ada") -> Identity:
    return Identity(id=user_id, username=f"user{user_id}", first_name=first_name, last_name="Tester")


def command(text: str, user_id: int = 101, chat_id: Optional[int] = None) -> InboundEvent:
    return InboundEvent(kind=EventKind.COMMAND, chat_id=chat_id or user_id, sender=user(user_id), text=text)


def text_event(text: str, user_id: int = 101, chat_id: Optional[int] = None) -> InboundEvent:
    return InboundEvent(kind=EventKind.TEXT, chat_id=chat_id or user_id, sender=user(user_id), text=text)


def photo_event(
    caption: Optional[str], sizes=(1_000, 60_000), user_id: int = 101, chat_id: Optional[int] = None
) -> InboundEvent:
    photos = [
        PhotoSize(file_id=f"photo-{i}", width=100 * (i + 1), height=100 * (i + 1), file_size=size)
        for i, size in enumerate(sizes)
    ]
    return InboundEvent(
        kind=EventKind.PHOTO, chat_id=chat_id or user_id, sender=user(user_id), caption=caption, photos=photos
    )


def voice_event(duration: int, user_id: int = 101) -> InboundEvent:
    return InboundEvent(kind=EventKind.VOICE, chat_id=user_id, sender=user(user_id), voice_duration=duration)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'interview.db'}")
    await init_db(engine)
    yield InterviewStore(make_sessionmaker(engine))
    await engine.dispose()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def projection(store, tmp_path):
    return ExportProjection(store, tmp_path / "export.csv", debounce=0)


@pytest.fixture
def orchestrator(store, transport, clock, projection):
    admin = AdminCommands(store, transport, projection=projection, admin_ids=frozenset({str(ADMIN_ID)}))
    return InterviewOrchestrator(
        store,
        transport,
        questions=QUESTIONS,
        admin=admin,
        clock=clock,
        code_factory=lambda: "1234",
        on_change=projection.request,
    )


async def approve(store: InterviewStore, user_id: int = 101) -> int:
    candidate_id = await store.ensure_candidate(user(user_id))
    await store.approve_candidate(user_id)
    return candidate_id
