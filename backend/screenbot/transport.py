"""
Telegram Bot API binding: inbound update parsing and outbound delivery.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Set

import httpx
from pydantic import BaseModel, Field, ValidationError

from screenbot import config

if TYPE_CHECKING:
    from screenbot.orchestrator import InterviewOrchestrator

LOG = logging.getLogger("screenbot.transport")


class EventKind(str, Enum):
    COMMAND = "command"
    TEXT = "text"
    PHOTO = "photo"
    VOICE = "voice"
    VIDEO = "video"


class Identity(BaseModel):
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class PhotoSize(BaseModel):
    file_id: str
    width: int = 0
    height: int = 0
    file_size: int = 0


class InboundEvent(BaseModel):
    kind: EventKind
    chat_id: int
    sender: Identity
    text: Optional[str] = None
    caption: Optional[str] = None
    photos: List[PhotoSize] = Field(default_factory=list)
    voice_duration: Optional[int] = None


class Transport(Protocol):
    async def send_message(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> bool: ...

    async def send_document(self, chat_id: int, path: Path, caption: Optional[str] = None) -> bool: ...


def command_name(text: Optional[str]) -> Optional[str]:
    """``"/report@my_bot 12"`` -> ``"report"``."""
    raw = (text or "").strip()
    if not raw.startswith("/"):
        return None
    head = raw.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


def command_args(text: Optional[str]) -> List[str]:
    parts = (text or "").strip().split()
    return parts[1:]


def parse_update(update: Dict[str, Any]) -> Optional[InboundEvent]:
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat") or {}
    sender = message.get("from") or {}
    if "id" not in chat or "id" not in sender:
        return None
    if chat.get("type") != "private":
        return None

    base = {
        "chat_id": chat["id"],
        "sender": Identity(
            id=sender["id"],
            username=sender.get("username"),
            first_name=sender.get("first_name"),
            last_name=sender.get("last_name"),
        ),
        "caption": message.get("caption"),
    }
    if isinstance(message.get("photo"), list) and message["photo"]:
        photos = [
            PhotoSize(
                file_id=item.get("file_id", ""),
                width=item.get("width") or 0,
                height=item.get("height") or 0,
                file_size=item.get("file_size") or 0,
            )
            for item in message["photo"]
            if isinstance(item, dict)
        ]
        return InboundEvent(kind=EventKind.PHOTO, photos=photos, **base)
    if isinstance(message.get("voice"), dict):
        return InboundEvent(kind=EventKind.VOICE, voice_duration=message["voice"].get("duration") or 0, **base)
    if isinstance(message.get("video"), dict) or isinstance(message.get("video_note"), dict):
        return InboundEvent(kind=EventKind.VIDEO, **base)
    text = message.get("text")
    if isinstance(text, str):
        kind = EventKind.COMMAND if text.startswith("/") else EventKind.TEXT
        return InboundEvent(kind=kind, text=text, **base)
    return None


class TelegramTransport:
    def __init__(
        self,
        token: str,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base = f"{(api_url or config.TELEGRAM_API_URL).rstrip('/')}/bot{token}"
        self._timeout = timeout if timeout is not None else config.TELEGRAM_TIMEOUT
        self._http_transport = http_transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self._timeout, transport=self._http_transport)

    async def _call(self, method: str, timeout: Optional[float] = None, **kwargs: Any) -> Any:
        async with self._client(timeout) as client:
            resp = await client.post(f"{self._base}/{method}", **kwargs)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code != 200 or not data.get("ok"):
            raise httpx.HTTPStatusError(
                f"Telegram {method} responded with {resp.status_code}: {resp.text[:200]}",
                request=resp.request,
                response=resp,
            )
        return data.get("result")

    async def send_message(self, chat_id: int, text: str, parse_mode: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            await self._call("sendMessage", json=payload)
        except httpx.HTTPError as exc:
            # Best-effort: the chat may be gone or Telegram unavailable.
            LOG.warning("sendMessage failed (chat=%s): %s", chat_id, exc)
            return False
        return True

    async def send_document(self, chat_id: int, path: Path, caption: Optional[str] = None) -> bool:
        data: Dict[str, Any] = {"chat_id": str(chat_id)}
        if caption:
            data["caption"] = caption
        try:
            with open(path, "rb") as fh:
                await self._call("sendDocument", data=data, files={"document": (Path(path).name, fh)})
        except (httpx.HTTPError, OSError) as exc:
            LOG.warning("sendDocument failed (chat=%s path=%s): %s", chat_id, path, exc)
            return False
        return True

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", timeout=timeout + 10, json=payload)
        return result or []

    async def set_webhook(self, url: str, secret: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"url": url, "allowed_updates": ["message"]}
        if secret:
            payload["secret_token"] = secret
        await self._call("setWebhook", json=payload)


def _task_done(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        LOG.error("Update handling failed: %s", exc, exc_info=exc)


async def poll_updates(
    transport: TelegramTransport,
    orchestrator: "InterviewOrchestrator",
    poll_timeout: int = 30,
    retry_delay: float = 3.0,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Long-poll Telegram and hand each update to the orchestrator as its own task."""
    offset: Optional[int] = None
    pending: Set[asyncio.Task] = set()
    LOG.info("Polling Telegram for updates")
    while stop is None or not stop.is_set():
        try:
            updates = await transport.get_updates(offset, timeout=poll_timeout)
        except httpx.HTTPError as exc:
            LOG.warning("getUpdates failed, retrying in %.1fs: %s", retry_delay, exc)
            await asyncio.sleep(retry_delay)
            continue
        for update in updates:
            offset = max(offset or 0, int(update.get("update_id", 0)) + 1)
            try:
                event = parse_update(update)
            except ValidationError as exc:
                LOG.warning("Skipping malformed update %s: %s", update.get("update_id"), exc)
                continue
            if event is None:
                continue
            task = asyncio.create_task(orchestrator.handle(event))
            pending.add(task)
            task.add_done_callback(pending.discard)
            task.add_done_callback(_task_done)
        await asyncio.sleep(0)  # yield control
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
