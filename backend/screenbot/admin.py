from __future__ import annotations

import logging
from typing import Callable, FrozenSet, Optional

from sqlalchemy.exc import SQLAlchemyError

from screenbot import config, messages
from screenbot.reports import ExportProjection, generate_report
from screenbot.store import InterviewStore
from screenbot.transport import InboundEvent, Transport, command_args, command_name

LOG = logging.getLogger("screenbot.admin")

REPORT_LIMIT = 3500


class AdminCommands:
    """Commands reserved for ids in the admin allow-list."""

    def __init__(
        self,
        store: InterviewStore,
        transport: Transport,
        projection: Optional[ExportProjection] = None,
        admin_ids: Optional[FrozenSet[str]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.projection = projection
        self.admin_ids = config.ADMIN_IDS if admin_ids is None else admin_ids
        self._on_change = on_change or (projection.request if projection else (lambda: None))

    def is_admin(self, user_id: int) -> bool:
        return config.is_admin(user_id, self.admin_ids)

    async def handle(self, event: InboundEvent) -> bool:
        """Run an admin command; returns False when the command is not an admin one."""
        name = command_name(event.text)
        handler = {
            "approve": self._approve,
            "revoke": self._revoke,
            "list": self._list,
            "report": self._report,
            "export": self._export,
        }.get(name or "")
        if handler is None:
            return False
        try:
            await handler(event)
        except SQLAlchemyError:
            LOG.exception("Admin command /%s failed (admin=%s)", name, event.sender.id)
            await self.transport.send_message(event.chat_id, "⚠️ Command failed, please try again.")
        return True

    def _target(self, event: InboundEvent) -> Optional[int]:
        args = command_args(event.text)
        if not args or not args[0].isdigit():
            return None
        return int(args[0])

    async def _set_approval(self, event: InboundEvent, approved: bool) -> None:
        tg_id = self._target(event)
        verb = "approve" if approved else "revoke"
        if tg_id is None:
            await self.transport.send_message(event.chat_id, f"Usage: /{verb} <tgId>")
            return
        if approved:
            found = await self.store.approve_candidate(tg_id)
        else:
            found = await self.store.revoke_candidate(tg_id)
        if not found:
            await self.transport.send_message(event.chat_id, f"⚠️ No candidate with Telegram ID {tg_id} yet.")
            return
        LOG.info("Admin %s %sd candidate tg_id=%s", event.sender.id, verb, tg_id)
        self._on_change()
        if approved:
            await self.transport.send_message(event.chat_id, f"✅ Approved candidate with Telegram ID {tg_id}")
        else:
            await self.transport.send_message(event.chat_id, f"❌ Revoked candidate with Telegram ID {tg_id}")

    async def _approve(self, event: InboundEvent) -> None:
        await self._set_approval(event, True)

    async def _revoke(self, event: InboundEvent) -> None:
        await self._set_approval(event, False)

    async def _list(self, event: InboundEvent) -> None:
        report = await generate_report(self.store)
        await self.transport.send_message(event.chat_id, "📋 Candidate List:\n\n" + report[:REPORT_LIMIT])

    async def _report(self, event: InboundEvent) -> None:
        report = await generate_report(self.store, self._target(event))
        await self.transport.send_message(event.chat_id, "📄 Report:\n" + report[:REPORT_LIMIT])

    async def _export(self, event: InboundEvent) -> None:
        if self.projection is None:
            await self.transport.send_message(event.chat_id, "⚠️ Export is not configured.")
            return
        path = await self.projection.refresh()
        if path is None:
            await self.transport.send_message(event.chat_id, "⚠️ Export failed, please try again.")
            return
        await self.transport.send_document(event.chat_id, path, caption="📦 Interview export")

    async def greet(self, event: InboundEvent) -> None:
        await self.transport.send_message(event.chat_id, messages.ADMIN_GREETING, parse_mode=messages.MARKDOWN)
        await self.help(event)

    async def help(self, event: InboundEvent) -> None:
        await self.transport.send_message(event.chat_id, messages.ADMIN_HELP, parse_mode=messages.MARKDOWN)
