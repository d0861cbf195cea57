"""
FastAPI surface for the screening bot.
Receives Telegram webhook updates and exposes a health check plus admin
report/export endpoints.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import ValidationError

from screenbot import config
from screenbot.admin import AdminCommands
from screenbot.db import init_db, make_engine, make_sessionmaker
from screenbot.orchestrator import InterviewOrchestrator
from screenbot.reports import ExportProjection, generate_report
from screenbot.sessions import SessionStore
from screenbot.store import InterviewStore
from screenbot.transport import TelegramTransport, parse_update

LOG = logging.getLogger("screenbot")


@dataclass
class Components:
    store: InterviewStore
    transport: TelegramTransport
    orchestrator: InterviewOrchestrator
    projection: ExportProjection


async def build_components(database_url: Optional[str] = None) -> Components:
    """Wire the bot from environment settings; raises on missing configuration."""
    token = config.require_token()
    questions = config.load_questions()

    engine = make_engine(database_url)
    await init_db(engine)
    store = InterviewStore(make_sessionmaker(engine))
    transport = TelegramTransport(token)
    projection = ExportProjection(store, config.EXPORT_PATH)
    admin = AdminCommands(store, transport, projection=projection)
    orchestrator = InterviewOrchestrator(
        store,
        transport,
        sessions=SessionStore(),
        questions=questions,
        admin=admin,
        on_change=projection.request,
    )
    LOG.info("Screening bot ready: %s questions, %s admins", len(questions), len(config.ADMIN_IDS))
    return Components(store=store, transport=transport, orchestrator=orchestrator, projection=projection)


app = FastAPI(title="Interview Screening Bot", version="0.1.0")


@app.on_event("startup")
async def startup() -> None:
    components = await build_components()
    app.state.store = components.store
    app.state.orchestrator = components.orchestrator
    app.state.projection = components.projection
    app.state.projection_task = asyncio.create_task(components.projection.run())
    if config.WEBHOOK_URL:
        await components.transport.set_webhook(config.WEBHOOK_URL, config.TELEGRAM_WEBHOOK_SECRET)
        LOG.info("Webhook registered at %s", config.WEBHOOK_URL)


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "projection_task", None)
    if task is not None:
        task.cancel()


def _require_admin_token(token: Optional[str]) -> None:
    if not config.ADMIN_API_TOKEN:
        raise HTTPException(status_code=404, detail="Not Found")
    if token != config.ADMIN_API_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@app.get("/health")
async def health() -> Dict[str, Any]:
    orchestrator: Optional[InterviewOrchestrator] = getattr(app.state, "orchestrator", None)
    return {
        "status": "ok" if orchestrator is not None else "starting",
        "active_sessions": len(orchestrator.sessions) if orchestrator is not None else 0,
    }


@app.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    secret: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
) -> Dict[str, bool]:
    if config.TELEGRAM_WEBHOOK_SECRET and secret != config.TELEGRAM_WEBHOOK_SECRET:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
    try:
        update = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Payload must be JSON")
    if not isinstance(update, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    try:
        event = parse_update(update)
    except ValidationError as exc:
        LOG.warning("Ignoring malformed webhook update %s: %s", update.get("update_id"), exc)
        return {"ok": True}
    if event is not None:
        await app.state.orchestrator.handle(event)
    return {"ok": True}


@app.get("/report", response_class=PlainTextResponse)
async def report(
    candidate_id: Optional[int] = None,
    token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> str:
    _require_admin_token(token)
    return await generate_report(app.state.store, candidate_id)


@app.get("/export.csv")
async def export(token: Optional[str] = Header(default=None, alias="X-Admin-Token")) -> FileResponse:
    _require_admin_token(token)
    path = await app.state.projection.refresh()
    if path is None:
        raise HTTPException(status_code=503, detail="Export unavailable")
    return FileResponse(path, media_type="text/csv", filename="export.csv")
