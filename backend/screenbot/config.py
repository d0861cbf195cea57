"""
Runtime settings for the screening bot.
Every value can be overridden through environment variables.
"""
from __future__ import annotations

import json
import os
from typing import FrozenSet, List, Optional

TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN")
TELEGRAM_API_URL = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
TELEGRAM_TIMEOUT = float(os.getenv("TELEGRAM_TIMEOUT", "40"))
TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")
WEBHOOK_URL = os.getenv("WEBHOOK_URL")

ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/interview.db")
EXPORT_PATH = os.getenv("EXPORT_PATH", "./data/export.csv")
QUESTIONS_FILE = os.getenv("QUESTIONS_FILE")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEFAULT_QUESTIONS: List[str] = [
    "Tell us briefly about yourself and your most recent role.",
    "Why are you interested in this position?",
    "Describe a difficult problem you solved at work. What did you do, step by step?",
    "Tell us about a time you made a mistake. How did you handle it?",
    "Where do you see yourself in two years?",
]


def parse_admin_ids(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(part.strip() for part in raw.split(",") if part.strip())


ADMIN_IDS: FrozenSet[str] = parse_admin_ids(os.getenv("ADMIN_IDS"))


def is_admin(user_id: object, admin_ids: Optional[FrozenSet[str]] = None) -> bool:
    ids = ADMIN_IDS if admin_ids is None else admin_ids
    return str(user_id) in ids


def require_token() -> str:
    """Return the bot token or fail loudly; called at startup, never at import."""
    if not TELEGRAM_TOKEN:
        raise RuntimeError("TELEGRAM_TOKEN is not set")
    return TELEGRAM_TOKEN


def load_questions(path: Optional[str] = None) -> List[str]:
    path = path or QUESTIONS_FILE
    if not path:
        return list(DEFAULT_QUESTIONS)
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise RuntimeError(f"Questions file {path} must contain a JSON list")
    questions = [str(item).strip() for item in data if isinstance(item, str) and item.strip()]
    if not questions:
        raise RuntimeError(f"Questions file {path} has no usable questions")
    return questions
