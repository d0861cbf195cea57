"""Telegram screening interview bot with identity challenge and answer integrity checks."""

__version__ = "0.1.0"
