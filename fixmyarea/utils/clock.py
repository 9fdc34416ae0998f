"""Naive-UTC time source shared by models and services."""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    # Columns are stored without tzinfo, so compare naive UTC throughout
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a controllable clock"""
    return utcnow
