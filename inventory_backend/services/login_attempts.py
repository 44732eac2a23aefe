from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from inventory_backend.core.config import LOGIN_LOCK_MINUTES, MAX_FAILED_LOGIN_ATTEMPTS
from inventory_backend.services.identity import User

MAX_FAILED_ATTEMPTS = MAX_FAILED_LOGIN_ATTEMPTS
LOCK_DURATION = timedelta(minutes=LOGIN_LOCK_MINUTES)


def is_locked(user: User, now: datetime) -> bool:
    if user.locked_until is None:
        return False
    return user.locked_until > now


def register_failed_login(
    user: User,
    now: datetime,
    *,
    max_attempts: int = MAX_FAILED_ATTEMPTS,
    lock_duration: timedelta = LOCK_DURATION,
) -> bool:
    """Count one failure on ``user``; returns True when this failure locked the account."""
    if user.locked_until is not None and user.locked_until <= now:
        # Previous lock expired; start a fresh window.
        user.locked_until = None
        user.failed_login_attempts = 0

    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= max_attempts:
        user.locked_until = now + lock_duration
        user.failed_login_attempts = 0
        return True
    return False


def clear_login_attempts(user: User, now: Optional[datetime] = None) -> None:
    user.failed_login_attempts = 0
    user.locked_until = None
    if now is not None:
        user.last_login_at = now
