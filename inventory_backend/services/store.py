from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from inventory_backend.services.identity import Role, Session, User


class AuthStore(ABC):
    """Persistence contract for users and sessions.

    Reads return ``None`` when nothing matches. Transport failures surface as
    ``StoreError``; duplicate email or username surfaces as ``UserAlreadyExists``.
    """

    @abstractmethod
    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Load a user with its tenant access list."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive email lookup."""

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]:
        """Exact username lookup."""

    @abstractmethod
    def create_user(self, user: User) -> User:
        """Persist a new user and return it with ``id`` and timestamps set."""

    @abstractmethod
    def update_user(self, user: User) -> User:
        """Replace the stored profile, grants and status of ``user.id``.

        Lockout columns belong to ``record_login_failure`` and ``record_login_success``.
        """

    @abstractmethod
    def record_login_failure(
        self,
        user_id: int,
        now: datetime,
        *,
        max_attempts: int,
        lock_duration: timedelta,
    ) -> User:
        """Count one failed login under a row lock, touching only the lockout columns."""

    @abstractmethod
    def record_login_success(self, user_id: int, now: datetime) -> User:
        """Clear the lockout columns and stamp ``last_login_at`` under a row lock.

        Returns the current record, so callers see changes made since their read.
        """

    @abstractmethod
    def list_users(
        self,
        *,
        tenant_id: str | None = None,
        role: Role | None = None,
        customer_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[User]:
        """List users ordered by id. ``tenant_id`` matches primary tenant or any grant."""

    @abstractmethod
    def create_session(self, session: Session) -> Session:
        """Persist a new session."""

    @abstractmethod
    def get_session_by_id(self, session_id: str) -> Optional[Session]:
        """Load a session whatever its state."""

    @abstractmethod
    def get_session_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        """Load a session by its refresh token whatever its state."""

    @abstractmethod
    def update_session(self, session: Session) -> Session:
        """Atomically write the mutable fields of a session (last_used_at, is_active)."""

    @abstractmethod
    def invalidate_session(self, session_id: str) -> bool:
        """Deactivate one session. True only when this call flipped an active row."""

    @abstractmethod
    def invalidate_all_sessions_for_user(self, user_id: int) -> int:
        """Deactivate every active session of a user, returning how many changed."""

    @abstractmethod
    def delete_expired_sessions(self, before: datetime) -> int:
        """Delete sessions whose refresh window ended before ``before``."""

    def record_auth_event(
        self,
        *,
        event_type: str,
        user_id: int | None = None,
        tenant_id: str | None = None,
        session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Append to the audit trail. Stores without one ignore the call."""
        return None
