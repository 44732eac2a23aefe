from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from inventory_backend.core.config import (
    ACCESS_TOKEN_TTL_MINUTES,
    REFRESH_TOKEN_TTL_DAYS,
    SESSION_RETENTION_DAYS,
)
from inventory_backend.services.errors import (
    SessionExpired,
    SessionInvalid,
    TokenInvalid,
    UserInactive,
)
from inventory_backend.services.identity import Session, TenantAccess, User
from inventory_backend.services.store import AuthStore
from inventory_backend.services.tenant_access import TenantAccessResolver
from inventory_backend.services.tokens import TokenSigner

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


class SessionManager:
    """Create, validate, refresh and revoke sessions backed by an AuthStore.

    Timestamps are naive UTC truncated to whole seconds so they survive the
    JWT ``exp``/``iat`` round-trip unchanged.
    """

    def __init__(
        self,
        store: AuthStore,
        token_signer: TokenSigner,
        tenant_resolver: TenantAccessResolver,
        *,
        access_ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_TTL_MINUTES),
        refresh_ttl: timedelta = timedelta(days=REFRESH_TOKEN_TTL_DAYS),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.token_signer = token_signer
        self.tenant_resolver = tenant_resolver
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def now(self) -> datetime:
        return self._clock().replace(microsecond=0)

    def create_session(
        self,
        user: User,
        tenant_id: str,
        tenant_access: TenantAccess,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        now = self.now()
        session = Session(
            id=secrets.token_hex(SESSION_ID_BYTES),
            user_id=int(user.id),
            tenant_id=tenant_id,
            refresh_token=secrets.token_hex(SESSION_ID_BYTES),
            tenant_access=tenant_access,
            expires_at=now + self.access_ttl,
            refresh_expires_at=now + self.refresh_ttl,
            is_active=True,
            created_at=now,
            last_used_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        session.access_token = self.token_signer.issue(
            user_id=session.user_id,
            tenant_id=tenant_id,
            session_id=session.id,
            issued_at=now,
            expires_at=session.expires_at,
        )
        stored = self.store.create_session(session)
        logger.info(
            "Session created: user_id=%s tenant_id=%s session_id=%s",
            session.user_id,
            tenant_id,
            session.id,
        )
        return stored

    def _load_session_for_token(self, token: str) -> Session:
        claims = self.token_signer.decode(token)
        session = self.store.get_session_by_id(claims["session_id"])
        if session is None:
            raise SessionInvalid()
        if session.user_id != claims["user_id"] or session.tenant_id != str(claims["tenant_id"]):
            raise TokenInvalid("Token does not match its session")
        return session

    def validate_token(self, token: str) -> tuple[User, TenantAccess, Session]:
        session = self._load_session_for_token(token)
        if not session.is_active:
            raise SessionInvalid()
        now = self.now()
        if now > session.expires_at:
            raise SessionExpired()

        user = self.store.get_user_by_id(session.user_id)
        if user is None or not user.is_active:
            raise UserInactive()

        session.last_used_at = now
        session = self.store.update_session(session)
        if not session.is_active:
            # Revoked between the read and the write.
            raise SessionInvalid()
        return user, session.tenant_access, session

    def refresh(
        self,
        refresh_token: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[User, Session]:
        """Trade a refresh token for a brand new session.

        The tenant access is re-resolved against the current user record so grant
        changes made since login take effect. Each refresh token works once.
        """
        if not refresh_token:
            raise SessionInvalid()
        old = self.store.get_session_by_refresh_token(refresh_token)
        if old is None or not old.is_active:
            raise SessionInvalid()
        if self.now() > old.refresh_expires_at:
            raise SessionExpired("Refresh token has expired")

        user = self.store.get_user_by_id(old.user_id)
        if user is None or not user.is_active:
            raise UserInactive()

        if not self.store.invalidate_session(old.id):
            logger.warning("Refresh lost a concurrent race: session_id=%s", old.id)
            raise SessionInvalid()

        tenant_id, access = self.tenant_resolver.resolve(user, old.tenant_id)
        session = self.create_session(
            user,
            tenant_id,
            access,
            ip_address=ip_address or old.ip_address,
            user_agent=user_agent or old.user_agent,
        )
        return user, session

    def logout(self, token: str) -> Session:
        """Revoke the session behind ``token``. Expired sessions can still be logged out."""
        session = self._load_session_for_token(token)
        if not self.store.invalidate_session(session.id):
            raise SessionInvalid()
        session.is_active = False
        logger.info("Session revoked: user_id=%s session_id=%s", session.user_id, session.id)
        return session

    def invalidate_user_sessions(self, user_id: int) -> int:
        count = self.store.invalidate_all_sessions_for_user(user_id)
        if count:
            logger.info("Sessions invalidated: user_id=%s count=%s", user_id, count)
        return count

    def cleanup_expired_sessions(self, retention: timedelta = timedelta(days=SESSION_RETENTION_DAYS)) -> int:
        cutoff = self.now() - retention
        deleted = self.store.delete_expired_sessions(cutoff)
        logger.info("Expired sessions cleaned up: deleted=%s cutoff=%s", deleted, cutoff.isoformat())
        return deleted
