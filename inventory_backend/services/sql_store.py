from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DbSession, sessionmaker

from inventory_backend.models.auth_event import AuthEvent
from inventory_backend.models.auth_session import SessionRecord
from inventory_backend.models.user import UserRecord
from inventory_backend.services.errors import StoreError, UserAlreadyExists, UserNotFound
from inventory_backend.services.identity import ContactType, Role, Session, TenantAccess, User
from inventory_backend.services.login_attempts import clear_login_attempts, register_failed_login
from inventory_backend.services.store import AuthStore

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        username=record.username,
        email=record.email,
        full_name=record.full_name,
        password_hash=record.password_hash,
        role=Role(record.role),
        is_enterprise_user=bool(record.is_enterprise_user),
        primary_tenant_id=record.primary_tenant_id,
        customer_id=record.customer_id,
        contact_type=ContactType(record.contact_type) if record.contact_type else None,
        is_active=bool(record.is_active),
        tenant_access=[TenantAccess.from_dict(item) for item in record.tenant_access or []],
        last_login_at=record.last_login_at,
        failed_login_attempts=record.failed_login_attempts or 0,
        locked_until=record.locked_until,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _apply_user(record: UserRecord, user: User) -> None:
    record.username = user.username
    record.email = user.email.strip().lower()
    record.full_name = user.full_name
    record.password_hash = user.password_hash
    record.role = Role(user.role).value
    record.is_enterprise_user = bool(user.is_enterprise_user)
    record.primary_tenant_id = user.primary_tenant_id
    record.customer_id = user.customer_id
    record.contact_type = user.contact_type.value if user.contact_type else None
    record.tenant_access = [access.to_dict() for access in user.tenant_access]
    record.is_active = bool(user.is_active)


def _apply_lockout(record: UserRecord, user: User) -> None:
    record.failed_login_attempts = user.failed_login_attempts
    record.locked_until = user.locked_until
    record.last_login_at = user.last_login_at


def _lock_user_row(db: DbSession, user_id: int) -> UserRecord:
    record = db.query(UserRecord).filter(UserRecord.id == int(user_id)).with_for_update().first()
    if record is None:
        raise UserNotFound()
    return record


def _granted_tenant_clause(dialect_name: str, tenant_id: str):
    """Match users holding a grant for ``tenant_id`` in the JSON ``tenant_access`` list."""
    if dialect_name == "postgresql":
        return UserRecord.tenant_access.contains([{"tenant_id": tenant_id}])
    grants = func.json_each(UserRecord.tenant_access).table_valued("value")
    return (
        select(grants.c.value)
        .where(func.json_extract(grants.c.value, "$.tenant_id") == tenant_id)
        .exists()
    )


def _to_session(record: SessionRecord) -> Session:
    return Session(
        id=record.id,
        user_id=record.user_id,
        tenant_id=record.tenant_id,
        refresh_token=record.refresh_token,
        tenant_access=TenantAccess.from_dict(record.tenant_context),
        expires_at=record.expires_at,
        refresh_expires_at=record.refresh_expires_at,
        is_active=bool(record.is_active),
        access_token=record.access_token or "",
        created_at=record.created_at,
        last_used_at=record.last_used_at,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
    )


class SqlAuthStore(AuthStore):
    """AuthStore over a SQLAlchemy sessionmaker; one DB session per call."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _scope(self, action: str, *, duplicate_is_conflict: bool = False) -> Iterator[DbSession]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if duplicate_is_conflict:
                raise UserAlreadyExists() from exc
            logger.error("Auth store integrity error during %s", action, exc_info=True)
            raise StoreError(f"{action} failed") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Auth store failure during %s", action, exc_info=True)
            raise StoreError(f"{action} failed") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Users

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._scope("get_user_by_id") as db:
            record = db.query(UserRecord).filter(UserRecord.id == int(user_id)).first()
            return _to_user(record) if record else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        normalized = (email or "").strip().lower()
        with self._scope("get_user_by_email") as db:
            record = db.query(UserRecord).filter(func.lower(UserRecord.email) == normalized).first()
            return _to_user(record) if record else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._scope("get_user_by_username") as db:
            record = db.query(UserRecord).filter(UserRecord.username == (username or "").strip()).first()
            return _to_user(record) if record else None

    def create_user(self, user: User) -> User:
        now = _now()
        with self._scope("create_user", duplicate_is_conflict=True) as db:
            record = UserRecord()
            _apply_user(record, user)
            _apply_lockout(record, user)
            record.created_at = user.created_at or now
            record.updated_at = user.updated_at or now
            db.add(record)
            db.flush()
            return _to_user(record)

    def update_user(self, user: User) -> User:
        with self._scope("update_user", duplicate_is_conflict=True) as db:
            record = _lock_user_row(db, user.id)
            _apply_user(record, user)
            record.updated_at = user.updated_at or _now()
            db.flush()
            return _to_user(record)

    def record_login_failure(
        self,
        user_id: int,
        now: datetime,
        *,
        max_attempts: int,
        lock_duration: timedelta,
    ) -> User:
        with self._scope("record_login_failure") as db:
            record = _lock_user_row(db, user_id)
            user = _to_user(record)
            register_failed_login(user, now, max_attempts=max_attempts, lock_duration=lock_duration)
            _apply_lockout(record, user)
            db.flush()
            return _to_user(record)

    def record_login_success(self, user_id: int, now: datetime) -> User:
        with self._scope("record_login_success") as db:
            record = _lock_user_row(db, user_id)
            user = _to_user(record)
            clear_login_attempts(user, now)
            _apply_lockout(record, user)
            db.flush()
            return _to_user(record)

    def list_users(
        self,
        *,
        tenant_id: str | None = None,
        role: Role | None = None,
        customer_id: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[User]:
        with self._scope("list_users") as db:
            query = db.query(UserRecord)
            if role is not None:
                query = query.filter(UserRecord.role == Role(role).value)
            if customer_id is not None:
                query = query.filter(UserRecord.customer_id == int(customer_id))
            if tenant_id is not None:
                query = query.filter(
                    or_(
                        UserRecord.primary_tenant_id == tenant_id,
                        _granted_tenant_clause(db.get_bind().dialect.name, tenant_id),
                    )
                )
            records = query.order_by(UserRecord.id).offset(offset).limit(limit).all()
            return [_to_user(record) for record in records]

    # Sessions

    def create_session(self, session: Session) -> Session:
        with self._scope("create_session") as db:
            record = SessionRecord(
                id=session.id,
                user_id=session.user_id,
                tenant_id=session.tenant_id,
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                tenant_context=session.tenant_access.to_dict(),
                is_active=session.is_active,
                expires_at=session.expires_at,
                refresh_expires_at=session.refresh_expires_at,
                created_at=session.created_at or _now(),
                last_used_at=session.last_used_at or session.created_at or _now(),
                ip_address=session.ip_address,
                user_agent=session.user_agent,
            )
            db.add(record)
            db.flush()
            return _to_session(record)

    def get_session_by_id(self, session_id: str) -> Optional[Session]:
        with self._scope("get_session_by_id") as db:
            record = db.query(SessionRecord).filter(SessionRecord.id == session_id).first()
            return _to_session(record) if record else None

    def get_session_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        with self._scope("get_session_by_refresh_token") as db:
            record = db.query(SessionRecord).filter(SessionRecord.refresh_token == refresh_token).first()
            return _to_session(record) if record else None

    def update_session(self, session: Session) -> Session:
        with self._scope("update_session") as db:
            record = (
                db.query(SessionRecord)
                .filter(SessionRecord.id == session.id)
                .with_for_update()
                .first()
            )
            if record is None:
                raise StoreError(f"Session {session.id} does not exist")
            record.last_used_at = session.last_used_at
            # A revoked session never becomes active again.
            record.is_active = bool(record.is_active) and bool(session.is_active)
            db.flush()
            return _to_session(record)

    def invalidate_session(self, session_id: str) -> bool:
        with self._scope("invalidate_session") as db:
            result = db.execute(
                update(SessionRecord)
                .where(SessionRecord.id == session_id, SessionRecord.is_active.is_(True))
                .values(is_active=False)
            )
            return result.rowcount == 1

    def invalidate_all_sessions_for_user(self, user_id: int) -> int:
        with self._scope("invalidate_all_sessions_for_user") as db:
            result = db.execute(
                update(SessionRecord)
                .where(SessionRecord.user_id == int(user_id), SessionRecord.is_active.is_(True))
                .values(is_active=False)
            )
            return result.rowcount or 0

    def delete_expired_sessions(self, before: datetime) -> int:
        with self._scope("delete_expired_sessions") as db:
            deleted = (
                db.query(SessionRecord)
                .filter(SessionRecord.refresh_expires_at < before)
                .delete(synchronize_session=False)
            )
            return deleted or 0

    # Audit

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
        with self._scope("record_auth_event") as db:
            db.add(
                AuthEvent(
                    user_id=user_id,
                    tenant_id=tenant_id,
                    session_id=session_id,
                    event_type=event_type,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    success=success,
                    meta_json=json.dumps(meta) if meta else None,
                    created_at=_now(),
                )
            )
