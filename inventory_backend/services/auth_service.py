from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy.orm import sessionmaker

from inventory_backend.core.config import (
    ENTERPRISE_YARD_POLICY,
    JWT_ALGORITHM,
    JWT_SECRET_KEY,
    MIN_PASSWORD_LENGTH,
    SESSION_RETENTION_DAYS,
)
from inventory_backend.services.authorization_service import PermissionResolver
from inventory_backend.services.errors import (
    AccountLocked,
    InvalidCredentials,
    PermissionDenied,
    TenantAccessDenied,
    UserInactive,
    UserNotFound,
    UserValidationError,
)
from inventory_backend.services.identity import (
    ContactType,
    CustomerAccessContext,
    Permission,
    Role,
    Session,
    TenantAccess,
    User,
    YardAccess,
    YardPermission,
    validate_user,
)
from inventory_backend.services.login_attempts import (
    LOCK_DURATION,
    MAX_FAILED_ATTEMPTS,
    is_locked,
)
from inventory_backend.services.passwords import PasswordHasher
from inventory_backend.services.permissions import DEFAULT_PERMISSION_TABLE, PermissionTable
from inventory_backend.services.session_manager import SessionManager
from inventory_backend.services.sql_store import SqlAuthStore
from inventory_backend.services.store import AuthStore
from inventory_backend.services.tenant_access import TenantAccessResolver
from inventory_backend.services.tokens import TokenSigner

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    token: str
    refresh_token: str
    user: User
    tenant_id: str
    tenant_context: TenantAccess
    session_id: str
    expires_at: datetime
    refresh_expires_at: datetime


@dataclass
class AuthContext:
    user: User
    tenant_id: str
    tenant_context: TenantAccess
    session: Session


def _login_result(user: User, session: Session) -> LoginResult:
    return LoginResult(
        token=session.access_token,
        refresh_token=session.refresh_token,
        user=user,
        tenant_id=session.tenant_id,
        tenant_context=session.tenant_access,
        session_id=session.id,
        expires_at=session.expires_at,
        refresh_expires_at=session.refresh_expires_at,
    )


class AuthenticationService:
    """Framework-agnostic façade over credentials, sessions and permissions.

    HTTP handlers talk to this class only. Every failure is an ``AuthError``
    subclass carrying the status code the boundary should answer with.
    """

    def __init__(
        self,
        store: AuthStore,
        session_manager: SessionManager,
        permission_resolver: PermissionResolver,
        password_hasher: PasswordHasher,
        *,
        min_password_length: int = MIN_PASSWORD_LENGTH,
        max_failed_attempts: int = MAX_FAILED_ATTEMPTS,
        lock_duration: timedelta = LOCK_DURATION,
    ) -> None:
        self.store = store
        self.sessions = session_manager
        self.permissions = permission_resolver
        self.tenant_resolver = session_manager.tenant_resolver
        self.password_hasher = password_hasher
        self.min_password_length = min_password_length
        self.max_failed_attempts = max_failed_attempts
        self.lock_duration = lock_duration
        self._dummy_hash: Optional[str] = None

    def now(self) -> datetime:
        return self.sessions.now()

    # Audit

    def _audit(self, event_type: str, *, user: User | None = None, **fields: Any) -> None:
        if user is not None:
            fields.setdefault("user_id", user.id)
        self.store.record_auth_event(event_type=event_type, **fields)

    # Credentials and sessions

    def _find_user(self, identifier: str) -> Optional[User]:
        if "@" in identifier:
            return self.store.get_user_by_email(identifier.lower())
        return self.store.get_user_by_username(identifier)

    def _burn_password_check(self, password: str) -> None:
        # Unknown accounts cost one bcrypt verification, like known ones.
        if self._dummy_hash is None:
            self._dummy_hash = self.password_hasher.hash("inventory-auth-placeholder")
        self.password_hasher.verify(password, self._dummy_hash)

    def login(
        self,
        identifier: str,
        password: str,
        tenant_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        identifier = (identifier or "").strip()
        client = {"ip_address": ip_address, "user_agent": user_agent}
        user = self._find_user(identifier) if identifier else None
        now = self.now()

        if user is None:
            self._burn_password_check(password)
            logger.warning("Login failed (unknown_user)")
            self._audit("login_failed", success=False, meta={"reason": "unknown_user"}, **client)
            raise InvalidCredentials()

        if is_locked(user, now):
            logger.warning("Login rejected (locked): user_id=%s", user.id)
            self._audit("login_locked", user=user, success=False, **client)
            raise AccountLocked()

        if not self.password_hasher.verify(password, user.password_hash):
            user = self.store.record_login_failure(
                user.id,
                now,
                max_attempts=self.max_failed_attempts,
                lock_duration=self.lock_duration,
            )
            logger.warning("Login failed (bad_password): user_id=%s", user.id)
            self._audit("login_failed", user=user, success=False, meta={"reason": "bad_password"}, **client)
            if is_locked(user, now):
                self._audit("login_locked", user=user, success=False, **client)
                raise AccountLocked()
            raise InvalidCredentials()

        if not user.is_active:
            logger.warning("Login failed (inactive): user_id=%s", user.id)
            self._audit("login_failed", user=user, success=False, meta={"reason": "inactive"}, **client)
            raise InvalidCredentials()

        user = self.store.record_login_success(user.id, now)
        if not user.is_active:
            # Deactivated after the credentials were read.
            logger.warning("Login failed (inactive): user_id=%s", user.id)
            self._audit("login_failed", user=user, success=False, meta={"reason": "inactive"}, **client)
            raise InvalidCredentials()

        effective_tenant_id, access = self.tenant_resolver.resolve(user, tenant_id)
        session = self.sessions.create_session(
            user,
            effective_tenant_id,
            access,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info("Login succeeded: user_id=%s tenant_id=%s", user.id, effective_tenant_id)
        self._audit(
            "login_success",
            user=user,
            tenant_id=effective_tenant_id,
            session_id=session.id,
            **client,
        )
        return _login_result(user, session)

    def logout(self, token: str) -> None:
        session = self.sessions.logout(token)
        self._audit("logout", user_id=session.user_id, tenant_id=session.tenant_id, session_id=session.id)

    def refresh_token(
        self,
        refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        user, session = self.sessions.refresh(refresh_token, ip_address=ip_address, user_agent=user_agent)
        self._audit(
            "token_refreshed",
            user=user,
            tenant_id=session.tenant_id,
            session_id=session.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return _login_result(user, session)

    def validate_token(self, token: str) -> AuthContext:
        user, access, session = self.sessions.validate_token(token)
        return AuthContext(user=user, tenant_id=session.tenant_id, tenant_context=access, session=session)

    def invalidate_user_sessions(self, user_id: int, *, reason: str) -> int:
        count = self.sessions.invalidate_user_sessions(user_id)
        self._audit("sessions_invalidated", user_id=user_id, meta={"reason": reason, "count": count})
        return count

    def cleanup_expired_sessions(self, retention: timedelta = timedelta(days=SESSION_RETENTION_DAYS)) -> int:
        return self.sessions.cleanup_expired_sessions(retention)

    # Permission checks

    def _active_user(self, user_id: int) -> User:
        user = self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if not user.is_active:
            raise UserInactive()
        return user

    def check_permission(self, user_id: int, tenant_id: str, permission: Permission) -> None:
        self.permissions.ensure_permission(self._active_user(user_id), tenant_id, permission)

    def check_yard_access(
        self,
        user_id: int,
        tenant_id: str,
        yard_location: str,
        yard_permission: YardPermission,
    ) -> None:
        self.permissions.ensure_yard_permission(
            self._active_user(user_id), tenant_id, yard_location, yard_permission
        )

    def get_user_permissions(self, user_id: int, tenant_id: str) -> list[Permission]:
        user = self._active_user(user_id)
        return sorted(self.permissions.effective_permissions(user, tenant_id), key=lambda p: p.value)

    def customer_context(self, user_id: int, tenant_id: str) -> CustomerAccessContext:
        return self.permissions.customer_context(self._active_user(user_id), tenant_id)

    def ensure_can_manage(self, actor: User, target: User, *, tenant_id: str | None = None) -> None:
        """Raise PermissionDenied unless ``actor`` may act on ``target``'s account.

        Users acting on themselves and enterprise users always pass. Anyone else
        needs user_management in a tenant the target is granted (``tenant_id``
        when given) and never reaches an enterprise account.
        """
        if actor.id == target.id or actor.is_enterprise:
            return
        if not target.is_enterprise:
            candidates = [tenant_id] if tenant_id else target.accessible_tenant_ids()
            for candidate in candidates:
                if target.access_for(candidate) is not None and self.permissions.has_permission(
                    actor, candidate, Permission.USER_MANAGEMENT
                ):
                    return
        self.permissions.log_access_denied(
            reason="manage_user",
            user=actor,
            tenant_id=tenant_id,
            detail=f"target_user_id={target.id}",
        )
        raise PermissionDenied("Access denied")

    # User lifecycle

    def _validate_and_hash(self, user: User, password: str) -> User:
        user.email = (user.email or "").strip().lower()
        validate_user(user, min_password_length=self.min_password_length, password=password or "")
        user.password_hash = self.password_hasher.hash(password)
        return user

    def create_customer_contact(
        self,
        *,
        email: str,
        full_name: str,
        password: str,
        tenant_id: str,
        customer_id: int,
        contact_type: ContactType | str | None = None,
        yard_access: Iterable[YardAccess] = (),
        created_by: int | None = None,
    ) -> User:
        access = TenantAccess(
            tenant_id=tenant_id,
            role=Role.CUSTOMER_CONTACT,
            permissions=frozenset({Permission.VIEW_INVENTORY}),
            yard_access=tuple(yard_access),
            can_read=True,
            can_write=False,
            can_delete=False,
            can_approve=False,
        )
        now = self.now()
        user = User(
            id=None,
            username=None,
            email=email,
            full_name=full_name,
            password_hash="",
            role=Role.CUSTOMER_CONTACT,
            is_enterprise_user=False,
            primary_tenant_id=tenant_id,
            customer_id=customer_id,
            contact_type=ContactType(contact_type) if contact_type else ContactType.PRIMARY,
            tenant_access=[access],
            created_at=now,
            updated_at=now,
        )
        created = self.store.create_user(self._validate_and_hash(user, password))
        logger.info(
            "Customer contact created: user_id=%s customer_id=%s tenant_id=%s",
            created.id,
            customer_id,
            tenant_id,
        )
        self._audit(
            "user_created",
            user=created,
            tenant_id=tenant_id,
            meta={"role": Role.CUSTOMER_CONTACT.value, "created_by": created_by},
        )
        return created

    def create_user(
        self,
        *,
        email: str,
        full_name: str,
        password: str,
        role: Role | str,
        username: str | None = None,
        is_enterprise_user: bool = False,
        primary_tenant_id: str | None = None,
        tenant_access: Iterable[TenantAccess] = (),
        created_by: int | None = None,
    ) -> User:
        role = Role(role)
        if role == Role.CUSTOMER_CONTACT:
            raise UserValidationError("Use create_customer_contact for customer contacts")
        access_list = list(tenant_access)
        now = self.now()
        user = User(
            id=None,
            username=username,
            email=email,
            full_name=full_name,
            password_hash="",
            role=role,
            is_enterprise_user=is_enterprise_user,
            primary_tenant_id=primary_tenant_id or (access_list[0].tenant_id if access_list else None),
            tenant_access=access_list,
            created_at=now,
            updated_at=now,
        )
        if not user.is_enterprise:
            if not access_list:
                raise UserValidationError("Tenant users need at least one tenant access entry")
            if user.access_for(user.primary_tenant_id or "") is None:
                raise UserValidationError("Primary tenant must be one of the granted tenants")

        created = self.store.create_user(self._validate_and_hash(user, password))
        logger.info("User created: user_id=%s role=%s enterprise=%s", created.id, role.value, created.is_enterprise)
        self._audit(
            "user_created",
            user=created,
            tenant_id=created.primary_tenant_id,
            meta={"role": role.value, "created_by": created_by},
        )
        return created

    def _save_grant_change(self, user: User, *, reason: str, meta: Mapping[str, Any] | None = None) -> User:
        user.updated_at = self.now()
        validate_user(user)
        updated = self.store.update_user(user)
        self.invalidate_user_sessions(updated.id, reason=reason)
        self._audit("user_updated", user=updated, meta={"change": reason, **(meta or {})})
        return updated

    def get_user(self, user_id: int) -> User:
        user = self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def update_tenant_access(self, user_id: int, tenant_access: Iterable[TenantAccess]) -> User:
        user = self.get_user(user_id)
        access_list = list(tenant_access)
        if not access_list and not user.is_enterprise:
            raise UserValidationError("Tenant access list cannot be empty")
        user.tenant_access = access_list
        if not user.is_enterprise and user.access_for(user.primary_tenant_id or "") is None:
            user.primary_tenant_id = access_list[0].tenant_id
        return self._save_grant_change(
            user,
            reason="tenant_access",
            meta={"tenants": [access.tenant_id for access in access_list]},
        )

    def update_yard_access(self, user_id: int, tenant_id: str, yard_access: Iterable[YardAccess]) -> User:
        user = self.get_user(user_id)
        current = user.access_for(tenant_id)
        if current is None:
            raise UserValidationError(f"User has no access to tenant {tenant_id}")
        updated_access = replace(current, yard_access=tuple(yard_access))
        user.tenant_access = [
            updated_access if access.tenant_id == tenant_id else access for access in user.tenant_access
        ]
        return self._save_grant_change(user, reason="yard_access", meta={"tenant_id": tenant_id})

    def update_role(self, user_id: int, role: Role | str, *, tenant_id: str | None = None) -> User:
        user = self.get_user(user_id)
        role = Role(role)
        if tenant_id is None:
            user.role = role
        else:
            current = user.access_for(tenant_id)
            if current is None:
                raise UserValidationError(f"User has no access to tenant {tenant_id}")
            user.tenant_access = [
                replace(access, role=role) if access.tenant_id == tenant_id else access
                for access in user.tenant_access
            ]
        return self._save_grant_change(user, reason="role", meta={"role": role.value, "tenant_id": tenant_id})

    def update_profile(self, user_id: int, *, full_name: str | None = None, email: str | None = None) -> User:
        user = self.get_user(user_id)
        if full_name is not None:
            user.full_name = full_name
        if email is not None:
            user.email = email.strip().lower()
        user.updated_at = self.now()
        validate_user(user)
        updated = self.store.update_user(user)
        self._audit("user_updated", user=updated, meta={"change": "profile"})
        return updated

    def deactivate_user(self, user_id: int, *, actor_id: int | None = None) -> User:
        if actor_id is not None and int(actor_id) == int(user_id):
            raise UserValidationError("Cannot deactivate your own account")
        user = self.get_user(user_id)
        user.is_active = False
        user.updated_at = self.now()
        updated = self.store.update_user(user)
        self.invalidate_user_sessions(updated.id, reason="deactivated")
        logger.info("User deactivated: user_id=%s actor_id=%s", updated.id, actor_id)
        self._audit("user_deactivated", user=updated, meta={"actor_id": actor_id})
        return updated

    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self._active_user(user_id)
        if not self.password_hasher.verify(current_password, user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        if len(new_password or "") < self.min_password_length:
            raise UserValidationError(f"Password must be at least {self.min_password_length} characters")
        user.password_hash = self.password_hasher.hash(new_password)
        user.updated_at = self.now()
        self.store.update_user(user)
        self.invalidate_user_sessions(user.id, reason="password_changed")
        self._audit("password_changed", user=user)

    def list_users(
        self,
        actor: User,
        *,
        tenant_id: str | None = None,
        role: Role | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[User]:
        """List users visible to ``actor``.

        Customer contacts only see contacts of their own customer. Other
        non-enterprise users are confined to tenants they hold a grant for.
        """
        customer_id = None
        if actor.is_customer_contact:
            customer_id = actor.customer_id
            role = Role.CUSTOMER_CONTACT
        if not actor.is_enterprise:
            tenant_id = tenant_id or actor.primary_tenant_id
            if not self.tenant_resolver.can_access_tenant(actor, tenant_id):
                self.permissions.log_access_denied(reason="list_users", user=actor, tenant_id=tenant_id)
                raise TenantAccessDenied(f"User does not have access to tenant {tenant_id}")
        return self.store.list_users(
            tenant_id=tenant_id,
            role=Role(role) if role else None,
            customer_id=customer_id,
            limit=limit,
            offset=offset,
        )

    def list_customer_contacts(self, customer_id: int, *, tenant_id: str | None = None) -> list[User]:
        return self.store.list_users(
            tenant_id=tenant_id,
            role=Role.CUSTOMER_CONTACT,
            customer_id=customer_id,
            limit=1000,
        )


def build_auth_service(
    session_factory: sessionmaker,
    *,
    secret_key: str = JWT_SECRET_KEY,
    algorithm: str = JWT_ALGORITHM,
    permission_table: PermissionTable = DEFAULT_PERMISSION_TABLE,
    enterprise_yard_policy: str = ENTERPRISE_YARD_POLICY,
    password_hasher: PasswordHasher | None = None,
    **session_options: Any,
) -> AuthenticationService:
    store = SqlAuthStore(session_factory)
    tenant_resolver = TenantAccessResolver(permission_table)
    session_manager = SessionManager(
        store,
        TokenSigner(secret_key, algorithm),
        tenant_resolver,
        **session_options,
    )
    return AuthenticationService(
        store,
        session_manager,
        PermissionResolver(tenant_resolver, enterprise_yard_policy),
        password_hasher or PasswordHasher(),
    )
