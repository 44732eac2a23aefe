from __future__ import annotations

import logging
from enum import Enum

from inventory_backend.core.config import ENTERPRISE_YARD_POLICY
from inventory_backend.services.errors import (
    EnterpriseAccessRequired,
    NotCustomerContact,
    PermissionDenied,
    TenantAccessDenied,
    YardAccessDenied,
)
from inventory_backend.services.identity import (
    ContactType,
    CustomerAccessContext,
    Operation,
    Permission,
    Role,
    TenantAccess,
    User,
    YardPermission,
)
from inventory_backend.services.tenant_access import TenantAccessResolver

logger = logging.getLogger(__name__)

_APPROVING_CONTACT_TYPES = frozenset({ContactType.PRIMARY, ContactType.APPROVER})


class EnterpriseYardPolicy(str, Enum):
    """How yard-level grants apply to enterprise users.

    ``BLANKET``: once the tenant resolves, every yard in it is accessible.
    ``EXPLICIT_GRANTS``: enterprise users need a YardAccess entry in an explicit
    TenantAccess for that tenant, like everybody else.
    """

    BLANKET = "blanket"
    EXPLICIT_GRANTS = "explicit_grants"


class PermissionResolver:
    """Answer permission questions for a (user, tenant, yard) tuple.

    Checks are an OR across granting sources: system admin override, the role
    table for the effective tenant role, explicit per-tenant overrides and,
    for yards, the matching YardAccess capability.
    """

    def __init__(
        self,
        tenant_resolver: TenantAccessResolver,
        enterprise_yard_policy: EnterpriseYardPolicy | str = ENTERPRISE_YARD_POLICY,
    ) -> None:
        self.tenant_resolver = tenant_resolver
        self.permission_table = tenant_resolver.permission_table
        self.enterprise_yard_policy = EnterpriseYardPolicy(enterprise_yard_policy)

    @staticmethod
    def log_access_denied(*, reason: str, user: User, tenant_id: str | None, detail: str | None = None) -> None:
        logger.warning(
            "Access denied (%s): user_id=%s user_role=%s tenant_id=%s detail=%s",
            reason,
            user.id,
            user.role.value,
            tenant_id,
            detail,
        )

    def access_grants(self, access: TenantAccess, permission: Permission) -> bool:
        permission = Permission(permission)
        return self.permission_table.role_grants(access.role, permission) or permission in access.permissions

    def effective_permissions(self, user: User, tenant_id: str) -> frozenset[Permission]:
        if user.role == Role.SYSTEM_ADMIN:
            return frozenset(Permission)
        _, access = self.tenant_resolver.resolve(user, tenant_id)
        return self.permission_table.permissions_for(access.role) | access.permissions

    def has_permission(self, user: User, tenant_id: str, permission: Permission) -> bool:
        if user.role == Role.SYSTEM_ADMIN:
            return True
        try:
            _, access = self.tenant_resolver.resolve(user, tenant_id)
        except TenantAccessDenied:
            return False
        return self.access_grants(access, permission)

    def has_yard_permission(
        self,
        user: User,
        tenant_id: str,
        yard_location: str,
        yard_permission: YardPermission,
    ) -> bool:
        if user.role == Role.SYSTEM_ADMIN:
            return True
        try:
            resolved_tenant_id, access = self.tenant_resolver.resolve(user, tenant_id)
        except TenantAccessDenied:
            return False

        if user.is_enterprise:
            if self.enterprise_yard_policy == EnterpriseYardPolicy.BLANKET:
                return True
            explicit = user.access_for(resolved_tenant_id)
            if explicit is None:
                return False
            access = explicit

        yard = access.find_yard(yard_location)
        if yard is None:
            return False
        return yard.grants(yard_permission)

    def can_perform(self, user: User, tenant_id: str, operation: Operation) -> bool:
        if user.role == Role.SYSTEM_ADMIN:
            return True
        try:
            _, access = self.tenant_resolver.resolve(user, tenant_id)
        except TenantAccessDenied:
            return False
        return access.allows_operation(operation)

    def ensure_permission(self, user: User, tenant_id: str, permission: Permission) -> None:
        if not self.has_permission(user, tenant_id, permission):
            self.log_access_denied(
                reason="permission_denied", user=user, tenant_id=tenant_id, detail=Permission(permission).value
            )
            raise PermissionDenied(f"Permission {Permission(permission).value} denied in tenant {tenant_id}")

    def ensure_yard_permission(
        self,
        user: User,
        tenant_id: str,
        yard_location: str,
        yard_permission: YardPermission,
    ) -> None:
        if not self.has_yard_permission(user, tenant_id, yard_location, yard_permission):
            self.log_access_denied(
                reason="yard_denied",
                user=user,
                tenant_id=tenant_id,
                detail=f"{yard_location}:{YardPermission(yard_permission).value}",
            )
            raise YardAccessDenied(f"Access denied to yard {yard_location} in tenant {tenant_id}")

    def require_enterprise(self, user: User) -> None:
        if not user.is_enterprise:
            self.log_access_denied(reason="enterprise_required", user=user, tenant_id=None)
            raise EnterpriseAccessRequired()

    def customer_context(self, user: User, tenant_id: str) -> CustomerAccessContext:
        if not user.is_customer_contact or user.customer_id is None:
            raise NotCustomerContact()
        resolved_tenant_id, access = self.tenant_resolver.resolve(user, tenant_id)
        contact_type = user.contact_type or ContactType.PRIMARY
        return CustomerAccessContext(
            customer_id=user.customer_id,
            tenant_id=resolved_tenant_id,
            contact_type=contact_type,
            accessible_yards=tuple(yard.yard_location for yard in access.yard_access),
            can_approve=contact_type in _APPROVING_CONTACT_TYPES,
        )

    def can_access_customer(self, user: User, tenant_id: str, customer_id: int) -> bool:
        """Customer contacts only ever see their own customer inside a granted tenant."""
        if user.role == Role.SYSTEM_ADMIN:
            return True
        if not self.tenant_resolver.can_access_tenant(user, tenant_id):
            return False
        if user.is_customer_contact:
            return user.customer_id is not None and int(user.customer_id) == int(customer_id)
        return True
