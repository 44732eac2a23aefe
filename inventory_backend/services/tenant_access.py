from __future__ import annotations

import logging

from inventory_backend.services.errors import TenantAccessDenied
from inventory_backend.services.identity import Role, TenantAccess, User
from inventory_backend.services.permissions import DEFAULT_PERMISSION_TABLE, PermissionTable

logger = logging.getLogger(__name__)

_DELETE_ROLES = frozenset({Role.ENTERPRISE_ADMIN, Role.SYSTEM_ADMIN})


class TenantAccessResolver:
    """Compute the effective TenantAccess a user acts with inside one tenant.

    Enterprise users get a synthesized grant for any tenant; everyone else is
    allow-listed by an exact ``tenant_id`` match in their own access list.
    """

    def __init__(self, permission_table: PermissionTable = DEFAULT_PERMISSION_TABLE) -> None:
        self.permission_table = permission_table

    def resolve(self, user: User, requested_tenant_id: str | None = None) -> tuple[str, TenantAccess]:
        tenant_id = (requested_tenant_id or "").strip() or (user.primary_tenant_id or "")
        if not tenant_id:
            logger.warning("Tenant access denied (no_tenant): user_id=%s", user.id)
            raise TenantAccessDenied("No tenant context available")

        if user.is_enterprise:
            return tenant_id, self.synthesize_enterprise_access(user, tenant_id)

        access = user.access_for(tenant_id)
        if access is None:
            logger.warning(
                "Tenant access denied (not_granted): user_id=%s user_role=%s tenant_id=%s",
                user.id,
                user.role.value,
                tenant_id,
            )
            raise TenantAccessDenied(f"User does not have access to tenant {tenant_id}")
        return tenant_id, access

    def synthesize_enterprise_access(self, user: User, tenant_id: str) -> TenantAccess:
        writable = user.role != Role.CUSTOMER_CONTACT
        return TenantAccess(
            tenant_id=tenant_id,
            role=user.role,
            permissions=self.permission_table.enterprise_permissions_for(user.role),
            yard_access=(),
            can_read=True,
            can_write=writable,
            can_delete=user.role in _DELETE_ROLES,
            can_approve=writable,
        )

    def can_access_tenant(self, user: User, tenant_id: str) -> bool:
        try:
            self.resolve(user, tenant_id)
        except TenantAccessDenied:
            return False
        return True
