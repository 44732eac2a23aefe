from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from inventory_backend.services.identity import Permission, Role

_OPERATOR_PERMISSIONS = (
    Permission.VIEW_INVENTORY,
    Permission.CREATE_WORK_ORDER,
    Permission.MANAGE_TRANSPORT,
    Permission.VIEW_CUSTOMERS,
)
_MANAGER_PERMISSIONS = _OPERATOR_PERMISSIONS + (
    Permission.MANAGE_INVENTORY,
    Permission.APPROVE_WORK_ORDER,
    Permission.EXPORT_DATA,
)
_ADMIN_PERMISSIONS = _MANAGER_PERMISSIONS + (
    Permission.MANAGE_CUSTOMERS,
    Permission.USER_MANAGEMENT,
)
_ENTERPRISE_PERMISSIONS = _ADMIN_PERMISSIONS + (Permission.CROSS_TENANT_VIEW,)

DEFAULT_ROLE_PERMISSIONS: dict[Role, tuple[Permission, ...]] = {
    Role.CUSTOMER_CONTACT: (Permission.VIEW_INVENTORY, Permission.CREATE_WORK_ORDER),
    Role.OPERATOR: _OPERATOR_PERMISSIONS,
    Role.MANAGER: _MANAGER_PERMISSIONS,
    Role.ADMIN: _ADMIN_PERMISSIONS,
    Role.ENTERPRISE_ADMIN: _ENTERPRISE_PERMISSIONS,
    Role.SYSTEM_ADMIN: _ENTERPRISE_PERMISSIONS,
}

PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.VIEW_INVENTORY: "View inventory information",
    Permission.MANAGE_INVENTORY: "Create and update inventory",
    Permission.CREATE_WORK_ORDER: "Create and update work orders",
    Permission.APPROVE_WORK_ORDER: "Approve work orders",
    Permission.VIEW_CUSTOMERS: "View customer information",
    Permission.MANAGE_CUSTOMERS: "Create and update customers and their contacts",
    Permission.MANAGE_TRANSPORT: "Manage transport logistics",
    Permission.EXPORT_DATA: "Export data and reports",
    Permission.USER_MANAGEMENT: "Manage users and permissions",
    Permission.CROSS_TENANT_VIEW: "View data across tenants",
}

# Always granted to enterprise users on top of the role table.
ENTERPRISE_GRANTS = frozenset({Permission.CROSS_TENANT_VIEW, Permission.USER_MANAGEMENT})

# Legacy system access levels (1-6).
LEGACY_ACCESS_LEVEL_ROLES: dict[int, Role] = {
    1: Role.OPERATOR,
    2: Role.OPERATOR,
    3: Role.MANAGER,
    4: Role.ADMIN,
    5: Role.ENTERPRISE_ADMIN,
    6: Role.SYSTEM_ADMIN,
}


@dataclass(frozen=True)
class PermissionTable:
    """Immutable Role -> base Permission mapping, built once and injected."""

    role_permissions: Mapping[Role, frozenset[Permission]]
    descriptions: Mapping[Permission, str]

    @classmethod
    def build(
        cls,
        role_permissions: Mapping[Role, Iterable[Permission]] | None = None,
        descriptions: Mapping[Permission, str] | None = None,
    ) -> "PermissionTable":
        source = role_permissions if role_permissions is not None else DEFAULT_ROLE_PERMISSIONS
        frozen = {Role(role): frozenset(Permission(p) for p in perms) for role, perms in source.items()}
        for role in Role:
            frozen.setdefault(role, frozenset())
        return cls(
            role_permissions=MappingProxyType(frozen),
            descriptions=MappingProxyType(dict(descriptions or PERMISSION_DESCRIPTIONS)),
        )

    def permissions_for(self, role: Role) -> frozenset[Permission]:
        return self.role_permissions.get(Role(role), frozenset())

    def enterprise_permissions_for(self, role: Role) -> frozenset[Permission]:
        return self.permissions_for(role) | ENTERPRISE_GRANTS

    def role_grants(self, role: Role, permission: Permission) -> bool:
        return Permission(permission) in self.permissions_for(role)

    def describe(self, permission: Permission) -> str:
        return self.descriptions.get(Permission(permission), Permission(permission).value)


DEFAULT_PERMISSION_TABLE = PermissionTable.build()


def role_for_legacy_access_level(level: int) -> Role:
    return LEGACY_ACCESS_LEVEL_ROLES.get(int(level), Role.OPERATOR)
