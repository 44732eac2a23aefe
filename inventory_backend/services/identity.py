from __future__ import annotations

import re
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from inventory_backend.services.errors import InvalidYardAccessConfiguration, UserValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Role(str, Enum):
    CUSTOMER_CONTACT = "CUSTOMER_CONTACT"
    OPERATOR = "OPERATOR"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    ENTERPRISE_ADMIN = "ENTERPRISE_ADMIN"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


ENTERPRISE_ROLES = frozenset({Role.ENTERPRISE_ADMIN, Role.SYSTEM_ADMIN})
USER_MANAGER_ROLES = frozenset({Role.ADMIN, Role.ENTERPRISE_ADMIN, Role.SYSTEM_ADMIN})


class ContactType(str, Enum):
    PRIMARY = "PRIMARY"
    APPROVER = "APPROVER"
    VIEWER = "VIEWER"


class Permission(str, Enum):
    VIEW_INVENTORY = "view_inventory"
    MANAGE_INVENTORY = "manage_inventory"
    CREATE_WORK_ORDER = "create_work_order"
    APPROVE_WORK_ORDER = "approve_work_order"
    VIEW_CUSTOMERS = "view_customers"
    MANAGE_CUSTOMERS = "manage_customers"
    MANAGE_TRANSPORT = "manage_transport"
    EXPORT_DATA = "export_data"
    USER_MANAGEMENT = "user_management"
    CROSS_TENANT_VIEW = "cross_tenant_view"


class YardPermission(str, Enum):
    VIEW_WORK_ORDERS = "view_work_orders"
    CREATE_WORK_ORDERS = "create_work_orders"
    APPROVE_ORDERS = "approve_orders"
    VIEW_INVENTORY = "view_inventory"
    MANAGE_TRANSPORT = "manage_transport"
    EXPORT_DATA = "export_data"


class Operation(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    APPROVE = "approve"


@dataclass(frozen=True)
class YardAccess:
    yard_location: str
    can_view_work_orders: bool = False
    can_create_work_orders: bool = False
    can_approve_orders: bool = False
    can_view_inventory: bool = False
    can_manage_transport: bool = False
    can_export_data: bool = False

    def grants(self, yard_permission: YardPermission) -> bool:
        return bool(getattr(self, YARD_PERMISSION_FIELDS[YardPermission(yard_permission)]))

    def has_any_capability(self) -> bool:
        return any(getattr(self, name) for name in YARD_PERMISSION_FIELDS.values())

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "YardAccess":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


YARD_PERMISSION_FIELDS = {
    YardPermission.VIEW_WORK_ORDERS: "can_view_work_orders",
    YardPermission.CREATE_WORK_ORDERS: "can_create_work_orders",
    YardPermission.APPROVE_ORDERS: "can_approve_orders",
    YardPermission.VIEW_INVENTORY: "can_view_inventory",
    YardPermission.MANAGE_TRANSPORT: "can_manage_transport",
    YardPermission.EXPORT_DATA: "can_export_data",
}


@dataclass(frozen=True)
class TenantAccess:
    tenant_id: str
    role: Role
    permissions: frozenset[Permission] = frozenset()
    yard_access: tuple[YardAccess, ...] = ()
    can_read: bool = True
    can_write: bool = False
    can_delete: bool = False
    can_approve: bool = False

    def __post_init__(self) -> None:
        # Accept plain lists and strings from callers.
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "permissions", frozenset(Permission(p) for p in self.permissions))
        object.__setattr__(self, "yard_access", tuple(self.yard_access))

    def find_yard(self, yard_location: str) -> Optional[YardAccess]:
        for yard in self.yard_access:
            if yard.yard_location == yard_location:
                return yard
        return None

    def allows_operation(self, operation: Operation) -> bool:
        return {
            Operation.READ: self.can_read,
            Operation.WRITE: self.can_write,
            Operation.DELETE: self.can_delete,
            Operation.APPROVE: self.can_approve,
        }[Operation(operation)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "role": self.role.value,
            "permissions": sorted(p.value for p in self.permissions),
            "yard_access": [yard.to_dict() for yard in self.yard_access],
            "can_read": self.can_read,
            "can_write": self.can_write,
            "can_delete": self.can_delete,
            "can_approve": self.can_approve,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TenantAccess":
        return cls(
            tenant_id=str(data["tenant_id"]),
            role=Role(data["role"]),
            permissions=frozenset(Permission(p) for p in data.get("permissions") or []),
            yard_access=tuple(YardAccess.from_dict(y) for y in data.get("yard_access") or []),
            can_read=bool(data.get("can_read", True)),
            can_write=bool(data.get("can_write", False)),
            can_delete=bool(data.get("can_delete", False)),
            can_approve=bool(data.get("can_approve", False)),
        )


@dataclass
class User:
    id: Optional[int]
    username: Optional[str]
    email: str
    full_name: str
    password_hash: str
    role: Role
    is_enterprise_user: bool = False
    primary_tenant_id: Optional[str] = None
    customer_id: Optional[int] = None
    contact_type: Optional[ContactType] = None
    is_active: bool = True
    tenant_access: list[TenantAccess] = field(default_factory=list)
    last_login_at: Optional[datetime] = None
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_enterprise(self) -> bool:
        """Enterprise grants are evaluated globally instead of per-tenant allow-list."""
        return self.is_enterprise_user or self.role in ENTERPRISE_ROLES

    @property
    def is_customer_contact(self) -> bool:
        return self.role == Role.CUSTOMER_CONTACT

    @property
    def can_manage_other_users(self) -> bool:
        return self.role in USER_MANAGER_ROLES

    def access_for(self, tenant_id: str) -> Optional[TenantAccess]:
        for access in self.tenant_access:
            if access.tenant_id == tenant_id:
                return access
        return None

    def accessible_tenant_ids(self) -> list[str]:
        return [access.tenant_id for access in self.tenant_access]


@dataclass
class Session:
    id: str
    user_id: int
    tenant_id: str
    refresh_token: str
    tenant_access: TenantAccess
    expires_at: datetime
    refresh_expires_at: datetime
    is_active: bool = True
    access_token: str = ""
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class CustomerAccessContext:
    customer_id: int
    tenant_id: str
    contact_type: ContactType
    accessible_yards: tuple[str, ...]
    can_approve: bool


def validate_yard_access(yards: Iterable[YardAccess]) -> tuple[YardAccess, ...]:
    seen: set[str] = set()
    validated = []
    for yard in yards:
        location = (yard.yard_location or "").strip()
        if not location:
            raise InvalidYardAccessConfiguration("Yard location is required")
        if location in seen:
            raise InvalidYardAccessConfiguration(f"Duplicate yard location {location}")
        if not yard.has_any_capability():
            raise InvalidYardAccessConfiguration(
                f"Yard access for {location} must grant at least one capability"
            )
        seen.add(location)
        validated.append(replace(yard, yard_location=location))
    return tuple(validated)


def validate_tenant_access(access_list: Iterable[TenantAccess]) -> list[TenantAccess]:
    seen: set[str] = set()
    validated = []
    for access in access_list:
        tenant_id = (access.tenant_id or "").strip()
        if not tenant_id:
            raise UserValidationError("Tenant ID is required for tenant access")
        if tenant_id in seen:
            raise UserValidationError(f"Duplicate tenant access for {tenant_id}")
        seen.add(tenant_id)
        validated.append(
            replace(access, tenant_id=tenant_id, yard_access=validate_yard_access(access.yard_access))
        )
    return validated


def validate_user(user: User, *, min_password_length: int | None = None, password: str | None = None) -> None:
    """Check identity rules before a user record reaches the store.

    ``customer_id`` must be present exactly when the role is CUSTOMER_CONTACT and
    an enterprise user can never be a customer contact.
    """
    if not _EMAIL_RE.match(user.email or ""):
        raise UserValidationError("Email address is invalid")
    if not (user.full_name or "").strip():
        raise UserValidationError("Full name is required")
    if user.username is not None and not user.username.strip():
        raise UserValidationError("Username is invalid")
    if password is not None and min_password_length is not None and len(password) < min_password_length:
        raise UserValidationError(f"Password must be at least {min_password_length} characters")

    if user.is_customer_contact:
        if user.customer_id is None:
            raise UserValidationError("Customer contacts require a customer ID")
        if user.is_enterprise_user:
            raise UserValidationError("Customer contacts cannot be enterprise users")
    else:
        if user.customer_id is not None:
            raise UserValidationError("Only customer contacts can be linked to a customer")
        if user.contact_type is not None:
            raise UserValidationError("Contact type only applies to customer contacts")

    if not user.is_enterprise and not user.primary_tenant_id:
        raise UserValidationError("Primary tenant ID is required for non-enterprise users")

    user.tenant_access = validate_tenant_access(user.tenant_access)
