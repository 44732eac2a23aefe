from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from inventory_backend.services.identity import (
    ContactType,
    CustomerAccessContext,
    Permission,
    Role,
    TenantAccess,
    User,
    YardAccess,
    YardPermission,
)


class YardAccessSchema(BaseModel):
    yard_location: str = Field(min_length=1)
    can_view_work_orders: bool = False
    can_create_work_orders: bool = False
    can_approve_orders: bool = False
    can_view_inventory: bool = False
    can_manage_transport: bool = False
    can_export_data: bool = False

    def to_domain(self) -> YardAccess:
        return YardAccess(**self.model_dump())

    @classmethod
    def from_domain(cls, yard: YardAccess) -> "YardAccessSchema":
        return cls(**yard.to_dict())


class TenantAccessSchema(BaseModel):
    tenant_id: str = Field(min_length=1)
    role: Role
    permissions: list[Permission] = Field(default_factory=list)
    yard_access: list[YardAccessSchema] = Field(default_factory=list)
    can_read: bool = True
    can_write: bool = False
    can_delete: bool = False
    can_approve: bool = False

    def to_domain(self) -> TenantAccess:
        return TenantAccess(
            tenant_id=self.tenant_id,
            role=self.role,
            permissions=frozenset(self.permissions),
            yard_access=tuple(yard.to_domain() for yard in self.yard_access),
            can_read=self.can_read,
            can_write=self.can_write,
            can_delete=self.can_delete,
            can_approve=self.can_approve,
        )

    @classmethod
    def from_domain(cls, access: TenantAccess) -> "TenantAccessSchema":
        return cls(
            tenant_id=access.tenant_id,
            role=access.role,
            permissions=sorted(access.permissions, key=lambda p: p.value),
            yard_access=[YardAccessSchema.from_domain(yard) for yard in access.yard_access],
            can_read=access.can_read,
            can_write=access.can_write,
            can_delete=access.can_delete,
            can_approve=access.can_approve,
        )


class UserRead(BaseModel):
    id: int
    username: Optional[str] = None
    email: str
    full_name: str
    role: Role
    is_enterprise_user: bool
    primary_tenant_id: Optional[str] = None
    customer_id: Optional[int] = None
    contact_type: Optional[ContactType] = None
    is_active: bool
    tenant_access: list[TenantAccessSchema] = Field(default_factory=list)
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            is_enterprise_user=user.is_enterprise,
            primary_tenant_id=user.primary_tenant_id,
            customer_id=user.customer_id,
            contact_type=user.contact_type,
            is_active=user.is_active,
            tenant_access=[TenantAccessSchema.from_domain(access) for access in user.tenant_access],
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, description="Email address or username")
    password: str
    tenant_id: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    token: str
    refresh_token: str
    token_type: str = "bearer"
    tenant_id: str
    expires_at: datetime
    refresh_expires_at: datetime
    tenant_context: TenantAccessSchema
    user: UserRead


class CurrentSessionResponse(BaseModel):
    user: UserRead
    tenant_id: str
    session_id: str
    expires_at: datetime
    tenant_context: TenantAccessSchema


class PermissionCheckRequest(BaseModel):
    permission: Optional[Permission] = None
    yard_location: Optional[str] = None
    yard_permission: Optional[YardPermission] = None


class PermissionCheckResponse(BaseModel):
    tenant_id: str
    allowed: bool


class PermissionDescription(BaseModel):
    permission: Permission
    description: str


class PermissionsResponse(BaseModel):
    tenant_id: str
    role: Role
    permissions: list[PermissionDescription]


class CustomerContextResponse(BaseModel):
    customer_id: int
    tenant_id: str
    contact_type: ContactType
    accessible_yards: list[str]
    can_approve: bool

    @classmethod
    def from_domain(cls, context: CustomerAccessContext) -> "CustomerContextResponse":
        return cls(
            customer_id=context.customer_id,
            tenant_id=context.tenant_id,
            contact_type=context.contact_type,
            accessible_yards=list(context.accessible_yards),
            can_approve=context.can_approve,
        )


class CreateCustomerContactRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1)
    password: str
    tenant_id: str = Field(min_length=1)
    customer_id: int
    contact_type: Optional[ContactType] = None
    yard_access: list[YardAccessSchema] = Field(default_factory=list)


class CreateUserRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1)
    password: str
    role: Role
    username: Optional[str] = None
    is_enterprise_user: bool = False
    primary_tenant_id: Optional[str] = None
    tenant_access: list[TenantAccessSchema] = Field(default_factory=list)


class UpdateTenantAccessRequest(BaseModel):
    tenant_access: list[TenantAccessSchema]


class UpdateYardAccessRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    yard_access: list[YardAccessSchema]


class UpdateRoleRequest(BaseModel):
    role: Role
    tenant_id: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
