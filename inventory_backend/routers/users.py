from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from inventory_backend.deps import get_auth_context, get_auth_service, require_enterprise_access
from inventory_backend.schemas.auth import (
    ChangePasswordRequest,
    CreateCustomerContactRequest,
    CreateUserRequest,
    PermissionsResponse,
    PermissionDescription,
    UpdateProfileRequest,
    UpdateRoleRequest,
    UpdateTenantAccessRequest,
    UpdateYardAccessRequest,
    UserRead,
)
from inventory_backend.services.auth_service import AuthContext, AuthenticationService
from inventory_backend.services.errors import PermissionDenied
from inventory_backend.services.identity import ENTERPRISE_ROLES, Permission, Role, User

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


def _managed_user(
    service: AuthenticationService,
    context: AuthContext,
    user_id: int,
    *,
    tenant_id: Optional[str] = None,
) -> User:
    target = service.get_user(user_id)
    service.ensure_can_manage(context.user, target, tenant_id=tenant_id)
    return target


@router.post("/customer-contacts", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_customer_contact(
    payload: CreateCustomerContactRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.permissions.ensure_permission(context.user, payload.tenant_id, Permission.MANAGE_CUSTOMERS)
    user = service.create_customer_contact(
        email=payload.email,
        full_name=payload.full_name,
        password=payload.password,
        tenant_id=payload.tenant_id,
        customer_id=payload.customer_id,
        contact_type=payload.contact_type,
        yard_access=[yard.to_domain() for yard in payload.yard_access],
        created_by=context.user.id,
    )
    return UserRead.from_domain(user)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: CreateUserRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    if payload.is_enterprise_user or payload.role in ENTERPRISE_ROLES:
        service.permissions.require_enterprise(context.user)
    tenant_ids = {access.tenant_id for access in payload.tenant_access}
    if payload.primary_tenant_id:
        tenant_ids.add(payload.primary_tenant_id)
    for tenant_id in sorted(tenant_ids or {context.tenant_id}):
        service.permissions.ensure_permission(context.user, tenant_id, Permission.USER_MANAGEMENT)

    user = service.create_user(
        email=payload.email,
        full_name=payload.full_name,
        password=payload.password,
        role=payload.role,
        username=payload.username,
        is_enterprise_user=payload.is_enterprise_user,
        primary_tenant_id=payload.primary_tenant_id,
        tenant_access=[access.to_domain() for access in payload.tenant_access],
        created_by=context.user.id,
    )
    return UserRead.from_domain(user)


@router.get("", response_model=list[UserRead])
def list_users(
    tenant_id: Optional[str] = None,
    role: Optional[Role] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    users = service.list_users(context.user, tenant_id=tenant_id, role=role, limit=limit, offset=offset)
    return [UserRead.from_domain(user) for user in users]


@router.get("/customers/{customer_id}/contacts", response_model=list[UserRead])
def list_customer_contacts(
    customer_id: int,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    if context.user.is_customer_contact:
        if not service.permissions.can_access_customer(context.user, context.tenant_id, customer_id):
            logger.warning(
                "Access denied (foreign_customer): user_id=%s customer_id=%s", context.user.id, customer_id
            )
            raise PermissionDenied("Access denied")
    else:
        service.permissions.ensure_permission(context.user, context.tenant_id, Permission.VIEW_CUSTOMERS)

    tenant_filter = None if context.user.is_enterprise else context.tenant_id
    contacts = service.list_customer_contacts(customer_id, tenant_id=tenant_filter)
    return [UserRead.from_domain(user) for user in contacts]


@router.post("/me/password")
def change_password(
    payload: ChangePasswordRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.change_password(context.user.id, payload.current_password, payload.new_password)
    return {"message": "Password changed successfully"}


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: int,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    return UserRead.from_domain(_managed_user(service, context, user_id))


@router.patch("/{user_id}", response_model=UserRead)
def update_profile(
    user_id: int,
    payload: UpdateProfileRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    _managed_user(service, context, user_id)
    user = service.update_profile(user_id, full_name=payload.full_name, email=payload.email)
    return UserRead.from_domain(user)


@router.get("/{user_id}/permissions", response_model=PermissionsResponse)
def get_user_permissions(
    user_id: int,
    tenant_id: Optional[str] = None,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    tenant_id = tenant_id or context.tenant_id
    target = _managed_user(service, context, user_id, tenant_id=tenant_id)
    _, access = service.tenant_resolver.resolve(target, tenant_id)
    table = service.permissions.permission_table
    return PermissionsResponse(
        tenant_id=tenant_id,
        role=access.role,
        permissions=[
            PermissionDescription(permission=permission, description=table.describe(permission))
            for permission in service.get_user_permissions(user_id, tenant_id)
        ],
    )


@router.put("/{user_id}/tenant-access", response_model=UserRead)
def update_tenant_access(
    user_id: int,
    payload: UpdateTenantAccessRequest,
    context: AuthContext = Depends(require_enterprise_access),
    service: AuthenticationService = Depends(get_auth_service),
):
    user = service.update_tenant_access(user_id, [access.to_domain() for access in payload.tenant_access])
    return UserRead.from_domain(user)


@router.put("/{user_id}/yard-access", response_model=UserRead)
def update_yard_access(
    user_id: int,
    payload: UpdateYardAccessRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.permissions.ensure_permission(context.user, payload.tenant_id, Permission.USER_MANAGEMENT)
    _managed_user(service, context, user_id, tenant_id=payload.tenant_id)
    user = service.update_yard_access(
        user_id, payload.tenant_id, [yard.to_domain() for yard in payload.yard_access]
    )
    return UserRead.from_domain(user)


@router.put("/{user_id}/role", response_model=UserRead)
def update_role(
    user_id: int,
    payload: UpdateRoleRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    if payload.role in ENTERPRISE_ROLES or payload.tenant_id is None:
        service.permissions.require_enterprise(context.user)
    service.permissions.ensure_permission(
        context.user, payload.tenant_id or context.tenant_id, Permission.USER_MANAGEMENT
    )
    _managed_user(service, context, user_id, tenant_id=payload.tenant_id)
    user = service.update_role(user_id, payload.role, tenant_id=payload.tenant_id)
    return UserRead.from_domain(user)


@router.post("/{user_id}/deactivate", response_model=UserRead)
def deactivate_user(
    user_id: int,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    _managed_user(service, context, user_id)
    user = service.deactivate_user(user_id, actor_id=context.user.id)
    return UserRead.from_domain(user)
