from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from inventory_backend.deps import (
    get_auth_context,
    get_auth_service,
    get_bearer_token,
    require_customer_contact,
)
from inventory_backend.schemas.auth import (
    CurrentSessionResponse,
    CustomerContextResponse,
    LoginRequest,
    LoginResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionDescription,
    PermissionsResponse,
    RefreshRequest,
    TenantAccessSchema,
    UserRead,
)
from inventory_backend.services.auth_service import AuthContext, AuthenticationService, LoginResult
from inventory_backend.services.identity import CustomerAccessContext

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    ip_address = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    if not ip_address and request.client is not None:
        ip_address = request.client.host
    return ip_address or None, request.headers.get("user-agent")


def _login_response(result: LoginResult) -> LoginResponse:
    return LoginResponse(
        token=result.token,
        refresh_token=result.refresh_token,
        tenant_id=result.tenant_id,
        expires_at=result.expires_at,
        refresh_expires_at=result.refresh_expires_at,
        tenant_context=TenantAccessSchema.from_domain(result.tenant_context),
        user=UserRead.from_domain(result.user),
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    ip_address, user_agent = _client_info(request)
    result = service.login(
        payload.identifier,
        payload.password,
        tenant_id=payload.tenant_id,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return _login_response(result)


@router.post("/logout")
def logout(
    token: str = Depends(get_bearer_token),
    service: AuthenticationService = Depends(get_auth_service),
):
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.post("/refresh", response_model=LoginResponse)
def refresh(
    payload: RefreshRequest,
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    ip_address, user_agent = _client_info(request)
    result = service.refresh_token(payload.refresh_token, ip_address=ip_address, user_agent=user_agent)
    return _login_response(result)


@router.get("/me", response_model=CurrentSessionResponse)
def me(context: AuthContext = Depends(get_auth_context)):
    return CurrentSessionResponse(
        user=UserRead.from_domain(context.user),
        tenant_id=context.tenant_id,
        session_id=context.session.id,
        expires_at=context.session.expires_at,
        tenant_context=TenantAccessSchema.from_domain(context.tenant_context),
    )


@router.post("/permissions/check", response_model=PermissionCheckResponse)
def check_permission(
    payload: PermissionCheckRequest,
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    wants_yard = payload.yard_location is not None or payload.yard_permission is not None
    if payload.permission is None and not wants_yard:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="permission or yard_location/yard_permission is required",
        )
    if wants_yard and (payload.yard_location is None or payload.yard_permission is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="yard_location and yard_permission must be sent together",
        )

    allowed = True
    if payload.permission is not None:
        allowed = service.permissions.has_permission(context.user, context.tenant_id, payload.permission)
    if allowed and wants_yard:
        allowed = service.permissions.has_yard_permission(
            context.user, context.tenant_id, payload.yard_location, payload.yard_permission
        )
    return PermissionCheckResponse(tenant_id=context.tenant_id, allowed=allowed)


@router.get("/permissions", response_model=PermissionsResponse)
def list_permissions(
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
):
    permissions = service.get_user_permissions(context.user.id, context.tenant_id)
    table = service.permissions.permission_table
    return PermissionsResponse(
        tenant_id=context.tenant_id,
        role=context.tenant_context.role,
        permissions=[
            PermissionDescription(permission=permission, description=table.describe(permission))
            for permission in permissions
        ],
    )


@router.get("/customer-context", response_model=CustomerContextResponse)
def customer_context(customer: CustomerAccessContext = Depends(require_customer_contact)):
    return CustomerContextResponse.from_domain(customer)
