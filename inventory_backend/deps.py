from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from inventory_backend.core.database import SessionLocal
from inventory_backend.core.request_context import set_request_context
from inventory_backend.services.auth_service import AuthContext, AuthenticationService, build_auth_service
from inventory_backend.services.errors import EnterpriseAccessRequired, PermissionDenied, YardAccessDenied
from inventory_backend.services.identity import CustomerAccessContext, Permission, YardPermission

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_auth_service() -> AuthenticationService:
    return build_auth_service(SessionLocal)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_auth_context(
    request: Request,
    token: str = Depends(get_bearer_token),
    service: AuthenticationService = Depends(get_auth_service),
) -> AuthContext:
    """Validate the bearer token and expose the session on the request."""
    context = service.validate_token(token)
    request.state.user = context.user
    request.state.tenant_id = context.tenant_id
    request.state.session_id = context.session.id
    set_request_context(
        tenant_id=context.tenant_id,
        user_id=str(context.user.id),
        session_id=context.session.id,
    )
    return context


def _log_access_denied(*, reason: str, context: AuthContext, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): user_id=%s user_role=%s tenant_id=%s endpoint=%s",
        reason,
        context.user.id,
        context.user.role.value,
        context.tenant_id,
        endpoint,
    )


def _resolve_yard_location(request: Request) -> str:
    yard_location = request.path_params.get("yard_location") or request.query_params.get("yard_location")
    if not yard_location:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="yard_location is required")
    return str(yard_location)


def require_permission(permission: Permission):
    permission = Permission(permission)

    def _dependency(
        request: Request,
        context: AuthContext = Depends(get_auth_context),
        service: AuthenticationService = Depends(get_auth_service),
    ) -> AuthContext:
        if not service.permissions.has_permission(context.user, context.tenant_id, permission):
            _log_access_denied(reason=f"missing_{permission.value}", context=context, request=request)
            raise PermissionDenied(f"Permission {permission.value} denied in tenant {context.tenant_id}")
        return context

    return _dependency


def require_yard_permission(yard_permission: YardPermission):
    yard_permission = YardPermission(yard_permission)

    def _dependency(
        request: Request,
        context: AuthContext = Depends(get_auth_context),
        service: AuthenticationService = Depends(get_auth_service),
    ) -> AuthContext:
        yard_location = _resolve_yard_location(request)
        if not service.permissions.has_yard_permission(
            context.user, context.tenant_id, yard_location, yard_permission
        ):
            _log_access_denied(reason=f"yard_{yard_permission.value}", context=context, request=request)
            raise YardAccessDenied(f"Access denied to yard {yard_location} in tenant {context.tenant_id}")
        return context

    return _dependency


def require_enterprise_access(
    request: Request,
    context: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    if not context.user.is_enterprise:
        _log_access_denied(reason="enterprise_required", context=context, request=request)
        raise EnterpriseAccessRequired()
    return context


def require_customer_contact(
    context: AuthContext = Depends(get_auth_context),
    service: AuthenticationService = Depends(get_auth_service),
) -> CustomerAccessContext:
    return service.permissions.customer_context(context.user, context.tenant_id)
