from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the auth engine reports to the HTTP layer."""

    status_code = 400
    default_detail = "Authentication error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidCredentials(AuthError):
    status_code = 401
    default_detail = "Invalid credentials"


class AccountLocked(AuthError):
    status_code = 429
    default_detail = "Too many failed attempts. Try again later."


class UserInactive(AuthError):
    status_code = 401
    default_detail = "User account is inactive"


class TokenInvalid(AuthError):
    status_code = 401
    default_detail = "Invalid token"


class SessionExpired(AuthError):
    status_code = 401
    default_detail = "Session has expired"


class SessionInvalid(AuthError):
    status_code = 401
    default_detail = "Session is not valid"


class TenantAccessDenied(AuthError):
    status_code = 403
    default_detail = "Tenant access denied"


class PermissionDenied(AuthError):
    status_code = 403
    default_detail = "Permission denied"


class YardAccessDenied(PermissionDenied):
    default_detail = "Yard access denied"


class EnterpriseAccessRequired(AuthError):
    status_code = 403
    default_detail = "Enterprise access required"


class NotCustomerContact(AuthError):
    status_code = 403
    default_detail = "Customer contact access required"


class UserValidationError(AuthError):
    status_code = 422
    default_detail = "Invalid user data"


class InvalidYardAccessConfiguration(UserValidationError):
    default_detail = "Yard access must grant at least one capability"


class UserNotFound(AuthError):
    status_code = 404
    default_detail = "User not found"


class UserAlreadyExists(AuthError):
    status_code = 409
    default_detail = "Email or username already in use"


class StoreError(AuthError):
    """Transport or storage failure, wrapped with context and surfaced as-is."""

    status_code = 503
    default_detail = "Auth store unavailable"
