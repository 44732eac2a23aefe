from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from inventory_backend.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Outcomes worth a WARNING line: the caller was refused by the auth layer.
AUTH_REJECTED_STATUSES = frozenset({401, 403, 429})


def session_fields(request: Any) -> dict[str, str | None]:
    """Caller identity attached by ``get_auth_context``; all None for anonymous requests."""
    state = request.state
    user = getattr(state, "user", None)
    return {
        "tenant_id": getattr(state, "tenant_id", None),
        "user_id": str(user.id) if user is not None else None,
        "user_role": user.role.value if user is not None else None,
        "session_id": getattr(state, "session_id", None),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log its outcome with the session behind it."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        response = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            level = logging.WARNING if status_code in AUTH_REJECTED_STATUSES else logging.INFO
            logger.log(
                level,
                "request completed",
                extra={
                    "request_id": request_id,
                    "endpoint": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    **session_fields(request),
                },
            )
            clear_request_context()
