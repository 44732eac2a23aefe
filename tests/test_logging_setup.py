import json
import logging
from types import SimpleNamespace

from inventory_backend.core.logging_setup import JsonFormatter
from inventory_backend.core.request_context import clear_request_context, set_request_context
from inventory_backend.middleware.observability import session_fields
from inventory_backend.services.identity import Role


def _record(message: str, *args) -> logging.LogRecord:
    return logging.LogRecord("inventory_backend.test", logging.INFO, __file__, 1, message, args, None)


def test_formatter_masks_credentials():
    formatter = JsonFormatter("%(message)s")

    payload = json.loads(
        formatter.format(_record("login password=%s refresh_token=%s", "hunter22", "abcdef0123"))
    )

    assert "hunter22" not in payload["message"]
    assert "abcdef0123" not in payload["message"]
    assert "password=***" in payload["message"]


def test_formatter_includes_request_context():
    formatter = JsonFormatter("%(message)s")
    set_request_context(request_id="req-1", tenant_id="tenant_a", user_id="7", session_id="s-1")
    try:
        payload = json.loads(formatter.format(_record("hello")))
    finally:
        clear_request_context()

    assert payload["request_id"] == "req-1"
    assert payload["tenant_id"] == "tenant_a"
    assert payload["user_id"] == "7"
    assert payload["session_id"] == "s-1"
    assert payload["module"] == "inventory_backend.test"


def test_formatter_interpolates_arguments_and_keeps_extra_fields():
    formatter = JsonFormatter("%(message)s")
    record = _record("User created: user_id=%s role=%s", 7, "ADMIN")
    record.status_code = 403
    record.user_role = "ADMIN"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "User created: user_id=7 role=ADMIN"
    assert payload["status_code"] == 403
    assert payload["user_role"] == "ADMIN"


def test_session_fields_for_authenticated_and_anonymous_requests():
    user = SimpleNamespace(id=7, role=Role.ADMIN)
    authenticated = SimpleNamespace(state=SimpleNamespace(user=user, tenant_id="tenant_a", session_id="s-1"))
    anonymous = SimpleNamespace(state=SimpleNamespace())

    assert session_fields(authenticated) == {
        "tenant_id": "tenant_a",
        "user_id": "7",
        "user_role": "ADMIN",
        "session_id": "s-1",
    }
    assert session_fields(anonymous) == {
        "tenant_id": None,
        "user_id": None,
        "user_role": None,
        "session_id": None,
    }
