import pytest

from inventory_backend.services.errors import TenantAccessDenied
from inventory_backend.services.identity import Permission, Role
from inventory_backend.services.tenant_access import TenantAccessResolver
from tests.fixtures_data import OPERATOR_TENANT_A, make_user

resolver = TenantAccessResolver()


def test_enterprise_user_gets_synthesized_access_to_any_tenant():
    user = make_user(Role.ENTERPRISE_ADMIN, is_enterprise_user=True, primary_tenant_id="tenant_a")

    tenant_id, access = resolver.resolve(user, "tenant_zz")

    assert tenant_id == "tenant_zz"
    assert access.role == Role.ENTERPRISE_ADMIN
    assert {Permission.CROSS_TENANT_VIEW, Permission.USER_MANAGEMENT} <= access.permissions
    assert access.yard_access == ()
    assert (access.can_read, access.can_write, access.can_delete, access.can_approve) == (True, True, True, True)


def test_enterprise_role_without_flag_still_counts_as_enterprise():
    user = make_user(Role.SYSTEM_ADMIN, is_enterprise_user=False, primary_tenant_id="tenant_a")

    tenant_id, access = resolver.resolve(user, "tenant_b")

    assert tenant_id == "tenant_b"
    assert Permission.CROSS_TENANT_VIEW in access.permissions


def test_enterprise_flag_on_manager_cannot_delete():
    user = make_user(Role.MANAGER, is_enterprise_user=True, primary_tenant_id="tenant_a")

    _, access = resolver.resolve(user, "tenant_b")

    assert access.can_write is True
    assert access.can_approve is True
    assert access.can_delete is False


def test_tenant_user_resolves_exact_grant():
    user = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    tenant_id, access = resolver.resolve(user, "tenant_a")

    assert tenant_id == "tenant_a"
    assert access is OPERATOR_TENANT_A


def test_missing_tenant_falls_back_to_primary():
    user = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    tenant_id, _ = resolver.resolve(user, None)

    assert tenant_id == "tenant_a"


@pytest.mark.parametrize("tenant_id", ["tenant_b", "Tenant_A", "tenant"])
def test_tenant_user_is_isolated_to_allow_list(tenant_id):
    user = make_user(Role.ADMIN, tenant_access=[OPERATOR_TENANT_A])

    with pytest.raises(TenantAccessDenied):
        resolver.resolve(user, tenant_id)


def test_no_tenant_context_is_denied():
    user = make_user(Role.OPERATOR, tenant_access=[], primary_tenant_id=None)

    with pytest.raises(TenantAccessDenied):
        resolver.resolve(user, None)


def test_can_access_tenant_is_boolean_form():
    user = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    assert resolver.can_access_tenant(user, "tenant_a") is True
    assert resolver.can_access_tenant(user, "tenant_b") is False
