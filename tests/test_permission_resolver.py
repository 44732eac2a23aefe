from dataclasses import replace

import pytest

from inventory_backend.services.authorization_service import EnterpriseYardPolicy, PermissionResolver
from inventory_backend.services.errors import (
    EnterpriseAccessRequired,
    NotCustomerContact,
    PermissionDenied,
    YardAccessDenied,
)
from inventory_backend.services.identity import (
    ContactType,
    Operation,
    Permission,
    Role,
    TenantAccess,
    YardPermission,
)
from inventory_backend.services.tenant_access import TenantAccessResolver
from tests.fixtures_data import CONTACT_TENANT_A, OPERATOR_TENANT_A, houston_north, make_user


def _resolver(policy=EnterpriseYardPolicy.BLANKET) -> PermissionResolver:
    return PermissionResolver(TenantAccessResolver(), policy)


def _contact(**overrides):
    values = {"customer_id": 42, "contact_type": ContactType.PRIMARY}
    values.update(overrides)
    return make_user(Role.CUSTOMER_CONTACT, tenant_access=[CONTACT_TENANT_A], **values)


def test_system_admin_passes_every_check():
    resolver = _resolver()
    admin = make_user(Role.SYSTEM_ADMIN)

    assert resolver.has_permission(admin, "any_tenant", Permission.MANAGE_CUSTOMERS)
    assert resolver.has_yard_permission(admin, "any_tenant", "nowhere", YardPermission.EXPORT_DATA)
    assert resolver.can_perform(admin, "any_tenant", Operation.DELETE)


def test_role_table_grants_permission_inside_granted_tenant():
    resolver = _resolver()
    operator = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    assert resolver.has_permission(operator, "tenant_a", Permission.VIEW_INVENTORY)
    assert not resolver.has_permission(operator, "tenant_a", Permission.EXPORT_DATA)
    assert not resolver.has_permission(operator, "tenant_b", Permission.VIEW_INVENTORY)


def test_explicit_override_adds_permission():
    resolver = _resolver()
    access = replace(OPERATOR_TENANT_A, permissions=frozenset({Permission.EXPORT_DATA}))
    operator = make_user(Role.OPERATOR, tenant_access=[access])

    assert resolver.has_permission(operator, "tenant_a", Permission.EXPORT_DATA)
    assert resolver.has_permission(operator, "tenant_a", Permission.VIEW_INVENTORY)


@pytest.mark.parametrize("extra", list(Permission))
def test_adding_an_override_never_removes_a_permission(extra):
    resolver = _resolver()
    before = make_user(Role.MANAGER, tenant_access=[replace(OPERATOR_TENANT_A, role=Role.MANAGER)])
    after = make_user(
        Role.MANAGER,
        tenant_access=[replace(OPERATOR_TENANT_A, role=Role.MANAGER, permissions=frozenset({extra}))],
    )

    for permission in Permission:
        if resolver.has_permission(before, "tenant_a", permission):
            assert resolver.has_permission(after, "tenant_a", permission)
    assert resolver.has_permission(after, "tenant_a", extra)


def test_yard_gating_for_customer_contact_on_houston_north():
    resolver = _resolver()
    contact = _contact()

    assert resolver.has_permission(contact, "tenant_a", Permission.VIEW_INVENTORY)
    assert resolver.has_yard_permission(contact, "tenant_a", "houston_north", YardPermission.VIEW_WORK_ORDERS)
    assert not resolver.has_yard_permission(contact, "tenant_a", "houston_north", YardPermission.CREATE_WORK_ORDERS)
    assert not resolver.has_yard_permission(contact, "tenant_a", "dallas_south", YardPermission.VIEW_WORK_ORDERS)
    assert not resolver.has_yard_permission(contact, "tenant_b", "houston_north", YardPermission.VIEW_WORK_ORDERS)


def test_yard_denial_is_a_permission_denial():
    resolver = _resolver()

    with pytest.raises(YardAccessDenied) as exc:
        resolver.ensure_yard_permission(_contact(), "tenant_a", "houston_north", YardPermission.APPROVE_ORDERS)

    assert isinstance(exc.value, PermissionDenied)
    assert exc.value.status_code == 403


def test_ensure_permission_raises_permission_denied():
    resolver = _resolver()

    with pytest.raises(PermissionDenied):
        resolver.ensure_permission(_contact(), "tenant_a", Permission.MANAGE_INVENTORY)


def test_enterprise_yard_access_under_blanket_policy():
    resolver = _resolver(EnterpriseYardPolicy.BLANKET)
    enterprise = make_user(Role.ENTERPRISE_ADMIN, is_enterprise_user=True, primary_tenant_id="tenant_a")

    assert resolver.has_yard_permission(enterprise, "tenant_q", "any_yard", YardPermission.APPROVE_ORDERS)


def test_enterprise_yard_access_under_explicit_grant_policy():
    resolver = _resolver(EnterpriseYardPolicy.EXPLICIT_GRANTS)
    granted = TenantAccess(
        tenant_id="tenant_a",
        role=Role.ENTERPRISE_ADMIN,
        yard_access=(houston_north(),),
    )
    enterprise = make_user(
        Role.ENTERPRISE_ADMIN,
        tenant_access=[granted],
        is_enterprise_user=True,
        primary_tenant_id="tenant_a",
    )

    assert resolver.has_yard_permission(enterprise, "tenant_a", "houston_north", YardPermission.VIEW_INVENTORY)
    assert not resolver.has_yard_permission(enterprise, "tenant_a", "houston_north", YardPermission.EXPORT_DATA)
    assert not resolver.has_yard_permission(enterprise, "tenant_b", "houston_north", YardPermission.VIEW_INVENTORY)


def test_can_perform_follows_capability_flags():
    resolver = _resolver()
    contact = _contact()
    operator = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    assert resolver.can_perform(contact, "tenant_a", Operation.READ)
    assert not resolver.can_perform(contact, "tenant_a", Operation.WRITE)
    assert resolver.can_perform(operator, "tenant_a", Operation.WRITE)
    assert not resolver.can_perform(operator, "tenant_a", Operation.DELETE)
    assert not resolver.can_perform(operator, "tenant_b", Operation.READ)


def test_effective_permissions_merge_role_and_overrides():
    resolver = _resolver()
    access = replace(OPERATOR_TENANT_A, permissions=frozenset({Permission.EXPORT_DATA}))
    operator = make_user(Role.OPERATOR, tenant_access=[access])

    permissions = resolver.effective_permissions(operator, "tenant_a")

    assert Permission.EXPORT_DATA in permissions
    assert Permission.MANAGE_TRANSPORT in permissions
    assert Permission.USER_MANAGEMENT not in permissions


def test_customer_context_for_primary_contact():
    context = _resolver().customer_context(_contact(), "tenant_a")

    assert context.customer_id == 42
    assert context.tenant_id == "tenant_a"
    assert context.contact_type == ContactType.PRIMARY
    assert context.accessible_yards == ("houston_north",)
    assert context.can_approve is True


def test_viewer_contact_cannot_approve():
    context = _resolver().customer_context(_contact(contact_type=ContactType.VIEWER), "tenant_a")

    assert context.can_approve is False


def test_customer_context_requires_customer_contact():
    operator = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    with pytest.raises(NotCustomerContact):
        _resolver().customer_context(operator, "tenant_a")


def test_customer_contact_only_sees_own_customer():
    resolver = _resolver()
    contact = _contact()
    operator = make_user(Role.OPERATOR, tenant_access=[OPERATOR_TENANT_A])

    assert resolver.can_access_customer(contact, "tenant_a", 42)
    assert not resolver.can_access_customer(contact, "tenant_a", 43)
    assert not resolver.can_access_customer(contact, "tenant_b", 42)
    assert resolver.can_access_customer(operator, "tenant_a", 43)


def test_require_enterprise():
    resolver = _resolver()
    resolver.require_enterprise(make_user(Role.SYSTEM_ADMIN))

    with pytest.raises(EnterpriseAccessRequired):
        resolver.require_enterprise(make_user(Role.ADMIN, tenant_access=[OPERATOR_TENANT_A]))
