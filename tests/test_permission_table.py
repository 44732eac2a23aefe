import pytest

from inventory_backend.services.identity import Permission, Role
from inventory_backend.services.permissions import (
    DEFAULT_PERMISSION_TABLE,
    ENTERPRISE_GRANTS,
    PermissionTable,
    role_for_legacy_access_level,
)


def test_customer_contact_base_permissions_are_minimal():
    permissions = DEFAULT_PERMISSION_TABLE.permissions_for(Role.CUSTOMER_CONTACT)

    assert permissions == {Permission.VIEW_INVENTORY, Permission.CREATE_WORK_ORDER}


def test_roles_form_an_increasing_chain():
    chain = [Role.OPERATOR, Role.MANAGER, Role.ADMIN, Role.ENTERPRISE_ADMIN]
    for lower, higher in zip(chain, chain[1:]):
        assert DEFAULT_PERMISSION_TABLE.permissions_for(lower) <= DEFAULT_PERMISSION_TABLE.permissions_for(higher)


def test_only_enterprise_roles_see_across_tenants():
    for role in (Role.CUSTOMER_CONTACT, Role.OPERATOR, Role.MANAGER, Role.ADMIN):
        assert not DEFAULT_PERMISSION_TABLE.role_grants(role, Permission.CROSS_TENANT_VIEW)
    assert DEFAULT_PERMISSION_TABLE.role_grants(Role.ENTERPRISE_ADMIN, Permission.CROSS_TENANT_VIEW)


def test_enterprise_permissions_add_fixed_grants():
    permissions = DEFAULT_PERMISSION_TABLE.enterprise_permissions_for(Role.OPERATOR)

    assert ENTERPRISE_GRANTS <= permissions
    assert Permission.VIEW_INVENTORY in permissions


def test_table_is_immutable():
    with pytest.raises(TypeError):
        DEFAULT_PERMISSION_TABLE.role_permissions[Role.OPERATOR] = frozenset()


def test_custom_table_fills_missing_roles():
    table = PermissionTable.build({Role.OPERATOR: ["view_inventory"]})

    assert table.permissions_for(Role.OPERATOR) == {Permission.VIEW_INVENTORY}
    assert table.permissions_for(Role.ADMIN) == frozenset()


def test_describe_returns_human_readable_text():
    assert DEFAULT_PERMISSION_TABLE.describe(Permission.EXPORT_DATA) == "Export data and reports"


@pytest.mark.parametrize(
    "level,role",
    [
        (1, Role.OPERATOR),
        (3, Role.MANAGER),
        (4, Role.ADMIN),
        (5, Role.ENTERPRISE_ADMIN),
        (6, Role.SYSTEM_ADMIN),
        (99, Role.OPERATOR),
    ],
)
def test_legacy_access_levels_map_to_roles(level, role):
    assert role_for_legacy_access_level(level) == role
