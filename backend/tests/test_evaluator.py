import pytest
from repairdesk.constants.permissions import ALL_PERMISSION_KEYS, PermissionKey
from repairdesk.constants.roles import AppRole
from repairdesk.services.evaluator import PermissionEvaluator

K = PermissionKey
R = AppRole

MATRIX = {
    (R.COUNTER, 'VIEW_DASHBOARD'),
    (R.COUNTER, 'VIEW_INTAKE'),
    (R.TECHNICIAN, 'VIEW_WORKSHOP'),
    (R.ACCOUNTING, 'VIEW_REPORTS'),
}


def test_admin_grants_every_key_regardless_of_matrix():
    ev = PermissionEvaluator({R.ADMIN}, set())
    assert all(ev.can(k) for k in ALL_PERMISSION_KEYS)
    assert ev.can('NOT_IN_CATALOG')
    assert ev.is_top_role


def test_admin_alongside_other_roles_still_grants_everything():
    ev = PermissionEvaluator({R.ADMIN, R.COUNTER}, MATRIX)
    assert ev.can(K.MANAGE_PERMISSIONS)


@pytest.mark.parametrize('roles,key,expected', [
    ({R.COUNTER}, 'VIEW_DASHBOARD', True),
    ({R.COUNTER}, 'VIEW_WORKSHOP', False),
    ({R.COUNTER, R.TECHNICIAN}, 'VIEW_WORKSHOP', True),
    ({R.TECHNICIAN}, 'VIEW_REPORTS', False),
    ({R.PARTNER_USER}, 'VIEW_DASHBOARD', False),
])
def test_non_admin_needs_a_row_for_a_held_role(roles, key, expected):
    assert PermissionEvaluator(roles, MATRIX).can(key) is expected


def test_rows_for_roles_not_held_are_ignored():
    ev = PermissionEvaluator({R.COUNTER}, MATRIX)
    assert ev.granted == {'VIEW_DASHBOARD', 'VIEW_INTAKE'}


def test_counter_scenario():
    ev = PermissionEvaluator({R.COUNTER}, MATRIX)
    assert ev.can(K.VIEW_DASHBOARD)
    assert not ev.can(K.MANAGE_USERS)
    assert ev.can_any([K.MANAGE_USERS, K.VIEW_INTAKE])
    assert not ev.can_all([K.VIEW_DASHBOARD, K.MANAGE_USERS])
    assert ev.can_all([K.VIEW_DASHBOARD, K.VIEW_INTAKE])


def test_empty_lists_on_loaded_snapshot():
    ev = PermissionEvaluator({R.COUNTER}, MATRIX)
    assert ev.can_any([]) is False
    assert ev.can_all([]) is True


@pytest.mark.parametrize('ev', [
    PermissionEvaluator(),
    PermissionEvaluator(set(), MATRIX),
    PermissionEvaluator.pending(),
    PermissionEvaluator({R.ADMIN}, loaded=False),
])
def test_no_roles_or_not_loaded_grants_nothing(ev):
    assert not ev.can(K.VIEW_DASHBOARD)
    assert not ev.can('UNKNOWN_KEY')
    assert not ev.can_any(ALL_PERMISSION_KEYS)
    assert not ev.can_all([])


def test_unknown_and_non_key_values_are_denied():
    ev = PermissionEvaluator({R.COUNTER}, MATRIX)
    assert not ev.can('NOT_A_KEY')
    assert not ev.can(None)
    assert not ev.can(42)


def test_evaluation_is_idempotent():
    ev = PermissionEvaluator({R.TECHNICIAN}, MATRIX)
    assert [ev.can(K.VIEW_WORKSHOP) for _ in range(3)] == [True, True, True]


def test_effective_permissions_expands_admin_to_catalog():
    assert PermissionEvaluator({R.ADMIN}).effective_permissions(ALL_PERMISSION_KEYS) == sorted(ALL_PERMISSION_KEYS)
    assert PermissionEvaluator({R.COUNTER}, MATRIX).effective_permissions(ALL_PERMISSION_KEYS) == ['VIEW_DASHBOARD', 'VIEW_INTAKE']


def test_version_key_combines_roles_and_matrix_version():
    ev = PermissionEvaluator({R.COUNTER}, MATRIX, matrix_version=3)
    assert ev.version_key == (frozenset({R.COUNTER}), 3)
