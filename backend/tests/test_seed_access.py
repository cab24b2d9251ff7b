from repairdesk import get_db
from repairdesk.constants.permissions import ALL_PERMISSION_KEYS, ROLE_PRESETS
from repairdesk.models.authz import Permission, RolePermission, UserRole
from scripts.seed_access import ensure_catalog, ensure_role_presets, ensure_initial_admin, validate, build_role_permission_map


def test_seed_is_idempotent_and_never_stores_top_role_rows(monkeypatch):
    monkeypatch.setenv('SEED_ADMIN_EMAIL', 'boss@shop.example')
    session = get_db()
    assert ensure_catalog(session) == len(ALL_PERMISSION_KEYS)
    created = ensure_role_presets(session)
    assert created == sum(len(v) for v in ROLE_PRESETS.values())
    admin = ensure_initial_admin(session)
    session.commit()

    assert ensure_catalog(session) == 0
    assert ensure_role_presets(session) == 0
    assert ensure_initial_admin(session).id == admin.id
    session.commit()

    assert session.query(Permission).count() == len(ALL_PERMISSION_KEYS)
    assert session.query(RolePermission).filter_by(role='ADMIN').count() == 0
    assert [ur.role for ur in session.query(UserRole).filter_by(user_id=admin.id)] == ['ADMIN']
    assert admin.email == 'boss@shop.example'
    assert build_role_permission_map(session)['PARTNER_USER'] == sorted(ROLE_PRESETS['PARTNER_USER'])
    assert validate(session) == []


def test_seed_keeps_administrator_additions():
    session = get_db()
    ensure_catalog(session)
    session.add(RolePermission(role='COUNTER', permission_key='MANAGE_PARTS'))
    session.commit()
    ensure_role_presets(session)
    session.commit()
    assert 'MANAGE_PARTS' in build_role_permission_map(session)['COUNTER']


def test_validate_reports_unknown_rows():
    session = get_db()
    ensure_catalog(session)
    session.add(Permission(key='LEGACY_KEY', description='old', category='general'))
    session.add(RolePermission(role='JANITOR', permission_key='VIEW_DASHBOARD'))
    session.commit()
    problems = validate(session)
    assert any('LEGACY_KEY' in p for p in problems)
    assert any('JANITOR' in p for p in problems)
