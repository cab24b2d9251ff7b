from repairdesk import get_db
from repairdesk.models.audit import AuditLog
from repairdesk.constants.permissions import PermissionKey
from repairdesk.models.authz import Profile, UserRole
from repairdesk.services.session import AccessSession
from repairdesk.services.store import AccessStore
from tests.test_utils_seed import ensure_grants, ensure_profile, seed_admin


def _roles_of(user_id):
    session = get_db()
    session.expire_all()
    return sorted(ur.role for ur in session.query(UserRole).filter_by(user_id=user_id))


def test_set_user_roles_replaces_assignments(client, auth_headers):
    admin = seed_admin()
    u = ensure_profile('tech@test.local', ['COUNTER'])
    resp = client.put(f'/iam/users/{u.id}/roles', json={'roles': ['technician', 'ACCOUNTING']}, headers=auth_headers(admin.id))
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json() == {'user_id': u.id, 'roles': ['ACCOUNTING', 'TECHNICIAN']}
    assert _roles_of(u.id) == ['ACCOUNTING', 'TECHNICIAN']
    assert get_db().query(AuditLog).filter_by(action='USER.ROLES.SET').count() == 1


def test_role_change_visible_on_next_request(client, auth_headers):
    admin = seed_admin()
    ensure_grants('TECHNICIAN', ['VIEW_WORKSHOP'])
    u = ensure_profile('promote@test.local', ['COUNTER'])
    h = auth_headers(u.id)
    assert 'VIEW_WORKSHOP' not in client.get('/iam/auth/me', headers=h).get_json()['perms']
    client.put(f'/iam/users/{u.id}/roles', json={'roles': ['TECHNICIAN']}, headers=auth_headers(admin.id))
    assert 'VIEW_WORKSHOP' in client.get('/iam/auth/me', headers=h).get_json()['perms']


def test_set_user_roles_validation(client, auth_headers):
    admin = seed_admin()
    u = ensure_profile('val@test.local', ['COUNTER'])
    h = auth_headers(admin.id)
    assert client.put(f'/iam/users/{u.id}/roles', json={'roles': ['JANITOR']}, headers=h).status_code == 400
    two_partner = client.put(f'/iam/users/{u.id}/roles', json={'roles': ['PARTNER_USER', 'PARTNER_ADMIN']}, headers=h)
    assert two_partner.status_code == 400
    assert client.put(f'/iam/users/{u.id}/roles', json={'roles': 'COUNTER'}, headers=h).status_code == 400
    assert client.put('/iam/users/9999/roles', json={'roles': []}, headers=h).status_code == 404
    # internal and partner roles may be combined
    mixed = client.put(f'/iam/users/{u.id}/roles', json={'roles': ['COUNTER', 'PARTNER_USER']}, headers=h)
    assert mixed.status_code == 200


def test_last_admin_cannot_lose_top_role(client, auth_headers):
    admin = seed_admin()
    resp = client.put(f'/iam/users/{admin.id}/roles', json={'roles': ['COUNTER']}, headers=auth_headers(admin.id))
    assert resp.status_code == 400
    assert 'last active ADMIN' in resp.get_json()['error']['detail']
    assert _roles_of(admin.id) == ['ADMIN']
    # a second admin lifts the restriction
    ensure_profile('admin2@test.local', ['ADMIN'])
    resp = client.put(f'/iam/users/{admin.id}/roles', json={'roles': ['COUNTER']}, headers=auth_headers(admin.id))
    assert resp.status_code == 200


def test_user_admin_requires_manage_users(client, auth_headers):
    ensure_grants('COUNTER', ['VIEW_DASHBOARD'])
    u = ensure_profile('counter@test.local', ['COUNTER'])
    other = ensure_profile('other@test.local', ['COUNTER'])
    h = auth_headers(u.id)
    resp = client.put(f'/iam/users/{other.id}/roles', json={'roles': ['ADMIN']}, headers=h)
    assert resp.status_code == 403
    assert resp.get_json()['error']['title'] == 'Access Denied'
    assert client.post(f'/iam/users/{other.id}/deactivate', headers=h).status_code == 403
    assert client.delete(f'/iam/users/{other.id}', json={'confirm_email': other.email}, headers=h).status_code == 403


def test_deactivate_and_reactivate(client, auth_headers):
    admin = seed_admin()
    u = ensure_profile('temp@test.local', ['COUNTER'])
    h = auth_headers(admin.id)
    resp = client.post(f'/iam/users/{u.id}/deactivate', headers=h)
    assert resp.get_json() == {'id': u.id, 'is_active': False}
    # deactivated principals are treated as signed out
    assert client.get('/iam/auth/me', headers=auth_headers(u.id)).status_code == 401
    assert client.post(f'/iam/users/{u.id}/reactivate', headers=h).get_json()['is_active'] is True
    assert client.get('/iam/auth/me', headers=auth_headers(u.id)).status_code == 200


def test_deactivation_reaches_loaded_session(client, auth_headers):
    admin = seed_admin()
    u = ensure_profile('live@test.local', ['ADMIN'])
    live = AccessSession(AccessStore(), u.id).load()
    assert live.can(PermissionKey.MANAGE_USERS)
    resp = client.post(f'/iam/users/{u.id}/deactivate', headers=auth_headers(admin.id))
    assert resp.status_code == 200
    assert not live.is_authenticated
    assert not live.can(PermissionKey.MANAGE_USERS)
    live.dispose()


def test_cannot_deactivate_yourself(client, auth_headers):
    admin = seed_admin()
    ensure_profile('admin2@test.local', ['ADMIN'])
    resp = client.post(f'/iam/users/{admin.id}/deactivate', headers=auth_headers(admin.id))
    assert resp.status_code == 403
    assert resp.get_json()['error']['title'] == 'Action Rejected'


def test_purge_user_requires_matching_email(client, auth_headers):
    admin = seed_admin()
    u = ensure_profile('Purge.Me@test.local', ['COUNTER', 'TECHNICIAN'])
    h = auth_headers(admin.id)
    wrong = client.delete(f'/iam/users/{u.id}', json={'confirm_email': 'someone@test.local'}, headers=h)
    assert wrong.status_code == 400
    ok = client.delete(f'/iam/users/{u.id}', json={'confirm_email': '  purge.me@TEST.local '}, headers=h)
    assert ok.status_code == 200, ok.get_json()
    session = get_db()
    session.expire_all()
    assert session.query(Profile).filter_by(id=u.id).one_or_none() is None
    assert _roles_of(u.id) == []


def test_cannot_purge_yourself(client, auth_headers):
    admin = seed_admin()
    resp = client.delete(f'/iam/users/{admin.id}', json={'confirm_email': admin.email}, headers=auth_headers(admin.id))
    assert resp.status_code == 403
