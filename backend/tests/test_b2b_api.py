from repairdesk import get_db
from repairdesk.models.authz import B2BPartner, Profile, UserRole
from tests.test_utils_seed import ensure_grants, ensure_partner, ensure_profile, seed_admin


def _fresh(model, id_):
    session = get_db()
    session.expire_all()
    return session.get(model, id_)


def test_partner_portal_for_active_partner(client, auth_headers):
    partner = ensure_partner('Fixit GmbH', customer_number='B2B-001')
    u = ensure_profile('admin@fixit.example', ['PARTNER_ADMIN'], partner=partner)
    resp = client.get('/b2b/me', headers=auth_headers(u.id))
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['resolved_role'] == 'PARTNER_ADMIN'
    assert body['partner']['customer_number'] == 'B2B-001'
    assert body['capabilities'] == {
        'manage_partner_users': False,
        'manage_prices': True,
        'release_endcustomer_price': True,
        'manage_document_templates': False,
    }


def test_no_partner_role_redirects_home(client, auth_headers):
    ensure_grants('COUNTER', ['VIEW_DASHBOARD'])
    u = ensure_profile('staff@test.local', ['COUNTER'])
    resp = client.get('/b2b/me', headers=auth_headers(u.id))
    assert resp.status_code == 403
    err = resp.get_json()['error']
    assert err['title'] == 'No B2B Access'
    assert err['redirect'] == '/'


def test_partner_role_without_partner_record_is_blocked(client, auth_headers):
    u = ensure_profile('orphan@test.local', ['PARTNER_USER'])
    assert client.get('/b2b/me', headers=auth_headers(u.id)).status_code == 403


def test_pending_partner_is_blocked_with_message(client, auth_headers):
    partner = ensure_partner('Pending Ltd', active=False)
    u = ensure_profile('owner@pending.example', ['PARTNER_OWNER'], partner=partner)
    resp = client.get('/b2b/me', headers=auth_headers(u.id))
    assert resp.status_code == 403
    assert 'pending approval' in resp.get_json()['error']['detail']


def test_refetch_returns_current_partner(client, auth_headers):
    partner = ensure_partner('Refetch AG', city='Köln')
    u = ensure_profile('user@refetch.example', ['PARTNER_USER'], partner=partner)
    body = client.post('/b2b/me/refetch', headers=auth_headers(u.id)).get_json()
    assert body['partner']['city'] == 'Köln'


def test_register_partner_creates_inactive_partner_and_owner(client, auth_headers):
    u = ensure_profile('founder@new.example')
    resp = client.post('/b2b/register', json={'name': 'New Partner', 'city': 'Bremen'}, headers=auth_headers(u.id))
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['is_active'] is False
    assert body['member_ids'] == [u.id]
    assert _fresh(Profile, u.id).b2b_partner_id == body['id']
    roles = [ur.role for ur in get_db().query(UserRole).filter_by(user_id=u.id)]
    assert roles == ['PARTNER_OWNER']
    # waits for approval before the portal opens
    assert client.get('/b2b/me', headers=auth_headers(u.id)).status_code == 403


def test_register_twice_rejected(client, auth_headers):
    partner = ensure_partner('Existing')
    u = ensure_profile('member@existing.example', ['PARTNER_USER'], partner=partner)
    assert client.post('/b2b/register', json={'name': 'Another'}, headers=auth_headers(u.id)).status_code == 400
    fresh = ensure_profile('fresh@test.local')
    assert client.post('/b2b/register', json={}, headers=auth_headers(fresh.id)).status_code == 400


def test_register_requires_sign_in(client):
    assert client.post('/b2b/register', json={'name': 'Anon'}).status_code == 401


def test_partner_approval_opens_portal(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Approve Me', active=False)
    owner = ensure_profile('owner@approve.example', ['PARTNER_OWNER'], partner=partner)
    h_admin = auth_headers(admin.id)
    listing = client.get('/b2b/partners?active=false', headers=h_admin).get_json()['data']
    assert [p['name'] for p in listing] == ['Approve Me']
    resp = client.post(f'/b2b/partners/{partner.id}/activate', headers=h_admin)
    assert resp.get_json()['is_active'] is True
    assert client.get('/b2b/me', headers=auth_headers(owner.id)).status_code == 200
    client.post(f'/b2b/partners/{partner.id}/deactivate', headers=h_admin)
    assert client.get('/b2b/me', headers=auth_headers(owner.id)).status_code == 403


def test_update_partner_fields(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Old Name')
    h = auth_headers(admin.id)
    resp = client.put(f'/b2b/partners/{partner.id}', json={
        'name': 'New Name',
        'default_return_address': {'street': 'Hafenstr. 1', 'city': 'Hamburg'},
    }, headers=h)
    assert resp.status_code == 200
    assert resp.get_json()['default_return_address']['city'] == 'Hamburg'
    assert client.put(f'/b2b/partners/{partner.id}', json={'name': ''}, headers=h).status_code == 400
    assert client.put(f'/b2b/partners/{partner.id}', json={'default_return_address': 'x'}, headers=h).status_code == 400
    assert client.put('/b2b/partners/9999', json={'name': 'x'}, headers=h).status_code == 404


def test_rejected_update_leaves_partner_unchanged(client, auth_headers):
    admin = seed_admin()
    alpha = ensure_partner('Alpha', city='Berlin')
    beta = ensure_partner('Beta', active=False)
    h = auth_headers(admin.id)
    resp = client.put(f'/b2b/partners/{alpha.id}', json={'name': 'Renamed', 'city': 5}, headers=h)
    assert resp.status_code == 400
    # a later successful write must not carry the rejected edit with it
    assert client.post(f'/b2b/partners/{beta.id}/activate', headers=h).status_code == 200
    names = [p['name'] for p in client.get('/b2b/partners', headers=h).get_json()['data']]
    assert names == ['Alpha', 'Beta']
    stored = _fresh(B2BPartner, alpha.id)
    assert (stored.name, stored.city) == ('Alpha', 'Berlin')


def test_list_partners_rejects_bad_filter(client, auth_headers):
    admin = seed_admin()
    assert client.get('/b2b/partners?active=maybe', headers=auth_headers(admin.id)).status_code == 400


def test_assign_user_grants_partner_user_when_missing(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Assign Co')
    u = ensure_profile('staff@assign.example', ['COUNTER'])
    h = auth_headers(admin.id)
    resp = client.put(f'/b2b/users/{u.id}/partner', json={'partner_id': partner.id}, headers=h)
    assert resp.get_json() == {'user_id': u.id, 'partner_id': partner.id, 'added_role': 'PARTNER_USER'}
    assert client.get('/b2b/me', headers=auth_headers(u.id)).status_code == 200


def test_assign_keeps_existing_partner_role(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Keep Co')
    u = ensure_profile('owner@keep.example', ['PARTNER_OWNER'])
    resp = client.put(f'/b2b/users/{u.id}/partner', json={'partner_id': partner.id}, headers=auth_headers(admin.id))
    assert resp.get_json()['added_role'] is None
    roles = sorted(ur.role for ur in get_db().query(UserRole).filter_by(user_id=u.id))
    assert roles == ['PARTNER_OWNER']


def test_unassign_clears_affiliation(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Leave Co')
    u = ensure_profile('leaver@leave.example', ['PARTNER_USER'], partner=partner)
    h = auth_headers(admin.id)
    resp = client.put(f'/b2b/users/{u.id}/partner', json={'partner_id': None}, headers=h)
    assert resp.status_code == 200
    assert _fresh(Profile, u.id).b2b_partner_id is None
    assert client.get('/b2b/me', headers=auth_headers(u.id)).status_code == 403
    assert client.put(f'/b2b/users/{u.id}/partner', json={}, headers=h).status_code == 400
    assert client.put(f'/b2b/users/{u.id}/partner', json={'partner_id': 9999}, headers=h).status_code == 404


def test_partner_listing_includes_members(client, auth_headers):
    admin = seed_admin()
    partner = ensure_partner('Members Co')
    u = ensure_profile('m@members.example', ['PARTNER_USER'], partner=partner)
    data = client.get('/b2b/partners', headers=auth_headers(admin.id)).get_json()['data']
    row = next(p for p in data if p['id'] == partner.id)
    assert row['member_ids'] == [u.id]
    assert _fresh(B2BPartner, partner.id).name == 'Members Co'
