from repairdesk.errors import AccessDenied, NoPartnerAccess, NotAuthenticated, PermissionUpdateFailed
from tests.test_utils_seed import seed_admin


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert 'error' in body
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_internal_error_shape(client, auth_headers, monkeypatch):
    admin = seed_admin()
    import repairdesk.routes.iam as iam_mod

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')
    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/audit/logs', headers=auth_headers(admin.id))
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'
    assert body['error']['detail'] == 'Unexpected error'


def test_access_errors_carry_navigation_hints():
    assert NotAuthenticated(extra={'login': '/auth'}).extra == {'login': '/auth'}
    assert AccessDenied().extra == {}
    assert NoPartnerAccess('pending').description == 'pending'
    assert PermissionUpdateFailed().code == 503


def test_invalid_token_is_rejected(client):
    resp = client.get('/iam/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert resp.status_code in (401, 422)
