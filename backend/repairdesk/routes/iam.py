import logging

from flask import Blueprint, request, abort, current_app
from repairdesk import get_db, matrix_version
from repairdesk.constants.permissions import CATEGORY_LABELS, PermissionKey
from repairdesk.decorators.auth import require_permissions, require_signed_in
from repairdesk.models.audit import AuditLog
from repairdesk.services.guard import RouteGuard
from repairdesk.services.permission_admin import build_matrix_view, toggle_permission
from repairdesk.services.session import current_access
from repairdesk.services.store import StoreError
from repairdesk.services import users as user_admin
from repairdesk.utils.listing import apply_pagination, handle_conditional, make_cached_list_response, make_cached_response

logger = logging.getLogger('repairdesk.routes.iam')

iam_bp = Blueprint('iam', __name__)


@iam_bp.get('/auth/me')
@require_signed_in
def me():
    access = current_access()
    p = access.principal
    try:
        catalog_keys = [entry.key for entry in access.store.fetch_catalog()]
    except StoreError as e:
        logger.warning('Catalog fetch failed for principal %s: %s', p.id, e)
        catalog_keys = []
    return {
        'id': p.id,
        'name': p.name,
        'email': p.email,
        'default_location_id': p.default_location_id,
        'roles': sorted(r.value for r in access.roles),
        'perms': access.evaluator.effective_permissions(catalog_keys),
        'is_admin': access.evaluator.is_top_role,
        'b2b': access.b2b.snapshot().to_json(),
    }


@iam_bp.get('/access/check')
def access_check():
    """Report the guard decision for the caller; never fails on a denial."""
    keys = request.args.getlist('permission')
    mode = (request.args.get('mode') or 'any').lower()
    if mode not in ('any', 'all'):
        abort(400, description='mode must be any or all')
    guard = RouteGuard(*keys, require_all=mode == 'all', login_url=current_app.config['LOGIN_URL'])
    decision = guard.render(current_access(), children={'kind': 'content'})
    return {
        'state': decision.state.value,
        'allowed': decision.allowed,
        'view': decision.view,
        'requirement': {
            'permissions': list(decision.requirement.permissions),
            'mode': decision.requirement.combinator.value.lower(),
        },
    }


@iam_bp.get('/permissions')
@require_permissions(PermissionKey.MANAGE_PERMISSIONS)
def list_permissions():
    try:
        catalog = current_access().store.fetch_catalog()
    except StoreError as e:
        logger.warning('Catalog fetch failed: %s', e)
        catalog = []
    return {
        'data': [
            {
                'key': entry.key,
                'description': entry.description,
                'category': entry.category,
                'category_label': CATEGORY_LABELS.get(entry.category, entry.category),
            } for entry in catalog
        ]
    }


@iam_bp.route('/role-permissions', methods=['GET', 'HEAD'])
@require_permissions(PermissionKey.MANAGE_PERMISSIONS)
def role_permissions():
    try:
        view = build_matrix_view(current_access().store)
    except StoreError as e:
        logger.warning('Permission matrix fetch failed: %s', e)
        return {'roles': [], 'categories': [], 'digest': None, 'version': matrix_version().value, 'degraded': True}
    view['version'] = matrix_version().value
    cond = handle_conditional(view['digest'])
    if cond:
        return cond
    resp = make_cached_response(view, view['digest'])
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@iam_bp.post('/role-permissions/toggle')
@require_permissions(PermissionKey.MANAGE_PERMISSIONS)
def toggle_role_permission():
    data = request.json or {}
    role = data.get('role'); permission_key = data.get('permission_key')
    if not role or not permission_key:
        abort(400, description='role and permission_key required')
    return toggle_permission(current_access(), role, permission_key, version=matrix_version())


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions(PermissionKey.MANAGE_USERS)
def set_user_roles(user_id: int):
    data = request.json or {}
    roles = data.get('roles')
    if not isinstance(roles, list):
        abort(400, description='roles must be a list')
    return user_admin.set_user_roles(current_access(), user_id, roles)


@iam_bp.post('/users/<int:user_id>/deactivate')
@require_permissions(PermissionKey.MANAGE_USERS)
def deactivate_user(user_id: int):
    return user_admin.set_user_active(current_access(), user_id, False)


@iam_bp.post('/users/<int:user_id>/reactivate')
@require_permissions(PermissionKey.MANAGE_USERS)
def reactivate_user(user_id: int):
    return user_admin.set_user_active(current_access(), user_id, True)


@iam_bp.delete('/users/<int:user_id>')
@require_permissions(PermissionKey.MANAGE_USERS)
def purge_user(user_id: int):
    data = request.get_json(silent=True) or {}
    return user_admin.purge_user(current_access(), user_id, data.get('confirm_email') or '')


# --- Audit Log Listing ---
@iam_bp.get('/audit/logs')
@require_permissions(PermissionKey.MANAGE_SETTINGS)
def list_audit_logs():
    session = get_db()
    q = session.query(AuditLog)
    actor = request.args.get('actor_user_id')
    if actor:
        try:
            q = q.filter(AuditLog.actor_user_id == int(actor))
        except ValueError:
            abort(400, description='actor_user_id must be int')
    for field in ('action', 'entity', 'entity_id'):
        value = request.args.get(field)
        if value:
            q = q.filter(getattr(AuditLog, field) == value)
    paged_q, total, limit, offset = apply_pagination(q.order_by(AuditLog.id.desc()))
    rows = paged_q.all()
    data = [
        {
            'id': r.id,
            'actor_user_id': r.actor_user_id,
            'action': r.action,
            'entity': r.entity,
            'entity_id': r.entity_id,
            'roles': (r.roles_snapshot or {}).get('roles', []),
            'meta': r.meta,
            'created_at': r.created_at.isoformat() if r.created_at else None
        } for r in rows
    ]
    # newest record first, so its timestamp moves whenever a log is appended
    latest_ts = rows[0].created_at if rows else None
    resp, etag = make_cached_list_response(data, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    return resp
