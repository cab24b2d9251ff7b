from flask import Blueprint, request, abort
from repairdesk.constants.permissions import PermissionKey
from repairdesk.decorators.auth import require_partner_role, require_permissions, require_signed_in
from repairdesk.services import partners as partner_admin
from repairdesk.services.session import current_access

b2b_bp = Blueprint('b2b', __name__)


@b2b_bp.get('/me')
@require_partner_role
def b2b_me():
    return current_access().b2b.snapshot().to_json()


@b2b_bp.post('/me/refetch')
@require_partner_role
def b2b_refetch():
    return current_access().b2b.refetch().to_json()


@b2b_bp.post('/register')
@require_signed_in
def register():
    data = request.json or {}
    return partner_admin.register_partner(current_access(), data), 201


@b2b_bp.get('/partners')
@require_permissions(PermissionKey.MANAGE_B2B_PARTNERS)
def list_partners():
    active_raw = request.args.get('active')
    active = None
    if active_raw is not None:
        if active_raw.lower() not in ('true', 'false'):
            abort(400, description='active must be true or false')
        active = active_raw.lower() == 'true'
    return {'data': partner_admin.list_partners(current_access(), active=active)}


@b2b_bp.put('/partners/<int:partner_id>')
@require_permissions(PermissionKey.MANAGE_B2B_PARTNERS)
def update_partner(partner_id: int):
    return partner_admin.update_partner(current_access(), partner_id, request.json or {})


@b2b_bp.post('/partners/<int:partner_id>/activate')
@require_permissions(PermissionKey.MANAGE_B2B_PARTNERS)
def activate_partner(partner_id: int):
    return partner_admin.set_partner_active(current_access(), partner_id, True)


@b2b_bp.post('/partners/<int:partner_id>/deactivate')
@require_permissions(PermissionKey.MANAGE_B2B_PARTNERS)
def deactivate_partner(partner_id: int):
    return partner_admin.set_partner_active(current_access(), partner_id, False)


@b2b_bp.put('/users/<int:user_id>/partner')
@require_permissions(PermissionKey.MANAGE_B2B_PARTNERS)
def assign_partner(user_id: int):
    data = request.json or {}
    if 'partner_id' not in data:
        abort(400, description='partner_id required (null to unassign)')
    partner_id = data['partner_id']
    if partner_id is not None and not isinstance(partner_id, int):
        abort(400, description='partner_id must be int or null')
    return partner_admin.assign_user_to_partner(current_access(), user_id, partner_id)
