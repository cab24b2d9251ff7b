"""B2B partner administration.

Self-registration creates an inactive partner owned by the registering
principal; internal staff with MANAGE_B2B_PARTNERS approve, edit and staff it.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from flask import abort
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from repairdesk import signals
from repairdesk.constants.permissions import PermissionKey
from repairdesk.constants.roles import AppRole, PARTNER_ROLES, decode_roles
from repairdesk.errors import AdminActionRejected, NotAuthenticated
from repairdesk.models.authz import B2BPartner, Profile, UserRole
from repairdesk.services.audit import add_audit

logger = logging.getLogger('repairdesk.partners')

EDITABLE_FIELDS = ('name', 'customer_number', 'street', 'zip', 'city', 'country', 'contact_email', 'default_return_address')


def partner_json(p: B2BPartner) -> Dict[str, Any]:
    return {
        'id': p.id,
        'name': p.name,
        'customer_number': p.customer_number,
        'street': p.street,
        'zip': p.zip,
        'city': p.city,
        'country': p.country,
        'contact_email': p.contact_email,
        'default_return_address': p.default_return_address or {},
        'is_active': bool(p.is_active),
        'member_ids': sorted(m.id for m in p.members),
    }


def _require_partner_admin(access):
    if access is None or access.principal is None:
        raise NotAuthenticated()
    if not access.can(PermissionKey.MANAGE_B2B_PARTNERS):
        raise AdminActionRejected('Managing partners requires the MANAGE_B2B_PARTNERS permission.')


def _get_partner(session, partner_id: int) -> B2BPartner:
    p = session.execute(select(B2BPartner).where(B2BPartner.id == partner_id)).scalar_one_or_none()
    if not p:
        abort(404)
    return p


def _clean_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate every editable field in ``data``; nothing is applied until all pass."""
    cleaned: Dict[str, Any] = {}
    if 'name' in data:
        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            abort(400, description='name cannot be empty')
        cleaned['name'] = name.strip()
    for field in EDITABLE_FIELDS[1:]:
        if field not in data:
            continue
        value = data[field]
        if field == 'default_return_address':
            if value is not None and not isinstance(value, dict):
                abort(400, description='default_return_address must be object')
        elif value is not None and not isinstance(value, str):
            abort(400, description=f'{field} must be string')
        cleaned[field] = value
    return cleaned


def _apply_fields(partner: B2BPartner, data: Dict[str, Any]):
    for field, value in _clean_fields(data).items():
        setattr(partner, field, value)


def _commit(session, action: str):
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('%s failed', action)
        abort(503, description='Partner update failed')


def register_partner(access, data: Dict[str, Any]) -> Dict[str, Any]:
    """Create an inactive partner and make the caller its owner."""
    if access is None or access.principal is None:
        raise NotAuthenticated()
    principal = access.principal
    if principal.b2b_partner_id is not None or access.roles & PARTNER_ROLES:
        abort(400, description='Already affiliated with a partner')
    if 'name' not in data:
        abort(400, description='name required')
    fields = _clean_fields(data)
    session = access.store.session
    partner = B2BPartner(is_active=False, **fields)
    session.add(partner)
    session.flush()
    profile = session.execute(select(Profile).where(Profile.id == principal.id)).scalar_one()
    profile.b2b_partner_id = partner.id
    session.add(UserRole(user_id=principal.id, role=AppRole.PARTNER_OWNER.value))
    add_audit('PARTNER.REGISTER', 'B2BPartner', partner.id, {'name': partner.name}, access=access)
    _commit(session, 'PARTNER.REGISTER')
    logger.info('Partner %s registered by principal %s, awaiting approval', partner.id, principal.id)
    signals.partner_changed.send(None, user_id=principal.id, partner_id=partner.id)
    signals.roles_changed.send(None, user_id=principal.id)
    return partner_json(partner)


def list_partners(access, active: Optional[bool] = None) -> List[Dict[str, Any]]:
    _require_partner_admin(access)
    session = access.store.session
    q = select(B2BPartner).order_by(B2BPartner.name.asc(), B2BPartner.id.asc())
    if active is not None:
        q = q.where(B2BPartner.is_active.is_(active))
    return [partner_json(p) for p in session.execute(q).scalars().all()]


def update_partner(access, partner_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    _require_partner_admin(access)
    session = access.store.session
    partner = _get_partner(session, partner_id)
    _apply_fields(partner, data)
    add_audit('PARTNER.UPDATE', 'B2BPartner', partner.id,
              {k: data[k] for k in EDITABLE_FIELDS if k in data}, access=access)
    _commit(session, 'PARTNER.UPDATE')
    signals.partner_changed.send(None, partner_id=partner.id)
    return partner_json(partner)


def set_partner_active(access, partner_id: int, active: bool) -> Dict[str, Any]:
    _require_partner_admin(access)
    session = access.store.session
    partner = _get_partner(session, partner_id)
    partner.is_active = active
    add_audit('PARTNER.ACTIVATE' if active else 'PARTNER.DEACTIVATE', 'B2BPartner', partner.id,
              {'name': partner.name}, access=access)
    _commit(session, 'PARTNER.ACTIVE.SET')
    signals.partner_changed.send(None, partner_id=partner.id)
    return partner_json(partner)


def assign_user_to_partner(access, user_id: int, partner_id: Optional[int]) -> Dict[str, Any]:
    """Move a principal into (or out of, with ``partner_id=None``) a partner.

    A principal joining without any partner role is made a PARTNER_USER.
    """
    _require_partner_admin(access)
    session = access.store.session
    user = session.execute(select(Profile).where(Profile.id == user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    added_role = None
    if partner_id is not None:
        _get_partner(session, partner_id)
        held = decode_roles(session.execute(select(UserRole.role).where(UserRole.user_id == user.id)).scalars().all())
        if not held & PARTNER_ROLES:
            session.add(UserRole(user_id=user.id, role=AppRole.PARTNER_USER.value))
            added_role = AppRole.PARTNER_USER.value
    previous = user.b2b_partner_id
    user.b2b_partner_id = partner_id
    add_audit('USER.PARTNER.SET', 'Profile', user.id,
              {'partner_id': partner_id, 'previous_partner_id': previous, 'added_role': added_role}, access=access)
    _commit(session, 'USER.PARTNER.SET')
    signals.partner_changed.send(None, user_id=user.id, partner_id=partner_id)
    signals.roles_changed.send(None, user_id=user.id)
    return {'user_id': user.id, 'partner_id': partner_id, 'added_role': added_role}


__all__ = [
    'register_partner', 'list_partners', 'update_partner', 'set_partner_active',
    'assign_user_to_partner', 'partner_json',
]
