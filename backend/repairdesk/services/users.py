from __future__ import annotations
import logging
from typing import Iterable, Set

from flask import abort
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from repairdesk import signals
from repairdesk.constants.permissions import PermissionKey
from repairdesk.constants.roles import AppRole, PARTNER_ROLES, TOP_ROLE, UnknownRole, decode_role
from repairdesk.errors import AdminActionRejected, NotAuthenticated
from repairdesk.models.authz import Profile, UserRole
from repairdesk.services.audit import add_audit
from repairdesk.services.store import StoreError

logger = logging.getLogger('repairdesk.users')


def _require_user_admin(access):
    if access is None or access.principal is None:
        raise NotAuthenticated()
    if not access.can(PermissionKey.MANAGE_USERS):
        raise AdminActionRejected('Managing users requires the MANAGE_USERS permission.')


def _get_profile(session, user_id: int) -> Profile:
    user = session.execute(select(Profile).where(Profile.id == user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    return user


def count_active_top_role_holders(session) -> int:
    rows = session.execute(
        select(UserRole.user_id).join(Profile, Profile.id == UserRole.user_id)
        .where(UserRole.role == TOP_ROLE.value, Profile.is_active.is_(True))
    ).scalars().all()
    return len(set(rows))


def _holds_top_role(session, user_id: int) -> bool:
    return session.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == TOP_ROLE.value)
    ).scalar_one_or_none() is not None


def assert_not_removing_last_admin(session, user_id: int, keeps_top_role: bool = False):
    """Ensure at least one active top-role holder remains after changing ``user_id``."""
    if keeps_top_role or not _holds_top_role(session, user_id):
        return
    if count_active_top_role_holders(session) <= 1:
        abort(400, description=f'Cannot remove the last active {TOP_ROLE.value}')


def _commit(session, action: str):
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('%s failed', action)
        abort(503, description='User update failed')


def decode_role_request(raw_roles: Iterable) -> Set[AppRole]:
    roles = set()
    for raw in raw_roles:
        try:
            roles.add(decode_role(raw))
        except UnknownRole as e:
            abort(400, description=str(e))
    if len(roles & PARTNER_ROLES) > 1:
        abort(400, description='A user can hold at most one partner role')
    return roles


def set_user_roles(access, user_id: int, raw_roles: Iterable) -> dict:
    _require_user_admin(access)
    roles = decode_role_request(raw_roles)
    store = access.store
    session = store.session
    user = _get_profile(session, user_id)
    assert_not_removing_last_admin(session, user.id, keeps_top_role=TOP_ROLE in roles)
    try:
        store.replace_roles(user.id, roles)
    except StoreError as e:
        session.rollback()
        logger.error('Replacing roles for user %s failed: %s', user.id, e)
        abort(503, description='User update failed')
    add_audit('USER.ROLES.SET', 'Profile', user.id, {'roles': sorted(r.value for r in roles)}, access=access)
    _commit(session, 'USER.ROLES.SET')
    signals.roles_changed.send(None, user_id=user.id)
    return {'user_id': user.id, 'roles': sorted(r.value for r in roles)}


def set_user_active(access, user_id: int, active: bool) -> dict:
    _require_user_admin(access)
    session = access.store.session
    user = _get_profile(session, user_id)
    if not active:
        if user.id == access.principal.id:
            raise AdminActionRejected('You cannot deactivate your own account.')
        assert_not_removing_last_admin(session, user.id)
    user.is_active = active
    add_audit('USER.ACTIVATE' if active else 'USER.DEACTIVATE', 'Profile', user.id, {'email': user.email}, access=access)
    _commit(session, 'USER.ACTIVE.SET')
    signals.roles_changed.send(None, user_id=user.id)
    return {'id': user.id, 'is_active': user.is_active}


def purge_user(access, user_id: int, confirm_email: str) -> dict:
    """Hard-delete a principal. Role assignments go with it."""
    _require_user_admin(access)
    session = access.store.session
    user = _get_profile(session, user_id)
    if (confirm_email or '').strip().lower() != user.email.strip().lower():
        abort(400, description='Confirmation email does not match')
    if user.id == access.principal.id:
        raise AdminActionRejected('You cannot delete your own account.')
    assert_not_removing_last_admin(session, user.id)
    email = user.email
    session.delete(user)
    add_audit('USER.PURGE', 'Profile', user_id, {'email': email}, access=access)
    _commit(session, 'USER.PURGE')
    signals.roles_changed.send(None, user_id=user_id)
    return {'status': 'deleted', 'id': user_id}


__all__ = [
    'set_user_roles', 'set_user_active', 'purge_user', 'assert_not_removing_last_admin',
    'count_active_top_role_holders', 'decode_role_request',
]
