"""Administration of the role-permission matrix.

The top role never appears as an editable column: its permissions are implicit
in the evaluator, so its cells are shown granted and locked, and toggling them
is refused before storage is touched (the storage layer refuses again).
"""
from __future__ import annotations
import hashlib
import logging
from typing import Any, Dict, List, Optional

from flask import abort
from sqlalchemy.exc import SQLAlchemyError

from repairdesk import signals
from repairdesk.constants.permissions import CATEGORY_LABELS, PermissionKey, UnknownPermission, decode_permission_key
from repairdesk.constants.roles import ROLES_TO_DISPLAY, ROLE_LABELS, TOP_ROLE, UnknownRole, decode_role
from repairdesk.errors import AdminActionRejected, NotAuthenticated, PermissionUpdateFailed
from repairdesk.services.audit import add_audit
from repairdesk.services.store import StoreError

logger = logging.getLogger('repairdesk.permission_admin')


def matrix_digest(grants) -> str:
    seed = '|'.join(sorted(f'{role.value}:{key}' for role, key in grants))
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_matrix_view(store) -> Dict[str, Any]:
    """Catalog grouped by category with one cell per displayable role.

    Raises StoreError when either read fails; callers decide how to degrade.
    """
    catalog = store.fetch_catalog()
    grants = store.fetch_matrix()
    categories: Dict[str, List[Dict[str, Any]]] = {}
    for entry in catalog:
        cells = {
            role.value: role is TOP_ROLE or (role, entry.key) in grants
            for role in ROLES_TO_DISPLAY
        }
        categories.setdefault(entry.category or 'general', []).append({
            'key': entry.key,
            'description': entry.description,
            'grants': cells,
        })
    return {
        'roles': [
            {'role': role.value, 'label': ROLE_LABELS[role], 'locked': role is TOP_ROLE}
            for role in ROLES_TO_DISPLAY
        ],
        'categories': [
            {'category': cat, 'label': CATEGORY_LABELS.get(cat, cat), 'permissions': perms}
            for cat, perms in categories.items()
        ],
        'digest': matrix_digest(grants),
    }


def toggle_permission(access, role, permission_key, version=None) -> Dict[str, Any]:
    """Flip one (role, permission_key) cell and broadcast the new matrix version.

    Strict toggle: an existing row is deleted, a missing one inserted.
    """
    if access is None or access.principal is None:
        raise NotAuthenticated()
    if not access.can(PermissionKey.MANAGE_PERMISSIONS):
        raise AdminActionRejected('Managing permissions requires the MANAGE_PERMISSIONS permission.')
    try:
        role = decode_role(role)
    except UnknownRole as e:
        abort(400, description=str(e))
    if role is TOP_ROLE:
        raise AdminActionRejected(f'{ROLE_LABELS[TOP_ROLE]} permissions are fixed and cannot be changed.')
    try:
        key = decode_permission_key(permission_key)
    except UnknownPermission as e:
        abort(400, description=str(e))

    store = access.store
    session = store.session
    try:
        if store.has_grant(role, key.value):
            store.remove_grant(role, key.value)
            granted = False
        else:
            store.add_grant(role, key.value)
            granted = True
        add_audit('ROLE.PERM.TOGGLE', 'RolePermission', f'{role.value}:{key.value}',
                  {'role': role.value, 'permission_key': key.value, 'granted': granted}, access=access)
        session.commit()
    except (StoreError, SQLAlchemyError) as e:
        session.rollback()
        logger.error('Toggling %s/%s failed: %s', role.value, key.value, e)
        raise PermissionUpdateFailed()

    new_version: Optional[int] = version.bump() if version is not None else None
    logger.info('Permission %s %s for role %s by principal %s',
                key.value, 'granted' if granted else 'revoked', role.value, access.principal.id)
    signals.matrix_changed.send(None, role=role, permission_key=key.value, version=new_version)
    return {'role': role.value, 'permission_key': key.value, 'granted': granted, 'version': new_version}


__all__ = ['build_matrix_view', 'toggle_permission', 'matrix_digest']
