from __future__ import annotations
from typing import Any, Dict, Optional
from repairdesk import get_db
from repairdesk.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None, access=None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. ROLE.PERM.TOGGLE, USER.ROLES.SET, PARTNER.ACTIVATE
      entity: optional entity name (RolePermission, Profile, B2BPartner)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
      access: acting AccessSession; defaults to the one bound to the current context
    """
    session = get_db()
    if access is None:
        from flask import g, has_app_context
        access = g.get('access') if has_app_context() else None
    actor = access.principal.id if access is not None and access.principal is not None else 0
    roles = sorted(r.value for r in access.roles) if access is not None and access.principal is not None else []
    log = AuditLog(
        actor_user_id=actor,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        roles_snapshot={'roles': roles},
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
