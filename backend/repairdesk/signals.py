"""Invalidation signals for access snapshots.

matrix_changed: the role-permission matrix was edited (kwargs: role, permission_key, version)
roles_changed: a principal's role set changed (kwargs: user_id)
partner_changed: a principal's partner affiliation or a partner record changed
    (kwargs: user_id and/or partner_id)
"""
from blinker import Namespace

_signals = Namespace()

matrix_changed = _signals.signal('matrix-changed')
roles_changed = _signals.signal('roles-changed')
partner_changed = _signals.signal('partner-changed')
