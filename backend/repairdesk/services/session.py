"""Per-principal access context.

An ``AccessSession`` is the identity object handed to guards and services. It
is created once per application context (see ``current_access``), owns the
loaded principal, its evaluator snapshot and its B2B resolver, and is disposed
on teardown or sign-out.

Loading is tracked separately from results: ``auth_loading`` and
``permissions_loading`` stay true until a fetch completes, so "still loading"
is never confused with "not permitted". Every fetch is tagged with the
generation it started in; results landing after a newer fetch started, or
after the session was disposed, are dropped.
"""
from __future__ import annotations
import logging
from typing import Dict, FrozenSet, Optional, Tuple

from repairdesk import signals
from repairdesk.constants.roles import AppRole
from repairdesk.services.evaluator import PermissionEvaluator
from repairdesk.services.store import AccessStore, Principal, StoreError

logger = logging.getLogger('repairdesk.access')


class AccessSession:
    def __init__(self, store: AccessStore, principal_id: Optional[int], matrix_version=None):
        self.store = store
        self.principal_id = principal_id
        self.principal: Optional[Principal] = None
        self.auth_loading = principal_id is not None
        self.permissions_loading = principal_id is not None
        self._matrix_version = matrix_version
        self._evaluator = PermissionEvaluator.pending()
        self._memo: Dict[Tuple[FrozenSet[AppRole], int], PermissionEvaluator] = {}
        self._generation = 0
        self._stale = False
        self._principal_stale = False
        self._matrix_stale = False
        self._disposed = False
        self._b2b = None
        signals.matrix_changed.connect(self._on_matrix_changed)
        signals.roles_changed.connect(self._on_roles_changed)
        signals.partner_changed.connect(self._on_partner_changed)

    # --- lifecycle ---
    def load(self) -> 'AccessSession':
        if self.principal_id is None or self._disposed:
            self.auth_loading = False
            self.permissions_loading = False
            return self
        self._load_principal()
        if self.principal is not None:
            self.refresh()
        else:
            self.permissions_loading = False
        return self

    def refresh(self):
        """Refetch roles and matrix rows as one snapshot."""
        if self._disposed or self.principal is None:
            return
        self._generation += 1
        generation = self._generation
        principal_id = self.principal.id
        self.permissions_loading = True
        if self._matrix_stale:
            # matrix rows changed under an unchanged version (no shared counter)
            self._matrix_stale = False
            self._memo.clear()
        version = self._current_matrix_version()
        try:
            roles = self.store.fetch_roles(principal_id)
        except StoreError as e:
            logger.warning('Role fetch failed for principal %s: %s', principal_id, e)
            roles = frozenset()
        evaluator = self._memo.get((roles, version))
        if evaluator is None:
            try:
                grants = self.store.fetch_grants(roles)
            except StoreError as e:
                logger.warning('Permission matrix fetch failed for principal %s: %s', principal_id, e)
                roles, grants = frozenset(), frozenset()
            evaluator = PermissionEvaluator(roles, grants, loaded=True, matrix_version=version)
        if self._disposed or generation != self._generation:
            logger.debug('Discarding stale permission snapshot for principal %s', self.principal_id)
            return
        self._memo[evaluator.version_key] = evaluator
        self._evaluator = evaluator
        self._stale = False
        self.permissions_loading = False

    def sign_out(self):
        self.dispose()

    def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        signals.matrix_changed.disconnect(self._on_matrix_changed)
        signals.roles_changed.disconnect(self._on_roles_changed)
        signals.partner_changed.disconnect(self._on_partner_changed)
        self.principal = None
        self._evaluator = PermissionEvaluator.pending()
        self._memo.clear()
        self._b2b = None
        self.auth_loading = False
        self.permissions_loading = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    # --- read side ---
    @property
    def is_authenticated(self) -> bool:
        self._settle()
        return self.principal is not None

    @property
    def evaluator(self) -> PermissionEvaluator:
        self._settle()
        return self._evaluator

    def _settle(self):
        """Apply pending invalidations before anything reads the snapshot."""
        if self._principal_stale and not self._disposed:
            self._principal_stale = False
            self._load_principal()
            if self.principal is None:
                self._evaluator = PermissionEvaluator.pending()
                self.permissions_loading = False
                self._stale = False
        if self._stale and not self._disposed:
            self.refresh()

    @property
    def roles(self) -> FrozenSet[AppRole]:
        return self.evaluator.roles

    def can(self, key) -> bool:
        return self.evaluator.can(key)

    def can_any(self, keys) -> bool:
        return self.evaluator.can_any(keys)

    def can_all(self, keys) -> bool:
        return self.evaluator.can_all(keys)

    @property
    def b2b(self):
        from repairdesk.services.b2b import B2BIdentityResolver
        roles = self.roles
        if self._b2b is None:
            partner_id = self.principal.b2b_partner_id if self.principal else None
            self._b2b = B2BIdentityResolver(self.store, roles, partner_id)
        return self._b2b

    # --- internals ---
    def _load_principal(self):
        self._generation += 1
        generation = self._generation
        self.auth_loading = True
        try:
            principal = self.store.fetch_principal(self.principal_id)
        except StoreError as e:
            logger.warning('Principal fetch failed for %s: %s', self.principal_id, e)
            principal = None
        if self._disposed or generation != self._generation:
            return
        if principal is not None and not principal.is_active:
            logger.info('Principal %s is deactivated', principal.id)
            principal = None
        self.principal = principal
        self.auth_loading = False

    def _current_matrix_version(self) -> int:
        return self._matrix_version.value if self._matrix_version is not None else 0

    def _on_matrix_changed(self, sender, **kwargs):
        self._stale = True
        self._matrix_stale = True
        self._b2b = None

    def _on_roles_changed(self, sender, user_id=None, **kwargs):
        if user_id is None or user_id == self.principal_id:
            self._stale = True
            self._b2b = None
        if user_id is not None and user_id == self.principal_id:
            # activation and deletion travel on this signal too
            self._principal_stale = True

    def _on_partner_changed(self, sender, user_id=None, partner_id=None, **kwargs):
        if user_id is not None and user_id == self.principal_id:
            # affiliation moved: the principal row itself must be reread
            self._principal_stale = True
            self._stale = True
            self._b2b = None
        elif self._b2b is not None and partner_id is not None and self._b2b.partner_id == partner_id:
            self._b2b.invalidate()


def current_access() -> AccessSession:
    """Return the access session bound to the current application context, creating it on first use."""
    from flask import g
    from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
    from repairdesk import matrix_version

    access = g.get('access')
    if access is None:
        verify_jwt_in_request(optional=True)
        identity = get_jwt_identity()
        principal_id = None
        if identity is not None:
            try:
                principal_id = int(identity)
            except (TypeError, ValueError):
                logger.warning('Ignoring malformed token identity %r', identity)
        access = AccessSession(AccessStore(), principal_id, matrix_version()).load()
        g.access = access
    return access


__all__ = ['AccessSession', 'current_access']
