"""Permission evaluation.

``PermissionEvaluator`` is an immutable snapshot of one principal's role set
and the matrix rows for those roles. It answers ``can`` / ``can_any`` /
``can_all`` and is the only place that knows about the top-role override.

Fail-closed contract:
  * a snapshot that has not finished loading grants nothing
  * an empty role set grants nothing (``can_all([])`` included)
  * unknown keys, or values that are not keys at all, are simply not granted
"""
from __future__ import annotations
from typing import FrozenSet, Iterable, Optional, Tuple

from repairdesk.constants.permissions import PermissionKey
from repairdesk.constants.roles import AppRole, TOP_ROLE


def _key_value(key) -> Optional[str]:
    if isinstance(key, PermissionKey):
        return key.value
    if isinstance(key, str):
        return key
    return None


class PermissionEvaluator:
    __slots__ = ('roles', 'granted', 'loaded', 'matrix_version')

    def __init__(
        self,
        roles: Iterable[AppRole] = (),
        grants: Iterable[Tuple[AppRole, str]] = (),
        loaded: bool = True,
        matrix_version: int = 0,
    ):
        self.roles: FrozenSet[AppRole] = frozenset(roles)
        # only rows whose role the principal actually holds count
        self.granted: FrozenSet[str] = frozenset(key for role, key in grants if role in self.roles)
        self.loaded = loaded
        self.matrix_version = matrix_version

    @classmethod
    def pending(cls) -> 'PermissionEvaluator':
        return cls(loaded=False)

    @property
    def version_key(self) -> Tuple[FrozenSet[AppRole], int]:
        return self.roles, self.matrix_version

    @property
    def is_top_role(self) -> bool:
        return self.loaded and TOP_ROLE in self.roles

    def _active(self) -> bool:
        return self.loaded and bool(self.roles)

    def can(self, key) -> bool:
        if not self._active():
            return False
        if TOP_ROLE in self.roles:
            return True
        value = _key_value(key)
        return value is not None and value in self.granted

    def can_any(self, keys: Iterable) -> bool:
        if not self._active():
            return False
        return any(self.can(k) for k in keys)

    def can_all(self, keys: Iterable) -> bool:
        if not self._active():
            return False
        return all(self.can(k) for k in keys)

    def effective_permissions(self, catalog_keys: Iterable[str]) -> list:
        """Sorted list of catalog keys this snapshot grants (top role expands to the whole catalog)."""
        return sorted(k for k in catalog_keys if self.can(k))

    def __repr__(self):
        roles = ','.join(sorted(r.value for r in self.roles))
        return f'<PermissionEvaluator roles=[{roles}] granted={len(self.granted)} loaded={self.loaded} v={self.matrix_version}>'


__all__ = ['PermissionEvaluator']
