"""Route/action guard.

Combines authentication state with the permission evaluator and resolves a
navigation attempt to exactly one of four states:

    PENDING          auth or permission data still loading
    UNAUTHENTICATED  no principal once loading finished
    UNAUTHORIZED     principal present, declared check failed
    AUTHORIZED       principal present, declared check passed

PENDING is the entry state. The three outcomes are terminal for one attempt
and only lead back to PENDING (fresh navigation or role/matrix change).
Protected content is never produced while PENDING.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from repairdesk.constants.permissions import PermissionKey
from repairdesk.utils.fsm import TransitionValidator


class GuardState(str, Enum):
    PENDING = 'PENDING'
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    UNAUTHORIZED = 'UNAUTHORIZED'
    AUTHORIZED = 'AUTHORIZED'


class Combinator(str, Enum):
    ANY = 'ANY'
    ALL = 'ALL'


GUARD_FSM = TransitionValidator({
    GuardState.PENDING: {GuardState.PENDING, GuardState.UNAUTHENTICATED, GuardState.UNAUTHORIZED, GuardState.AUTHORIZED},
    GuardState.UNAUTHENTICATED: {GuardState.PENDING},
    GuardState.UNAUTHORIZED: {GuardState.PENDING},
    GuardState.AUTHORIZED: {GuardState.PENDING},
}, field_name='guard state')


def _normalize(key) -> str:
    return key.value if isinstance(key, PermissionKey) else str(key)


@dataclass(frozen=True)
class GuardRequirement:
    permissions: Tuple[str, ...] = ()
    combinator: Combinator = Combinator.ANY

    @classmethod
    def of(cls, *permissions, require_all: bool = False) -> 'GuardRequirement':
        return cls(tuple(_normalize(p) for p in permissions), Combinator.ALL if require_all else Combinator.ANY)

    def check(self, evaluator) -> bool:
        # no declared permission: any signed-in principal passes
        if not self.permissions:
            return True
        if self.combinator is Combinator.ALL:
            return evaluator.can_all(self.permissions)
        return evaluator.can_any(self.permissions)


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    view: Any = None
    requirement: GuardRequirement = field(default_factory=GuardRequirement)

    @property
    def allowed(self) -> bool:
        return self.state is GuardState.AUTHORIZED


def loading_view() -> Dict[str, Any]:
    return {'kind': 'loading'}


def not_signed_in_view(login_url: str = '/auth') -> Dict[str, Any]:
    return {
        'kind': 'unauthenticated',
        'title': 'Not signed in',
        'detail': 'You must be signed in to access this page.',
        'action': {'label': 'Go to sign in', 'href': login_url},
    }


def access_denied_view(back: str = 'back') -> Dict[str, Any]:
    return {
        'kind': 'unauthorized',
        'title': 'No access',
        'detail': 'You do not have permission to view this page.',
        'action': {'label': 'Back', 'href': back},
    }


def resolve_state(auth_loading: bool, principal, permissions_loading: bool, evaluator, requirement: GuardRequirement) -> GuardState:
    if auth_loading or permissions_loading:
        return GuardState.PENDING
    if principal is None:
        return GuardState.UNAUTHENTICATED
    if not getattr(evaluator, 'loaded', True):
        return GuardState.PENDING
    return GuardState.AUTHORIZED if requirement.check(evaluator) else GuardState.UNAUTHORIZED


class RouteGuard:
    """Stateful guard for one protected capability.

    ``evaluate`` re-enters PENDING and resolves from there each time it is
    called, so a role or matrix change is picked up on the next attempt.
    """

    def __init__(self, *permissions, require_all: bool = False, login_url: str = '/auth'):
        self.requirement = GuardRequirement.of(*permissions, require_all=require_all)
        self.login_url = login_url
        self.state = GuardState.PENDING

    def _move(self, target: GuardState):
        GUARD_FSM.assert_can_transition(self.state, target)
        self.state = target

    def reset(self):
        if self.state is not GuardState.PENDING:
            self._move(GuardState.PENDING)

    def evaluate(self, access) -> GuardState:
        self.reset()
        evaluator = access.evaluator  # may reload a stale snapshot first
        target = resolve_state(access.auth_loading, access.principal, access.permissions_loading, evaluator, self.requirement)
        if target is not GuardState.PENDING:
            self._move(target)
        return self.state

    def render(self, access, children, fallback=None) -> GuardDecision:
        state = self.evaluate(access)
        if state is GuardState.PENDING:
            view = loading_view()
        elif state is GuardState.UNAUTHENTICATED:
            view = fallback if fallback is not None else not_signed_in_view(self.login_url)
        elif state is GuardState.UNAUTHORIZED:
            view = fallback if fallback is not None else access_denied_view()
        else:
            view = children
        return GuardDecision(state, view, self.requirement)


def check_access(access, *permissions, require_all: bool = False, login_url: str = '/auth') -> GuardDecision:
    return RouteGuard(*permissions, require_all=require_all, login_url=login_url).render(access, children=None)


__all__ = [
    'GuardState', 'Combinator', 'GuardRequirement', 'GuardDecision', 'RouteGuard', 'GUARD_FSM',
    'resolve_state', 'check_access', 'loading_view', 'not_signed_in_view', 'access_denied_view',
]
