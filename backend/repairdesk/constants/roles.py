"""Closed role set. Storage exchanges plain strings; decode them here only."""
from __future__ import annotations
import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger('repairdesk.roles')


class AppRole(str, Enum):
    # Internal staff
    ADMIN = 'ADMIN'
    COUNTER = 'COUNTER'
    TECHNICIAN = 'TECHNICIAN'
    ACCOUNTING = 'ACCOUNTING'
    BRANCH_MANAGER = 'BRANCH_MANAGER'
    # B2B partner, highest first
    PARTNER_OWNER = 'PARTNER_OWNER'
    PARTNER_ADMIN = 'PARTNER_ADMIN'
    PARTNER_USER = 'PARTNER_USER'


TOP_ROLE = AppRole.ADMIN

INTERNAL_ROLES: FrozenSet[AppRole] = frozenset({
    AppRole.ADMIN, AppRole.COUNTER, AppRole.TECHNICIAN, AppRole.ACCOUNTING, AppRole.BRANCH_MANAGER,
})

# Ranked highest to lowest
PARTNER_ROLE_RANK: List[AppRole] = [AppRole.PARTNER_OWNER, AppRole.PARTNER_ADMIN, AppRole.PARTNER_USER]
PARTNER_ROLES: FrozenSet[AppRole] = frozenset(PARTNER_ROLE_RANK)

# Columns of the permission matrix
ROLES_TO_DISPLAY: List[AppRole] = [
    AppRole.ADMIN, AppRole.COUNTER, AppRole.TECHNICIAN, AppRole.ACCOUNTING, AppRole.BRANCH_MANAGER,
]

ROLE_LABELS: Dict[AppRole, str] = {
    AppRole.ADMIN: 'Administrator',
    AppRole.COUNTER: 'Counter',
    AppRole.TECHNICIAN: 'Technician',
    AppRole.ACCOUNTING: 'Accounting',
    AppRole.BRANCH_MANAGER: 'Branch Manager',
    AppRole.PARTNER_OWNER: 'Partner Owner',
    AppRole.PARTNER_ADMIN: 'Partner Administrator',
    AppRole.PARTNER_USER: 'Partner User',
}


class UnknownRole(ValueError):
    pass


def decode_role(raw) -> AppRole:
    if isinstance(raw, AppRole):
        return raw
    try:
        return AppRole(str(raw).strip().upper())
    except ValueError:
        raise UnknownRole(f'Unknown role: {raw!r}') from None


def decode_roles(raw_values: Iterable) -> FrozenSet[AppRole]:
    """Decode stored role strings; unknown values are dropped (never granted)."""
    out = set()
    for raw in raw_values:
        try:
            out.add(decode_role(raw))
        except UnknownRole:
            logger.warning('Ignoring unknown role value %r', raw)
    return frozenset(out)


def highest_partner_role(roles: Iterable[AppRole]) -> Optional[AppRole]:
    held = set(roles)
    for role in PARTNER_ROLE_RANK:
        if role in held:
            return role
    return None


__all__ = [
    'AppRole', 'TOP_ROLE', 'INTERNAL_ROLES', 'PARTNER_ROLES', 'PARTNER_ROLE_RANK', 'ROLES_TO_DISPLAY',
    'ROLE_LABELS', 'UnknownRole', 'decode_role', 'decode_roles', 'highest_partner_role',
]
