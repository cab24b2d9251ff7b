"""B2B identity: partner-scoped roles, capability flags and the partner record.

Runs alongside the internal evaluator on the same role set but only looks at
the partner namespace (owner > admin > user). The partner record is fetched
lazily, cached per affiliation id and can be refetched on demand. A failed or
empty fetch resolves to "no partner"; it never raises into the caller.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional

from repairdesk.constants.roles import AppRole, INTERNAL_ROLES, PARTNER_ROLES, highest_partner_role
from repairdesk.services.store import AccessStore, PartnerRecord, StoreError

logger = logging.getLogger('repairdesk.b2b')


@dataclass(frozen=True)
class B2BIdentity:
    is_partner_user: bool
    is_partner_owner: bool
    is_partner_admin_or_above: bool
    is_internal_user: bool
    resolved_role: Optional[AppRole]
    partner_id: Optional[int]
    partner: Optional[PartnerRecord]

    # capability flags, each an alias of a hierarchy check
    @property
    def can_manage_partner_users(self) -> bool:
        return self.is_partner_owner

    @property
    def can_manage_prices(self) -> bool:
        return self.is_partner_admin_or_above

    @property
    def can_release_endcustomer_price(self) -> bool:
        return self.is_partner_admin_or_above

    @property
    def can_manage_document_templates(self) -> bool:
        return self.is_partner_owner

    @property
    def partner_active(self) -> bool:
        return self.partner is not None and self.partner.is_active

    def to_json(self) -> Dict[str, Any]:
        return {
            'is_partner_user': self.is_partner_user,
            'is_partner_owner': self.is_partner_owner,
            'is_partner_admin_or_above': self.is_partner_admin_or_above,
            'is_internal_user': self.is_internal_user,
            'resolved_role': self.resolved_role.value if self.resolved_role else None,
            'partner_id': self.partner_id,
            'partner': self.partner.to_json() if self.partner else None,
            'partner_active': self.partner_active,
            'capabilities': {
                'manage_partner_users': self.can_manage_partner_users,
                'manage_prices': self.can_manage_prices,
                'release_endcustomer_price': self.can_release_endcustomer_price,
                'manage_document_templates': self.can_manage_document_templates,
            },
        }


class B2BIdentityResolver:
    def __init__(self, store: AccessStore, roles: Iterable[AppRole], partner_id: Optional[int]):
        self.store = store
        self.roles: FrozenSet[AppRole] = frozenset(roles)
        self.partner_id = partner_id
        self._partner: Optional[PartnerRecord] = None
        self._fetched_for: Optional[int] = None
        # true only while fetch_partner is in flight
        self.partner_loading = False

    @property
    def resolved_role(self) -> Optional[AppRole]:
        return highest_partner_role(self.roles)

    @property
    def is_partner_user(self) -> bool:
        return bool(self.roles & PARTNER_ROLES)

    @property
    def should_fetch_partner(self) -> bool:
        return self.partner_id is not None and self.is_partner_user

    def invalidate(self):
        self._partner = None
        self._fetched_for = None

    def refetch(self) -> B2BIdentity:
        self.invalidate()
        return self.snapshot()

    def _load_partner(self) -> Optional[PartnerRecord]:
        if not self.should_fetch_partner:
            return None
        if self._fetched_for == self.partner_id:
            return self._partner
        requested = self.partner_id
        self.partner_loading = True
        try:
            partner = self.store.fetch_partner(requested)
        except StoreError as e:
            logger.warning('Partner fetch failed for partner %s: %s', requested, e)
            partner = None
        finally:
            self.partner_loading = False
        if partner is None:
            logger.info('No partner record for affiliation %s', requested)
        if requested != self.partner_id:
            # affiliation moved while fetching
            return None
        self._partner = partner
        self._fetched_for = requested
        return partner

    def snapshot(self) -> B2BIdentity:
        role = self.resolved_role
        partner = self._load_partner()
        return B2BIdentity(
            is_partner_user=role is not None,
            is_partner_owner=role is AppRole.PARTNER_OWNER,
            is_partner_admin_or_above=role in (AppRole.PARTNER_OWNER, AppRole.PARTNER_ADMIN),
            is_internal_user=bool(self.roles & INTERNAL_ROLES),
            resolved_role=role,
            partner_id=self.partner_id,
            partner=partner,
        )


__all__ = ['B2BIdentity', 'B2BIdentityResolver']
