"""Storage collaborator for the access-control core.

Every read the evaluator, guard and B2B resolver depend on goes through
``AccessStore``. It is the single place where stored role and permission
strings are decoded, and it turns driver errors into ``StoreError`` so callers
can collapse them to their fail-closed defaults.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError

from repairdesk.constants.permissions import CatalogEntry
from repairdesk.constants.roles import AppRole, decode_role, decode_roles, UnknownRole
from repairdesk.models.authz import Profile, UserRole, Permission, RolePermission, B2BPartner, StoragePolicyViolation

Grant = Tuple[AppRole, str]


class StoreError(Exception):
    """A read or write against the backing store failed."""


@dataclass(frozen=True)
class Principal:
    id: int
    name: str
    email: str
    is_active: bool
    default_location_id: Optional[int] = None
    b2b_partner_id: Optional[int] = None


@dataclass(frozen=True)
class PartnerRecord:
    id: int
    name: str
    customer_number: Optional[str]
    city: Optional[str]
    contact_email: Optional[str]
    default_return_address: Optional[Dict[str, Any]]
    is_active: bool

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'customer_number': self.customer_number,
            'city': self.city,
            'contact_email': self.contact_email,
            'default_return_address': self.default_return_address or {},
            'is_active': self.is_active,
        }


def principal_from_row(row: Profile) -> Principal:
    return Principal(
        id=row.id,
        name=row.name,
        email=row.email,
        is_active=bool(row.is_active),
        default_location_id=row.default_location_id,
        b2b_partner_id=row.b2b_partner_id,
    )


def partner_from_row(row: B2BPartner) -> PartnerRecord:
    return PartnerRecord(
        id=row.id,
        name=row.name,
        customer_number=row.customer_number,
        city=row.city,
        contact_email=row.contact_email,
        default_return_address=row.default_return_address,
        is_active=bool(row.is_active),
    )


class AccessStore:
    def __init__(self, session_factory: Optional[Callable[[], Any]] = None):
        if session_factory is None:
            from repairdesk import get_db
            session_factory = get_db
        self._session_factory = session_factory

    @property
    def session(self):
        return self._session_factory()

    # --- reads ---
    def fetch_principal(self, user_id: int) -> Optional[Principal]:
        try:
            row = self.session.execute(select(Profile).where(Profile.id == user_id)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f'principal fetch failed: {e}') from e
        return principal_from_row(row) if row else None

    def fetch_roles(self, user_id: int) -> FrozenSet[AppRole]:
        try:
            raw = self.session.execute(select(UserRole.role).where(UserRole.user_id == user_id)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f'role fetch failed: {e}') from e
        return decode_roles(raw)

    def fetch_grants(self, roles: Iterable[AppRole]) -> FrozenSet[Grant]:
        role_values = [r.value for r in roles]
        if not role_values:
            return frozenset()
        try:
            rows = self.session.execute(
                select(RolePermission.role, RolePermission.permission_key).where(RolePermission.role.in_(role_values))
            ).all()
        except SQLAlchemyError as e:
            raise StoreError(f'grant fetch failed: {e}') from e
        return self._decode_grants(rows)

    def fetch_matrix(self) -> FrozenSet[Grant]:
        try:
            rows = self.session.execute(select(RolePermission.role, RolePermission.permission_key)).all()
        except SQLAlchemyError as e:
            raise StoreError(f'matrix fetch failed: {e}') from e
        return self._decode_grants(rows)

    def fetch_catalog(self) -> List[CatalogEntry]:
        try:
            rows = self.session.execute(
                select(Permission).order_by(Permission.category.asc(), Permission.key.asc())
            ).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f'catalog fetch failed: {e}') from e
        return [CatalogEntry(p.key, p.description, p.category or 'general') for p in rows]

    def fetch_partner(self, partner_id: int) -> Optional[PartnerRecord]:
        try:
            row = self.session.execute(select(B2BPartner).where(B2BPartner.id == partner_id)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f'partner fetch failed: {e}') from e
        return partner_from_row(row) if row else None

    # --- matrix writes (no commit; caller owns the transaction) ---
    def has_grant(self, role: AppRole, permission_key: str) -> bool:
        try:
            row = self.session.execute(
                select(RolePermission.id).where(RolePermission.role == role.value, RolePermission.permission_key == permission_key)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f'grant lookup failed: {e}') from e
        return row is not None

    def add_grant(self, role: AppRole, permission_key: str):
        session = self.session
        try:
            session.add(RolePermission(role=role.value, permission_key=permission_key))
            session.flush()
        except (SQLAlchemyError, StoragePolicyViolation) as e:
            raise StoreError(f'grant insert failed: {e}') from e

    def remove_grant(self, role: AppRole, permission_key: str):
        session = self.session
        try:
            row = session.execute(
                select(RolePermission).where(RolePermission.role == role.value, RolePermission.permission_key == permission_key)
            ).scalar_one_or_none()
            if row is not None:
                session.delete(row)
                session.flush()
        except (SQLAlchemyError, StoragePolicyViolation) as e:
            raise StoreError(f'grant delete failed: {e}') from e

    def replace_roles(self, user_id: int, roles: Iterable[AppRole]):
        session = self.session
        try:
            session.execute(delete(UserRole).where(UserRole.user_id == user_id))
            for role in roles:
                session.add(UserRole(user_id=user_id, role=role.value))
            session.flush()
        except SQLAlchemyError as e:
            raise StoreError(f'role replace failed: {e}') from e

    @staticmethod
    def _decode_grants(rows) -> FrozenSet[Grant]:
        out = set()
        for role_raw, key in rows:
            try:
                out.add((decode_role(role_raw), key))
            except UnknownRole:
                continue
        return frozenset(out)


__all__ = ['AccessStore', 'StoreError', 'Principal', 'PartnerRecord', 'Grant', 'principal_from_row', 'partner_from_row']
