from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column, Session
from sqlalchemy import (
    String, Integer, Boolean, ForeignKey, JSON, UniqueConstraint, CheckConstraint, DateTime, text, event,
)
from typing import Optional, Dict, Any

from repairdesk.constants.roles import TOP_ROLE

Base = declarative_base()


class StoragePolicyViolation(Exception):
    """Raised by the storage layer itself when a write breaks the access policy."""


# --- Core Models ---
class Permission(Base):
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default='general', index=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class RolePermission(Base):
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    permission_key: Mapped[str] = mapped_column(ForeignKey('permissions.key', ondelete='CASCADE'), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))

    permission = relationship('Permission')

    __table_args__ = (
        UniqueConstraint('role', 'permission_key', name='uq_role_permission'),
        CheckConstraint(f"role <> '{TOP_ROLE.value}'", name='ck_role_permission_not_top_role'),
    )


class B2BPartner(Base):
    __tablename__ = 'b2b_partners'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_number: Mapped[Optional[str]] = mapped_column(String(32))
    street: Mapped[Optional[str]] = mapped_column(String(128))
    zip: Mapped[Optional[str]] = mapped_column(String(16))
    city: Mapped[Optional[str]] = mapped_column(String(64))
    country: Mapped[Optional[str]] = mapped_column(String(64))
    contact_email: Mapped[Optional[str]] = mapped_column(String(128))
    default_return_address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    members = relationship('Profile', back_populates='partner')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class Profile(Base):
    __tablename__ = 'profiles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    default_location_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    b2b_partner_id: Mapped[Optional[int]] = mapped_column(ForeignKey('b2b_partners.id', ondelete='SET NULL'), nullable=True)
    partner = relationship('B2BPartner', back_populates='members')
    user_roles = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class UserRole(Base):
    __tablename__ = 'user_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    __table_args__ = (UniqueConstraint('user_id', 'role', name='uq_user_role'),)
    user = relationship('Profile', back_populates='user_roles')


@event.listens_for(Session, 'before_flush')
def _enforce_top_role_policy(session, flush_context, instances):
    # Top-role grants are implicit; rows for it must never be written or removed.
    for obj in list(session.new) + list(session.deleted):
        if isinstance(obj, RolePermission) and obj.role == TOP_ROLE.value:
            raise StoragePolicyViolation(f'role_permissions rows for {TOP_ROLE.value} are not writable')
