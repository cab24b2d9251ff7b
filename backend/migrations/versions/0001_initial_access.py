"""initial access control tables

Revision ID: 0001_initial_access
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_access'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='general'),
        _timestamp('updated_at'),
    )
    op.create_index('ix_permissions_key', 'permissions', ['key'])
    op.create_index('ix_permissions_category', 'permissions', ['category'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('permission_key', sa.String(length=64), sa.ForeignKey('permissions.key', ondelete='CASCADE'), nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('role', 'permission_key', name='uq_role_permission'),
        # top-role grants are implicit and never stored
        sa.CheckConstraint("role <> 'ADMIN'", name='ck_role_permission_not_top_role'),
    )
    op.create_index('ix_role_permissions_role', 'role_permissions', ['role'])

    op.create_table('b2b_partners',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('customer_number', sa.String(length=32)),
        sa.Column('street', sa.String(length=128)),
        sa.Column('zip', sa.String(length=16)),
        sa.Column('city', sa.String(length=64)),
        sa.Column('country', sa.String(length=64)),
        sa.Column('contact_email', sa.String(length=128)),
        sa.Column('default_return_address', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        _timestamp('updated_at'),
    )

    op.create_table('profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('default_location_id', sa.Integer(), nullable=True),
        sa.Column('b2b_partner_id', sa.Integer(), sa.ForeignKey('b2b_partners.id', ondelete='SET NULL'), nullable=True),
        _timestamp('updated_at'),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table('user_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_role'),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('roles_snapshot', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        _timestamp('created_at'),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_index('ix_audit_logs_actor_user_id', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('user_roles')
    op.drop_index('ix_profiles_email', table_name='profiles')
    op.drop_table('profiles')
    op.drop_table('b2b_partners')
    op.drop_index('ix_role_permissions_role', table_name='role_permissions')
    op.drop_table('role_permissions')
    op.drop_index('ix_permissions_category', table_name='permissions')
    op.drop_index('ix_permissions_key', table_name='permissions')
    op.drop_table('permissions')
