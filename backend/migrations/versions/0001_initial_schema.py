"""initial back-office schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _ordering():
    return [
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def _ordering_indexes(table):
    for col in ('sort_order', 'is_active', 'is_deleted'):
        op.create_index(f'ix_{table}_{col}', table, [col])


def upgrade():
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.String(length=300)),
        sa.Column('module', sa.String(length=32), nullable=False),
        sa.Column('operations', sa.JSON(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='E-commerce'),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer()),
        sa.Column('updated_by', sa.Integer()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_permissions_slug', 'permissions', ['slug'])
    op.create_index('ix_permissions_module', 'permissions', ['module'])
    op.create_index('ix_permissions_is_active', 'permissions', ['is_active'])

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False, unique=True),
        sa.Column('slug', sa.String(length=50), nullable=False, unique=True),
        sa.Column('description', sa.String(length=200)),
        sa.Column('level', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer()),
        sa.Column('updated_by', sa.Integer()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_roles_slug', 'roles', ['slug'])
    op.create_index('ix_roles_is_active', 'roles', ['is_active'])

    # permission_id / role_id on the link tables carry no FK: deleted targets stay referenced
    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'])

    op.create_table('admins',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('username', sa.String(length=30), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=20)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('block_reason', sa.String(length=255)),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lock_until', sa.DateTime(timezone=True)),
        sa.Column('last_login_at', sa.DateTime(timezone=True)),
        sa.Column('last_login_ip', sa.String(length=64)),
        sa.Column('password_changed_at', sa.DateTime(timezone=True)),
        sa.Column('created_by', sa.Integer()),
        sa.Column('updated_by', sa.Integer()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_admins_email', 'admins', ['email'])
    op.create_index('ix_admins_username', 'admins', ['username'])
    op.create_index('ix_admins_is_active', 'admins', ['is_active'])
    op.create_index('ix_admins_is_blocked', 'admins', ['is_blocked'])

    op.create_table('admin_roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admins.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('admin_id', 'role_id', name='uq_admin_role'),
    )
    op.create_index('ix_admin_roles_role_id', 'admin_roles', ['role_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_admin_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('perms_snapshot', sa.JSON()),
        sa.Column('meta', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_actor_admin_id', 'audit_logs', ['actor_admin_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])

    op.create_table('brands',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('website', sa.String(length=255)),
        sa.Column('seo_title', sa.String(length=60)),
        sa.Column('seo_description', sa.String(length=160)),
        sa.Column('seo_keywords', sa.JSON()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_ordering(),
        *_timestamps(),
    )
    op.create_index('ix_brands_name', 'brands', ['name'])
    op.create_index('ix_brands_slug', 'brands', ['slug'])
    _ordering_indexes('brands')

    op.create_table('categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.Text()),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL')),
        sa.Column('seo_title', sa.String(length=60)),
        sa.Column('seo_description', sa.String(length=160)),
        sa.Column('seo_keywords', sa.JSON()),
        *_ordering(),
        *_timestamps(),
    )
    op.create_index('ix_categories_name', 'categories', ['name'])
    op.create_index('ix_categories_slug', 'categories', ['slug'])
    _ordering_indexes('categories')

    op.create_table('faqs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('question', sa.String(length=500), nullable=False),
        sa.Column('answer', sa.Text(), nullable=False),
        *_ordering(),
        *_timestamps(),
    )
    _ordering_indexes('faqs')


def downgrade():
    for table in ('faqs', 'categories', 'brands', 'audit_logs', 'admin_roles', 'admins',
                  'role_permissions', 'roles', 'permissions'):
        op.drop_table(table)
