"""Idempotent seeding of the default permission catalog, role presets and first admin."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select

from backoffice.models.authz import Permission, Role, RolePermission, Admin, AdminRole
from backoffice.constants.permissions import DEFAULT_PERMISSIONS, ROLE_PRESETS, SUPER_ADMIN_SLUG
from backoffice.services.accounts import create_admin

logger = logging.getLogger(__name__)


def ensure_permissions(session) -> Dict[str, Permission]:
    existing = {p.slug: p for p in session.execute(select(Permission)).scalars()}
    created = 0
    for definition in DEFAULT_PERMISSIONS:
        if definition['slug'] in existing:
            continue
        perm = Permission(**definition)
        session.add(perm)
        existing[definition['slug']] = perm
        created += 1
    session.flush()
    logger.info('Permissions ensured (%s created, %s total)', created, len(existing))
    return existing


def ensure_roles(session, permissions: Optional[Dict[str, Permission]] = None) -> Dict[str, Role]:
    """Create missing preset roles; links of an existing role are only added, never removed."""
    permissions = permissions if permissions is not None else ensure_permissions(session)
    roles = {r.slug: r for r in session.execute(select(Role)).scalars()}
    for slug, preset in ROLE_PRESETS.items():
        role = roles.get(slug)
        if role is None:
            role = Role(
                name=preset['name'], slug=slug, description=preset['description'],
                level=preset['level'], is_system=preset['is_system'],
            )
            session.add(role)
            session.flush()
            roles[slug] = role
            logger.info('Role %s created', slug)
        wanted = preset['permissions']
        if wanted == ['*']:
            perm_ids = {p.id for p in permissions.values() if p.is_active}
        else:
            perm_ids = {permissions[s].id for s in wanted if s in permissions}
        linked = set(session.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
        ).scalars())
        for pid in sorted(perm_ids - linked):
            session.add(RolePermission(role_id=role.id, permission_id=pid))
    session.flush()
    return roles


def ensure_initial_admin(session, email: Optional[str], password: Optional[str],
                         roles: Optional[Dict[str, Role]] = None) -> Optional[Admin]:
    if not email or not password:
        logger.warning('Seed admin credentials not configured; skipping initial admin')
        return None
    admin = session.execute(select(Admin).where(Admin.email == email.strip().lower())).scalar_one_or_none()
    if admin is not None:
        return admin
    roles = roles if roles is not None else ensure_roles(session)
    super_role = roles[SUPER_ADMIN_SLUG]
    username = email.split('@', 1)[0]
    admin = create_admin(
        session, first_name='Super', last_name='Admin', email=email,
        username=username, password=password, role_ids=[super_role.id],
    )
    admin.email_verified = True
    logger.info('Initial super-admin %s created', admin.email)
    return admin


def seed_all(session, settings: Dict[str, Any]) -> Dict[str, Any]:
    permissions = ensure_permissions(session)
    roles = ensure_roles(session, permissions)
    admin = ensure_initial_admin(session, settings.get('SEED_ADMIN_EMAIL'), settings.get('SEED_ADMIN_PASSWORD'), roles)
    return {'permissions': len(permissions), 'roles': len(roles), 'admin': admin.email if admin else None}


__all__ = ['ensure_permissions', 'ensure_roles', 'ensure_initial_admin', 'seed_all']
