"""Role aggregation and permission-matrix helpers.

The model is strictly additive: an admin's matrix is the union of every
operation granted by every active permission of every active role it holds.
Nothing subtracts a grant, so the only way to revoke access is to remove the
role assignment (or the permission from the role).

References are loaded explicitly in phases (admin -> role ids -> roles ->
permission links -> permissions). Ids that no longer resolve are skipped.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func

from backoffice.models.authz import Admin, AdminRole, Role, RolePermission, Permission
from backoffice.constants.permissions import MODULE_DEFINITIONS, SUPER_ADMIN_SLUG, OPERATIONS
from backoffice.errors import ProtectedRecordError
from backoffice.services.principal import PermissionMatrix, Principal

logger = logging.getLogger(__name__)


def load_roles(session, role_ids: Iterable[int], include_inactive: bool = False) -> List[Role]:
    ids = sorted(set(role_ids or []))
    if not ids:
        return []
    q = select(Role).where(Role.id.in_(ids))
    if not include_inactive:
        q = q.where(Role.is_active.is_(True))
    roles = session.execute(q.order_by(Role.level.desc(), Role.id.asc())).scalars().all()
    missing = set(ids) - {r.id for r in roles}
    if missing:
        logger.debug('Skipping unresolved or inactive role ids %s', sorted(missing))
    return list(roles)


def load_role_permissions(session, role_ids: Iterable[int]) -> Dict[int, List[Permission]]:
    """Return role id -> active Permission rows; dangling permission ids are dropped."""
    ids = list(set(role_ids or []))
    out: Dict[int, List[Permission]] = {rid: [] for rid in ids}
    if not ids:
        return out
    links = session.execute(select(RolePermission).where(RolePermission.role_id.in_(ids))).scalars().all()
    perm_ids = {link.permission_id for link in links}
    perms: Dict[int, Permission] = {}
    if perm_ids:
        rows = session.execute(
            select(Permission).where(Permission.id.in_(perm_ids), Permission.is_active.is_(True))
        ).scalars()
        perms = {p.id: p for p in rows}
    for link in links:
        perm = perms.get(link.permission_id)
        if perm is not None:
            out[link.role_id].append(perm)
    return out


def aggregate_permissions(session, role_ids: Iterable[int]) -> PermissionMatrix:
    """Union every operation granted by the given roles, keyed by module."""
    roles = load_roles(session, role_ids)
    matrix: PermissionMatrix = defaultdict(set)
    per_role = load_role_permissions(session, [r.id for r in roles])
    for role in roles:
        for perm in per_role.get(role.id, []):
            matrix[perm.module].update(perm.operations or [])
    return dict(matrix)


def compute_permission_matrix(session, admin_id: int) -> PermissionMatrix:
    role_ids = session.execute(select(AdminRole.role_id).where(AdminRole.admin_id == admin_id)).scalars().all()
    return aggregate_permissions(session, role_ids)


def matrix_to_json(matrix) -> Dict[str, List[str]]:
    return {
        module: [op for op in OPERATIONS if op in ops]
        for module, ops in sorted(matrix.items())
        if ops
    }


# --- matrix queries ---

def has_permission(matrix, module: str, operation: str) -> bool:
    return operation in matrix.get(module, ())


def accessible_modules(matrix) -> List[str]:
    return sorted(module for module, ops in matrix.items() if ops)


def module_operations(matrix, module: str) -> List[str]:
    ops = matrix.get(module, ())
    return [op for op in OPERATIONS if op in ops]


def can_perform_bulk_operation(matrix, module: str, operations: Sequence[str]) -> bool:
    """All listed operations must be granted; an empty list is trivially allowed."""
    granted = matrix.get(module, ())
    return all(op in granted for op in operations)


NAVIGATION_SECTIONS: List[Tuple[str, str, str, List[str]]] = [
    ('ecommerce', 'E-commerce', 'store', ['products', 'categories', 'brands', 'orders', 'customers', 'coupons']),
    ('content', 'Content', 'edit', ['banners', 'reviews', 'faqs', 'cms', 'media']),
    ('reports', 'Reports', 'assessment', ['analytics', 'reports']),
    ('system', 'System', 'settings', ['settings', 'admins', 'roles', 'permissions']),
]


def build_navigation(matrix) -> Dict[str, Any]:
    nav: Dict[str, Any] = {
        'dashboard': {
            'label': 'Dashboard',
            'icon': 'dashboard',
            'path': '/dashboard',
            'visible': has_permission(matrix, 'dashboard', 'view'),
        }
    }
    for key, label, icon, modules in NAVIGATION_SECTIONS:
        children = {}
        for module in modules:
            definition = MODULE_DEFINITIONS[module]
            children[module] = {
                'label': definition['label'],
                'icon': definition['icon'],
                'path': f'/{module}',
                'visible': has_permission(matrix, module, 'view'),
                'permissions': module_operations(matrix, module),
            }
        nav[key] = {
            'label': label,
            'icon': icon,
            'visible': any(c['visible'] for c in children.values()),
            'children': children,
        }
    return nav


def permission_summary(principal: Principal) -> Dict[str, Any]:
    modules = accessible_modules(principal.matrix)
    return {
        'admin': {
            'id': principal.admin_id,
            'username': principal.username,
            'full_name': principal.full_name,
            'roles': [{'id': r.id, 'slug': r.slug, 'name': r.name, 'level': r.level} for r in principal.roles],
        },
        'permissions': matrix_to_json(principal.matrix),
        'accessible_modules': modules,
        'total_modules': len(modules),
        'is_super': SUPER_ADMIN_SLUG in principal.role_slugs,
    }


# --- integrity guards ---

def assert_role_deletable(role: Role):
    if role.is_system:
        raise ProtectedRecordError(f'Cannot delete system role {role.slug}')


def assert_permission_deletable(permission: Permission):
    if permission.is_system:
        raise ProtectedRecordError(f'Cannot delete system permission {permission.slug}')


def _super_admin_role(session) -> Optional[Role]:
    return session.execute(select(Role).where(Role.slug == SUPER_ADMIN_SLUG)).scalar_one_or_none()


def count_super_admins(session) -> int:
    """Number of active, unblocked admins holding the super-admin role."""
    role = _super_admin_role(session)
    if not role:
        return 0
    return session.execute(
        select(func.count(func.distinct(AdminRole.admin_id)))
        .join(Admin, Admin.id == AdminRole.admin_id)
        .where(AdminRole.role_id == role.id, Admin.is_active.is_(True), Admin.is_blocked.is_(False))
    ).scalar_one()


def assert_not_removing_last_super_admin(session, target_admin_id: int, new_role_ids: Iterable[int]):
    """Refuse a role change that would leave no active super-admin."""
    role = _super_admin_role(session)
    if not role or role.id in set(new_role_ids):
        return
    had_role = session.execute(
        select(AdminRole).where(AdminRole.admin_id == target_admin_id, AdminRole.role_id == role.id)
    ).scalar_one_or_none() is not None
    if not had_role:
        return
    admin = session.get(Admin, target_admin_id)
    if admin is None or not admin.is_active or admin.is_blocked:
        return
    if count_super_admins(session) <= 1:
        raise ProtectedRecordError('Cannot remove the last super-admin')


# --- reporting ---

def validate_rbac_integrity(session) -> Dict[str, Any]:
    permissions_count = session.execute(select(func.count(Permission.id))).scalar_one()
    roles_count = session.execute(select(func.count(Role.id))).scalar_one()
    admins_count = session.execute(select(func.count(Admin.id))).scalar_one()
    problems: List[str] = []
    if permissions_count == 0:
        problems.append('no permissions')
    if roles_count == 0:
        problems.append('no roles')
    if admins_count == 0:
        problems.append('no admins')

    role_ids = set(session.execute(select(Role.id)).scalars())
    perm_ids = set(session.execute(select(Permission.id)).scalars())
    linked_roles = set(session.execute(select(RolePermission.role_id)).scalars())
    roles_without_permissions = sorted(
        r.slug for r in session.execute(select(Role).where(Role.is_active.is_(True))).scalars()
        if r.id not in linked_roles
    )
    admins_with_roles = set(session.execute(select(AdminRole.admin_id)).scalars())
    admins_without_roles = sorted(
        a.username for a in session.execute(select(Admin).where(Admin.is_active.is_(True))).scalars()
        if a.id not in admins_with_roles
    )
    dangling_role_refs = sorted(set(session.execute(select(AdminRole.role_id)).scalars()) - role_ids)
    dangling_permission_refs = sorted(set(session.execute(select(RolePermission.permission_id)).scalars()) - perm_ids)
    for slug in roles_without_permissions:
        logger.warning('Role "%s" has no permissions assigned', slug)
    for username in admins_without_roles:
        logger.warning('Admin "%s" has no roles assigned', username)
    return {
        'valid': not problems,
        'problems': problems,
        'counts': {'permissions': permissions_count, 'roles': roles_count, 'admins': admins_count},
        'roles_without_permissions': roles_without_permissions,
        'admins_without_roles': admins_without_roles,
        'dangling_role_refs': dangling_role_refs,
        'dangling_permission_refs': dangling_permission_refs,
    }


def rbac_stats(session) -> Dict[str, Any]:
    per_module = session.execute(
        select(Permission.module, func.count(Permission.id)).group_by(Permission.module).order_by(Permission.module)
    ).all()
    per_role = session.execute(
        select(Role.slug, Role.level, func.count(AdminRole.admin_id))
        .outerjoin(AdminRole, AdminRole.role_id == Role.id)
        .group_by(Role.id, Role.slug, Role.level)
        .order_by(Role.level.desc())
    ).all()
    return {
        'permissions_by_module': {module: count for module, count in per_module},
        'admins_by_role': [{'slug': slug, 'level': level, 'admins': count} for slug, level, count in per_role],
    }


__all__ = [
    'load_roles', 'load_role_permissions', 'aggregate_permissions', 'compute_permission_matrix',
    'matrix_to_json', 'has_permission', 'accessible_modules', 'module_operations',
    'can_perform_bulk_operation', 'build_navigation', 'permission_summary', 'assert_role_deletable',
    'assert_permission_deletable', 'count_super_admins', 'assert_not_removing_last_super_admin',
    'validate_rbac_integrity', 'rbac_stats',
]
