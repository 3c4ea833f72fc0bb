from sqlalchemy import select, func
from backoffice.constants.permissions import DEFAULT_PERMISSIONS, ROLE_PRESETS, MODULES, OPERATIONS
from backoffice.models.authz import Admin, Permission, Role, RolePermission
from backoffice.services.bootstrap import ensure_permissions, ensure_roles, ensure_initial_admin, seed_all
from backoffice.services.identity import resolve_principal
from backoffice.services.policy import validate_rbac_integrity


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_seed_is_idempotent(db):
    settings = {'SEED_ADMIN_EMAIL': 'Owner@Example.com', 'SEED_ADMIN_PASSWORD': 'owner-pass-1'}
    first = seed_all(db, settings)
    db.commit()
    counts = (_count(db, Permission), _count(db, Role), _count(db, RolePermission), _count(db, Admin))
    second = seed_all(db, settings)
    db.commit()
    assert first == second == {'permissions': len(DEFAULT_PERMISSIONS), 'roles': len(ROLE_PRESETS),
                               'admin': 'owner@example.com'}
    assert (_count(db, Permission), _count(db, Role), _count(db, RolePermission), _count(db, Admin)) == counts
    assert validate_rbac_integrity(db)['valid'] is True


def test_super_admin_gets_every_operation(db):
    seed_all(db, {'SEED_ADMIN_EMAIL': 'root@example.com', 'SEED_ADMIN_PASSWORD': 'root-pass-1'})
    db.commit()
    admin = db.execute(select(Admin).where(Admin.email == 'root@example.com')).scalar_one()
    principal = resolve_principal(db, admin.id)
    assert principal.role_slugs == {'super-admin'}
    for module in MODULES:
        assert principal.matrix[module] == frozenset(OPERATIONS)


def test_existing_role_links_are_only_added(db):
    permissions = ensure_permissions(db)
    roles = ensure_roles(db, permissions)
    extra = permissions['settings-view-only']
    db.add(RolePermission(role_id=roles['editor'].id, permission_id=extra.id))
    db.commit()
    ensure_roles(db)
    db.commit()
    linked = set(db.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id == roles['editor'].id)
    ).scalars())
    assert extra.id in linked
    assert permissions['brands-management'].id in linked


def test_initial_admin_skipped_without_credentials(db):
    assert ensure_initial_admin(db, None, None) is None
    assert ensure_initial_admin(db, 'someone@example.com', '') is None
    assert _count(db, Admin) == 0
