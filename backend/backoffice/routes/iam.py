from flask import Blueprint, request, abort, g
from sqlalchemy import select, delete, or_, func
from backoffice import get_db
from backoffice.models.authz import Admin, Role, Permission, RolePermission, AdminRole
from backoffice.models.audit import AuditLog
from backoffice.constants.permissions import (
    MODULES, MODULE_DEFINITIONS, OPERATION_DEFINITIONS, PERMISSION_CATEGORIES,
    slugify, validate_module, validate_operations,
)
from backoffice.config.pagination import normalize_pagination
from backoffice.services.policy import (
    assert_role_deletable, assert_permission_deletable, assert_not_removing_last_super_admin,
    validate_rbac_integrity, rbac_stats,
)
from backoffice.services.accounts import create_admin, unlock
from backoffice.decorators.audit import audit_log
from backoffice.decorators.auth import require_permission, require_any_permission, require_super_admin
from backoffice.utils.validation import parse_bool, parse_id_list, require_fields
from backoffice.utils.dates import isoformat_z

iam_bp = Blueprint('iam', __name__)


def _paginate(session, stmt):
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
    return rows, {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)}


def _permission_json(p: Permission):
    return {
        'id': p.id, 'name': p.name, 'slug': p.slug, 'description': p.description,
        'module': p.module, 'operations': p.operations, 'category': p.category,
        'is_system': p.is_system, 'is_active': p.is_active,
    }


def _role_permission_slugs(session, role_ids):
    links = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
    perm_ids = {link.permission_id for link in links}
    slugs = {}
    if perm_ids:
        slugs = {p.id: p.slug for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars()}
    out = {rid: [] for rid in role_ids}
    for link in links:
        if link.permission_id in slugs:
            out[link.role_id].append(slugs[link.permission_id])
    return out


def _role_json(r: Role, permission_slugs=None):
    return {
        'id': r.id, 'name': r.name, 'slug': r.slug, 'description': r.description,
        'level': r.level, 'is_system': r.is_system, 'is_active': r.is_active,
        'permissions': sorted(permission_slugs or []),
    }


def _admin_json(a: Admin, roles_by_id=None):
    roles_by_id = roles_by_id or {}
    return {
        'id': a.id, 'first_name': a.first_name, 'last_name': a.last_name, 'full_name': a.full_name,
        'email': a.email, 'username': a.username, 'phone': a.phone,
        'is_active': a.is_active, 'is_blocked': a.is_blocked, 'block_reason': a.block_reason,
        'login_attempts': a.login_attempts, 'lock_until': isoformat_z(a.lock_until),
        'last_login_at': isoformat_z(a.last_login_at),
        # dangling role ids are listed as-is, without a slug
        'roles': [
            {'id': rid, 'slug': roles_by_id[rid].slug if rid in roles_by_id else None}
            for rid in sorted(a.role_ids)
        ],
    }


def _get_or_404(session, model, pk):
    obj = session.execute(select(model).where(model.id == pk)).scalar_one_or_none()
    if not obj:
        abort(404)
    return obj


def _actor_id():
    return g.principal.admin_id if g.get('principal') else None


# --- Catalog ---

@iam_bp.get('/modules')
@require_permission('permissions', 'view')
def list_modules():
    return {
        'modules': [{'key': m, **MODULE_DEFINITIONS[m]} for m in MODULES],
        'operations': [{'key': k, **v} for k, v in OPERATION_DEFINITIONS.items()],
        'categories': PERMISSION_CATEGORIES,
    }


# --- Permissions ---

@iam_bp.get('/permissions')
@require_permission('permissions', 'view')
def list_permissions():
    session = get_db()
    stmt = select(Permission)
    if request.args.get('module'):
        stmt = stmt.where(Permission.module == request.args['module'])
    if request.args.get('category'):
        stmt = stmt.where(Permission.category == request.args['category'])
    active = parse_bool(request.args.get('active'))
    if active is not None:
        stmt = stmt.where(Permission.is_active.is_(active))
    rows, pagination = _paginate(session, stmt.order_by(Permission.module.asc(), Permission.id.asc()))
    return {'data': [_permission_json(p) for p in rows], 'pagination': pagination}


@iam_bp.post('/permissions')
@require_permission('permissions', 'add')
@audit_log('PERMISSION.CREATE', entity='Permission', entity_id_key='id', meta_keys=['slug', 'module', 'operations'])
def create_permission():
    data = request.get_json(silent=True) or {}
    require_fields(data, ['name', 'module'])
    try:
        module = validate_module(data['module'])
        operations = validate_operations(data.get('operations') or [])
    except ValueError as e:
        abort(400, description=str(e))
    if not operations:
        abort(400, description='operations required')
    category = data.get('category') or 'E-commerce'
    if category not in PERMISSION_CATEGORIES:
        abort(400, description='category invalid')
    slug = slugify(data.get('slug') or data['name'])
    session = get_db()
    if session.execute(select(Permission).where(Permission.slug == slug)).scalar_one_or_none():
        abort(400, description='permission exists')
    perm = Permission(
        name=data['name'].strip(), slug=slug, description=data.get('description'), module=module,
        operations=operations, category=category, is_system=False, created_by=_actor_id(),
    )
    session.add(perm)
    session.commit()
    return _permission_json(perm), 201


@iam_bp.put('/permissions/<int:permission_id>')
@require_permission('permissions', 'edit')
@audit_log('PERMISSION.UPDATE', entity='Permission', entity_id_key='id', meta_keys=['operations', 'is_active'])
def update_permission(permission_id: int):
    session = get_db()
    perm = _get_or_404(session, Permission, permission_id)
    data = request.get_json(silent=True) or {}
    try:
        if 'operations' in data:
            ops = validate_operations(data['operations'] or [])
            if not ops:
                abort(400, description='operations required')
            perm.operations = ops
        if 'module' in data:
            if perm.is_system and data['module'] != perm.module:
                abort(400, description='module of a system permission cannot change')
            perm.module = validate_module(data['module'])
    except ValueError as e:
        abort(400, description=str(e))
    if 'name' in data:
        if not data['name']:
            abort(400, description='name cannot be empty')
        perm.name = data['name']
    if 'description' in data:
        perm.description = data['description']
    if 'category' in data:
        if data['category'] not in PERMISSION_CATEGORIES:
            abort(400, description='category invalid')
        perm.category = data['category']
    if 'is_active' in data:
        perm.is_active = parse_bool(data['is_active'])
    perm.updated_by = _actor_id()
    session.commit()
    return _permission_json(perm)


@iam_bp.delete('/permissions/<int:permission_id>')
@require_permission('permissions', 'delete')
@audit_log('PERMISSION.DELETE', entity='Permission', entity_id_arg='permission_id', meta_keys=['slug'])
def delete_permission(permission_id: int):
    session = get_db()
    perm = _get_or_404(session, Permission, permission_id)
    assert_permission_deletable(perm)
    slug = perm.slug
    session.delete(perm)
    session.commit()
    return {'status': 'deleted', 'slug': slug}


# --- Roles ---

@iam_bp.get('/roles')
@require_any_permission(('roles', 'view'), ('admins', 'edit'))
def list_roles():
    session = get_db()
    stmt = select(Role).order_by(Role.level.desc(), Role.id.asc())
    rows, pagination = _paginate(session, stmt)
    slugs = _role_permission_slugs(session, [r.id for r in rows])
    return {'data': [_role_json(r, slugs.get(r.id)) for r in rows], 'pagination': pagination}


def _resolve_permission_slugs(session, slugs):
    slugs = list(dict.fromkeys(slugs or []))
    perms = session.execute(select(Permission).where(Permission.slug.in_(slugs))).scalars().all() if slugs else []
    missing = set(slugs) - {p.slug for p in perms}
    if missing:
        abort(400, description=f'Unknown permissions: {sorted(missing)}')
    return perms


def _parse_level(value):
    try:
        level = int(value)
    except (TypeError, ValueError):
        abort(400, description='level must be int')
    if not 1 <= level <= 100:
        abort(400, description='level must be between 1 and 100')
    return level


@iam_bp.post('/roles')
@require_permission('roles', 'add')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['slug', 'permissions'])
def create_role():
    data = request.get_json(silent=True) or {}
    require_fields(data, ['name'])
    name = data['name'].strip()
    slug = slugify(data.get('slug') or name)
    session = get_db()
    if session.execute(select(Role).where(or_(Role.name == name, Role.slug == slug))).scalars().first():
        abort(400, description='role exists')
    perms = _resolve_permission_slugs(session, data.get('permissions'))
    role = Role(
        name=name, slug=slug, description=data.get('description'),
        level=_parse_level(data.get('level', 10)), is_system=False, created_by=_actor_id(),
    )
    session.add(role)
    session.flush()
    for p in perms:
        session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return _role_json(role, [p.slug for p in perms]), 201


@iam_bp.put('/roles/<int:role_id>')
@require_permission('roles', 'edit')
@audit_log('ROLE.UPDATE', entity='Role', entity_id_key='id', meta_keys=['level', 'is_active'])
def update_role(role_id: int):
    session = get_db()
    role = _get_or_404(session, Role, role_id)
    data = request.get_json(silent=True) or {}
    if 'name' in data:
        if not data['name']:
            abort(400, description='name cannot be empty')
        clash = session.execute(select(Role).where(Role.name == data['name'], Role.id != role.id)).scalar_one_or_none()
        if clash:
            abort(400, description='role name in use')
        role.name = data['name']
    if 'description' in data:
        role.description = data['description']
    if 'level' in data:
        role.level = _parse_level(data['level'])
    if 'is_active' in data:
        active = parse_bool(data['is_active'])
        if role.is_system and not active:
            abort(400, description='system roles cannot be deactivated')
        role.is_active = active
    role.updated_by = _actor_id()
    session.commit()
    return _role_json(role, _role_permission_slugs(session, [role.id])[role.id])


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permission('roles', 'edit')
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, rv, a, kw: {'count': len(data.get('permissions', []))},
)
def replace_role_permissions(role_id: int):
    session = get_db()
    role = _get_or_404(session, Role, role_id)
    data = request.get_json(silent=True) or {}
    perms = _resolve_permission_slugs(session, data.get('permissions') or [])
    session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    for p in perms:
        session.add(RolePermission(role_id=role.id, permission_id=p.id))
    role.updated_by = _actor_id()
    session.commit()
    return _role_json(role, [p.slug for p in perms])


@iam_bp.delete('/roles/<int:role_id>')
@require_permission('roles', 'delete')
@audit_log('ROLE.DELETE', entity='Role', entity_id_arg='role_id', meta_keys=['slug'])
def delete_role(role_id: int):
    session = get_db()
    role = _get_or_404(session, Role, role_id)
    assert_role_deletable(role)
    slug = role.slug
    # admin assignments keep the id; resolution skips it
    session.delete(role)
    session.commit()
    return {'status': 'deleted', 'slug': slug}


# --- Admins ---

def _roles_by_id(session, admins):
    ids = {rid for a in admins for rid in a.role_ids}
    if not ids:
        return {}
    return {r.id: r for r in session.execute(select(Role).where(Role.id.in_(ids))).scalars()}


def _validate_role_ids(session, role_ids):
    roles = session.execute(select(Role).where(Role.id.in_(list(role_ids)))).scalars().all() if role_ids else []
    missing = set(role_ids) - {r.id for r in roles}
    if missing:
        abort(400, description=f'Unknown role ids: {sorted(missing)}')
    return roles


@iam_bp.get('/admins')
@require_permission('admins', 'view')
def list_admins():
    session = get_db()
    stmt = select(Admin)
    q = (request.args.get('q') or '').strip().lower()
    if q:
        like = f'%{q}%'
        stmt = stmt.where(or_(
            func.lower(Admin.email).like(like), func.lower(Admin.username).like(like),
            func.lower(Admin.first_name).like(like), func.lower(Admin.last_name).like(like),
        ))
    rows, pagination = _paginate(session, stmt.order_by(Admin.id.asc()))
    roles = _roles_by_id(session, rows)
    return {'data': [_admin_json(a, roles) for a in rows], 'pagination': pagination}


@iam_bp.get('/admins/<int:admin_id>')
@require_permission('admins', 'view')
def get_admin(admin_id: int):
    session = get_db()
    admin = _get_or_404(session, Admin, admin_id)
    return _admin_json(admin, _roles_by_id(session, [admin]))


@iam_bp.post('/admins')
@require_permission('admins', 'add')
@audit_log('ADMIN.CREATE', entity='Admin', entity_id_key='id', meta_keys=['email', 'roles'])
def create_admin_account():
    data = request.get_json(silent=True) or {}
    require_fields(data, ['first_name', 'last_name', 'email', 'username', 'password'])
    if len(data['password']) < 8:
        abort(400, description='password must be at least 8 characters')
    if '@' in data['username']:
        abort(400, description='username cannot contain @')
    session = get_db()
    email = data['email'].strip().lower()
    username = data['username'].strip().lower()
    clash = session.execute(select(Admin).where(or_(Admin.email == email, Admin.username == username))).scalars().first()
    if clash:
        abort(400, description='email or username in use')
    role_ids = set(parse_id_list(data.get('role_ids') or [], 'role_ids'))
    _validate_role_ids(session, role_ids)
    admin = create_admin(
        session, first_name=data['first_name'], last_name=data['last_name'], email=email,
        username=username, password=data['password'], role_ids=role_ids, phone=data.get('phone'),
        created_by=_actor_id(),
    )
    session.commit()
    session.refresh(admin)
    return _admin_json(admin, _roles_by_id(session, [admin])), 201


@iam_bp.put('/admins/<int:admin_id>/roles')
@require_permission('admins', 'edit')
@audit_log('ADMIN.ROLES.SET', entity='Admin', entity_id_key='admin_id', meta_keys=['role_ids'])
def set_admin_roles(admin_id: int):
    session = get_db()
    admin = _get_or_404(session, Admin, admin_id)
    data = request.get_json(silent=True) or {}
    role_ids = set(parse_id_list(data.get('role_ids') or [], 'role_ids'))
    _validate_role_ids(session, role_ids)
    assert_not_removing_last_super_admin(session, admin.id, role_ids)
    session.execute(delete(AdminRole).where(AdminRole.admin_id == admin.id))
    for rid in sorted(role_ids):
        session.add(AdminRole(admin_id=admin.id, role_id=rid))
    admin.updated_by = _actor_id()
    session.commit()
    session.refresh(admin)
    return {'admin_id': admin.id, 'role_ids': sorted(role_ids)}


def _standing_change(admin_id: int, apply):
    session = get_db()
    admin = _get_or_404(session, Admin, admin_id)
    apply(session, admin)
    admin.updated_by = _actor_id()
    session.commit()
    return _admin_json(admin, _roles_by_id(session, [admin]))


def _keep_one_super_admin(session, admin):
    # losing standing counts as losing the role for the last-super-admin rule
    assert_not_removing_last_super_admin(session, admin.id, [])


@iam_bp.post('/admins/<int:admin_id>/block')
@require_permission('admins', 'edit')
@audit_log('ADMIN.BLOCK', entity='Admin', entity_id_key='id', meta_keys=['block_reason'])
def block_admin(admin_id: int):
    reason = (request.get_json(silent=True) or {}).get('reason')

    def apply(session, admin):
        if admin.is_active and not admin.is_blocked:
            _keep_one_super_admin(session, admin)
        admin.is_blocked = True
        admin.block_reason = reason or 'Blocked by administrator'
    return _standing_change(admin_id, apply)


@iam_bp.post('/admins/<int:admin_id>/unblock')
@require_permission('admins', 'edit')
@audit_log('ADMIN.UNBLOCK', entity='Admin', entity_id_key='id')
def unblock_admin(admin_id: int):
    def apply(session, admin):
        admin.is_blocked = False
        admin.block_reason = None
    return _standing_change(admin_id, apply)


@iam_bp.post('/admins/<int:admin_id>/activate')
@require_permission('admins', 'edit')
@audit_log('ADMIN.ACTIVATE', entity='Admin', entity_id_key='id')
def activate_admin(admin_id: int):
    def apply(session, admin):
        admin.is_active = True
    return _standing_change(admin_id, apply)


@iam_bp.post('/admins/<int:admin_id>/deactivate')
@require_permission('admins', 'edit')
@audit_log('ADMIN.DEACTIVATE', entity='Admin', entity_id_key='id')
def deactivate_admin(admin_id: int):
    def apply(session, admin):
        if admin.is_active:
            _keep_one_super_admin(session, admin)
        admin.is_active = False
    return _standing_change(admin_id, apply)


@iam_bp.post('/admins/<int:admin_id>/unlock')
@require_permission('admins', 'edit')
@audit_log('ADMIN.UNLOCK', entity='Admin', entity_id_key='id')
def unlock_admin(admin_id: int):
    return _standing_change(admin_id, lambda session, admin: unlock(admin))


# --- Audit & reporting ---

@iam_bp.get('/audit/logs')
@require_permission('settings', 'view')
def list_audit_logs():
    session = get_db()
    stmt = select(AuditLog)
    if request.args.get('action'):
        stmt = stmt.where(AuditLog.action == request.args['action'])
    if request.args.get('entity'):
        stmt = stmt.where(AuditLog.entity == request.args['entity'])
    if request.args.get('actor_admin_id'):
        try:
            stmt = stmt.where(AuditLog.actor_admin_id == int(request.args['actor_admin_id']))
        except ValueError:
            abort(400, description='actor_admin_id must be int')
    rows, pagination = _paginate(session, stmt.order_by(AuditLog.id.desc()))
    return {
        'data': [
            {
                'id': r.id, 'actor_admin_id': r.actor_admin_id, 'action': r.action, 'entity': r.entity,
                'entity_id': r.entity_id, 'meta': r.meta or {}, 'created_at': isoformat_z(r.created_at),
            }
            for r in rows
        ],
        'pagination': pagination,
    }


@iam_bp.get('/rbac/integrity')
@require_super_admin
def rbac_integrity():
    return validate_rbac_integrity(get_db())


@iam_bp.get('/rbac/stats')
@require_super_admin
def rbac_statistics():
    return rbac_stats(get_db())
