import pytest
from sqlalchemy import select
from backoffice.models.audit import AuditLog
from backoffice.models.authz import Admin, AdminRole, Role
from backoffice.services.bootstrap import ensure_roles
from tests.seed_helpers import make_role, make_admin, admin_with, auth_headers


@pytest.fixture()
def presets(db):
    roles = ensure_roles(db)
    db.commit()
    return roles


@pytest.fixture()
def root(db, presets):
    return make_admin(db, 'root', [presets['super-admin']])


def test_role_crud_and_permission_replace(client, db, root):
    headers = auth_headers(root)
    resp = client.post('/iam/roles', json={
        'name': 'Catalog Team', 'level': 40, 'permissions': ['brands-management', 'faqs-view-only'],
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    role = resp.get_json()
    assert role['slug'] == 'catalog-team'
    assert role['permissions'] == ['brands-management', 'faqs-view-only']
    assert client.post('/iam/roles', json={'name': 'Catalog Team'}, headers=headers).status_code == 400
    assert client.post('/iam/roles', json={'name': 'Too High', 'level': 101}, headers=headers).status_code == 400
    unknown = client.post('/iam/roles', json={'name': 'Ghost', 'permissions': ['nope']}, headers=headers)
    assert unknown.status_code == 400
    replaced = client.put(f"/iam/roles/{role['id']}/permissions", json={'permissions': ['categories-management']},
                          headers=headers)
    assert replaced.get_json()['permissions'] == ['categories-management']
    updated = client.put(f"/iam/roles/{role['id']}", json={'level': 45, 'is_active': False}, headers=headers)
    assert updated.get_json()['level'] == 45 and updated.get_json()['is_active'] is False
    listed = client.get('/iam/roles', headers=headers).get_json()
    assert listed['data'][0]['slug'] == 'super-admin'
    actions = [a for a, in db.execute(select(AuditLog.action).order_by(AuditLog.id))]
    assert actions == ['ROLE.CREATE', 'ROLE.PERM.REPLACE', 'ROLE.UPDATE']


def test_system_roles_are_protected(client, db, root, presets):
    headers = auth_headers(root)
    editor = presets['editor']
    resp = client.delete(f'/iam/roles/{editor.id}', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Cannot delete system role editor'
    assert client.put(f'/iam/roles/{editor.id}', json={'is_active': False}, headers=headers).status_code == 400


def test_deleted_role_leaves_dangling_assignment(client, db, root):
    headers = auth_headers(root)
    temp = make_role(db, 'seasonal', [('coupons', ['view'])])
    holder = make_admin(db, 'holder', [temp])
    assert client.delete(f'/iam/roles/{temp.id}', headers=headers).get_json()['slug'] == 'seasonal'
    assert db.execute(select(AdminRole).where(AdminRole.admin_id == holder.id)).scalar_one().role_id == temp.id
    body = client.get(f'/iam/admins/{holder.id}', headers=headers).get_json()
    assert body['roles'] == [{'id': temp.id, 'slug': None}]
    report = client.get('/iam/rbac/integrity', headers=headers).get_json()
    assert report['dangling_role_refs'] == [temp.id]
    # the holder still authenticates, with nothing granted
    me = client.get('/auth/me', headers=auth_headers(holder)).get_json()
    assert me['permissions'] == {}


def test_last_super_admin_cannot_lose_the_role(client, db, root, presets):
    headers = auth_headers(root)
    resp = client.put(f'/iam/admins/{root.id}/roles', json={'role_ids': [presets['editor'].id]}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Cannot remove the last super-admin'
    assert client.post(f'/iam/admins/{root.id}/deactivate', headers=headers).status_code == 400
    assert client.post(f'/iam/admins/{root.id}/block', json={'reason': 'x'}, headers=headers).status_code == 400
    second = make_admin(db, 'second-root', [presets['super-admin']])
    ok = client.put(f'/iam/admins/{root.id}/roles', json={'role_ids': [presets['editor'].id]}, headers=headers)
    assert ok.status_code == 200
    assert ok.get_json() == {'admin_id': root.id, 'role_ids': [presets['editor'].id]}
    # root lost super-admin, so the reporting endpoints refuse it now
    assert client.get('/iam/rbac/stats', headers=headers).status_code == 403
    assert client.get('/iam/rbac/stats', headers=auth_headers(second)).status_code == 200


def test_admin_lifecycle(client, db, root, presets):
    headers = auth_headers(root)
    payload = {
        'first_name': 'Nina', 'last_name': 'Ops', 'email': 'Nina@Example.com', 'username': 'Nina',
        'password': 'long-enough-1', 'role_ids': [presets['viewer'].id],
    }
    created = client.post('/iam/admins', json=payload, headers=headers)
    assert created.status_code == 201, created.get_json()
    admin = created.get_json()
    assert admin['email'] == 'nina@example.com' and admin['username'] == 'nina'
    assert admin['roles'] == [{'id': presets['viewer'].id, 'slug': 'viewer'}]
    assert client.post('/iam/admins', json=payload, headers=headers).get_json()['error']['detail'] == \
        'email or username in use'
    short = {**payload, 'email': 'x@example.com', 'username': 'x', 'password': 'short'}
    assert client.post('/iam/admins', json=short, headers=headers).status_code == 400
    bad_role = {**payload, 'email': 'y@example.com', 'username': 'y', 'role_ids': [999]}
    assert client.post('/iam/admins', json=bad_role, headers=headers).status_code == 400

    blocked = client.post(f"/iam/admins/{admin['id']}/block", json={'reason': 'Audit pending'}, headers=headers)
    assert blocked.get_json()['is_blocked'] is True
    assert client.post('/auth/login', json={'email': 'nina', 'password': 'long-enough-1'}).get_json()['error'][
        'detail'] == 'Audit pending'
    assert client.post(f"/iam/admins/{admin['id']}/unblock", headers=headers).get_json()['block_reason'] is None

    target = db.get(Admin, admin['id'])
    target.login_attempts = 5
    db.commit()
    unlocked = client.post(f"/iam/admins/{admin['id']}/unlock", headers=headers).get_json()
    assert unlocked['login_attempts'] == 0 and unlocked['lock_until'] is None
    assert client.post(f"/iam/admins/{admin['id']}/deactivate", headers=headers).get_json()['is_active'] is False
    assert client.post(f"/iam/admins/{admin['id']}/activate", headers=headers).get_json()['is_active'] is True
    found = client.get('/iam/admins?q=NINA', headers=headers).get_json()
    assert [a['id'] for a in found['data']] == [admin['id']]


def test_permission_catalog_management(client, db, root):
    headers = auth_headers(root)
    resp = client.post('/iam/permissions', json={
        'name': 'Brand Curators', 'module': 'brands', 'operations': ['edit', 'view', 'edit'],
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    perm = resp.get_json()
    assert perm['slug'] == 'brand-curators' and perm['operations'] == ['view', 'edit']
    assert client.post('/iam/permissions', json={'name': 'Brand Curators', 'module': 'brands',
                                                  'operations': ['view']}, headers=headers).status_code == 400
    assert client.post('/iam/permissions', json={'name': 'Bad', 'module': 'spaceships',
                                                  'operations': ['view']}, headers=headers).status_code == 400
    assert client.post('/iam/permissions', json={'name': 'Bad ops', 'module': 'brands',
                                                  'operations': ['fly']}, headers=headers).status_code == 400
    updated = client.put(f"/iam/permissions/{perm['id']}", json={'operations': ['view', 'delete']}, headers=headers)
    assert updated.get_json()['operations'] == ['view', 'delete']
    assert client.delete(f"/iam/permissions/{perm['id']}", headers=headers).status_code == 200

    system = client.get('/iam/permissions?module=brands', headers=headers).get_json()['data']
    assert {p['slug'] for p in system} == {'brands-management', 'brands-view-only'}
    denied = client.delete(f"/iam/permissions/{system[0]['id']}", headers=headers)
    assert denied.status_code == 400
    modules = client.get('/iam/modules', headers=headers).get_json()
    assert 'brands' in [m['key'] for m in modules['modules']]


def test_role_listing_reachable_with_admin_edit(client, db):
    staffer = admin_with(db, 'staffer', [('admins', ['view', 'edit'])])
    assert client.get('/iam/roles', headers=auth_headers(staffer)).status_code == 200
    assert client.post('/iam/roles', json={'name': 'X'}, headers=auth_headers(staffer)).status_code == 403


def test_audit_log_listing_requires_settings_view(client, db, root):
    headers = auth_headers(root)
    client.post('/iam/roles', json={'name': 'Audited'}, headers=headers)
    logs = client.get('/iam/audit/logs?action=ROLE.CREATE', headers=headers).get_json()
    assert len(logs['data']) == 1
    entry = logs['data'][0]
    assert entry['actor_admin_id'] == root.id and entry['entity'] == 'Role'
    stored = db.execute(select(AuditLog)).scalar_one()
    assert 'settings' in stored.perms_snapshot['perms']
    outsider = admin_with(db, 'outsider', [('roles', ['view'])])
    assert client.get('/iam/audit/logs', headers=auth_headers(outsider)).status_code == 403
    assert client.get('/iam/audit/logs?actor_admin_id=abc', headers=headers).status_code == 400


def test_reporting_is_super_admin_only(client, db, root):
    manager = admin_with(db, 'manager-ish', [('permissions', ['view'])])
    assert client.get('/iam/rbac/integrity', headers=auth_headers(manager)).status_code == 403
    stats = client.get('/iam/rbac/stats', headers=auth_headers(root)).get_json()
    assert stats['admins_by_role'][0] == {'slug': 'super-admin', 'level': 100, 'admins': 1}
    assert db.execute(select(Role).where(Role.slug == 'super-admin')).scalar_one().is_system


def test_usernames_cannot_look_like_emails(client, db, root):
    headers = auth_headers(root)
    make_admin(db, 'omar')
    resp = client.post('/iam/admins', json={
        'first_name': 'Eve', 'last_name': 'Shadow', 'email': 'eve@example.com',
        'username': 'omar@example.com', 'password': 'long-enough-1',
    }, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'username cannot contain @'
    # email of one admin plus username of another is a plain conflict, not a crash
    both = client.post('/iam/admins', json={
        'first_name': 'Dup', 'last_name': 'Both', 'email': 'omar@example.com',
        'username': 'root', 'password': 'long-enough-1',
    }, headers=headers)
    assert both.status_code == 400
    assert both.get_json()['error']['detail'] == 'email or username in use'
