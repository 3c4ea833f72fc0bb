from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
import pytest
from backoffice.errors import AccountNotFound, AccountInactive, AccountBlocked, AccountLocked
from backoffice.services.identity import resolve_principal
from tests.seed_helpers import make_role, make_admin, auth_headers


def test_resolves_principal_with_roles_and_matrix(db):
    editor = make_role(db, 'editor', [('orders', ['view', 'edit'])], level=50)
    admin = make_admin(db, 'alice', [editor])
    p = resolve_principal(db, str(admin.id))
    assert p.admin_id == admin.id
    assert p.username == 'alice'
    assert p.full_name == 'Alice Tester'
    assert [(r.slug, r.level) for r in p.roles] == [('editor', 50)]
    assert p.can('orders', 'edit')
    assert not p.can('orders', 'delete')
    with pytest.raises(FrozenInstanceError):
        p.admin_id = 99


@pytest.mark.parametrize('account_id', [424242, 'not-a-number', None])
def test_unknown_account(db, account_id):
    with pytest.raises(AccountNotFound):
        resolve_principal(db, account_id)


def test_failure_order_inactive_before_blocked_before_locked(db):
    future = datetime.now(timezone.utc) + timedelta(hours=1)
    admin = make_admin(db, 'bob', is_active=False, is_blocked=True, lock_until=future)
    with pytest.raises(AccountInactive):
        resolve_principal(db, admin.id)
    admin.is_active = True
    db.commit()
    with pytest.raises(AccountBlocked):
        resolve_principal(db, admin.id)
    admin.is_blocked = False
    db.commit()
    with pytest.raises(AccountLocked):
        resolve_principal(db, admin.id)


def test_expired_lock_does_not_block(db):
    admin = make_admin(db, 'carol', lock_until=datetime.now(timezone.utc) - timedelta(minutes=1))
    assert resolve_principal(db, admin.id).admin_id == admin.id


def test_lock_is_evaluated_against_supplied_clock(db):
    until = datetime(2030, 1, 1, tzinfo=timezone.utc)
    admin = make_admin(db, 'dave', lock_until=until)
    with pytest.raises(AccountLocked):
        resolve_principal(db, admin.id, now=until - timedelta(seconds=1))
    assert resolve_principal(db, admin.id, now=until + timedelta(seconds=1)).admin_id == admin.id


def test_deactivated_account_token_is_rejected_and_cookie_cleared(client, db):
    admin = make_admin(db, 'erin', [make_role(db, 'viewer', [('dashboard', ['view'])])])
    headers = auth_headers(admin)
    assert client.get('/auth/me', headers=headers).status_code == 200
    admin.is_active = False
    db.commit()
    resp = client.get('/auth/me', headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()['error']['detail'] == 'Authentication required'
    cleared = [h for h in resp.headers.getlist('Set-Cookie') if h.startswith('access_token_cookie=')]
    assert cleared and 'Max-Age=0' in cleared[0]


def test_garbage_token_is_treated_as_no_principal(client):
    resp = client.get('/auth/me', headers={'Authorization': 'Bearer not.a.jwt'})
    assert resp.status_code == 401
    assert any(h.startswith('access_token_cookie=') and 'Max-Age=0' in h for h in resp.headers.getlist('Set-Cookie'))


def test_role_deleted_after_login_is_tolerated(client, db):
    keep = make_role(db, 'brand-team', [('brands', ['view'])])
    gone = make_role(db, 'faq-team', [('faqs', ['view'])])
    admin = make_admin(db, 'frank', [keep, gone])
    headers = auth_headers(admin)
    db.delete(gone)
    db.commit()
    body = client.get('/auth/me', headers=headers).get_json()
    assert body['permissions'] == {'brands': ['view']}
    assert [r['slug'] for r in body['admin']['roles']] == ['brand-team']
