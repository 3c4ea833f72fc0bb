from datetime import datetime, timedelta, timezone
from backoffice.models.authz import Admin
from backoffice.services.accounts import authenticate
from tests.seed_helpers import make_role, make_admin, auth_headers, page_headers, PASSWORD


def _login(client, identifier, password=PASSWORD):
    return client.post('/auth/login', json={'email': identifier, 'password': password})


def test_login_returns_token_cookie_and_matrix(client, db):
    role = make_role(db, 'editor', [('brands', ['view', 'edit'])], level=50)
    make_admin(db, 'alice', [role])
    resp = _login(client, 'ALICE@example.com')
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['access_token']
    assert body['permissions'] == {'brands': ['view', 'edit']}
    assert body['admin']['roles'][0]['slug'] == 'editor'
    assert any(h.startswith('access_token_cookie=') for h in resp.headers.getlist('Set-Cookie'))
    me = client.get('/auth/me', headers={'Authorization': f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.get_json()['admin']['email'] == 'alice@example.com'


def test_login_by_username(client, db):
    make_admin(db, 'bob')
    assert _login(client, 'bob').status_code == 200


def test_cookie_session_authenticates_follow_up_requests(client, db):
    make_admin(db, 'cookie', [make_role(db, 'dash', [('dashboard', ['view'])])])
    assert _login(client, 'cookie').status_code == 200
    resp = client.get('/dashboard')
    assert resp.status_code == 200
    assert resp.get_json()['navigation']['dashboard']['visible'] is True
    client.post('/auth/logout')
    assert client.get('/dashboard').status_code == 401


def test_bad_credentials(client, db):
    make_admin(db, 'carol')
    resp = _login(client, 'carol', 'wrong')
    assert resp.status_code == 401
    assert resp.get_json()['error']['detail'] == 'Invalid credentials'
    assert _login(client, 'nobody@example.com').status_code == 401
    assert client.post('/auth/login', json={'email': 'carol'}).status_code == 400


def test_lockout_after_max_attempts(client, db, app_instance):
    admin = make_admin(db, 'dave')
    limit = app_instance.config['MAX_LOGIN_ATTEMPTS']
    for _ in range(limit - 1):
        assert _login(client, 'dave', 'nope').get_json()['error']['detail'] == 'Invalid credentials'
    last = _login(client, 'dave', 'nope')
    assert last.status_code == 401
    assert last.get_json()['error']['detail'] == 'Account is temporarily locked'
    # even the right password is refused while locked
    assert _login(client, 'dave').get_json()['error']['detail'] == 'Account is temporarily locked'
    db.refresh(admin)
    assert admin.login_attempts == limit and admin.lock_until is not None
    # once the lock expires the counter is reset
    later = datetime.now(timezone.utc) + timedelta(minutes=app_instance.config['LOCK_TIME_MINUTES'] + 1)
    ok = authenticate(db, 'dave', PASSWORD, app_instance.config, now=later)
    assert ok.login_attempts == 0 and ok.lock_until is None and ok.last_login_at == later


def test_inactive_and_blocked_accounts_cannot_login(client, db):
    make_admin(db, 'erin', is_active=False)
    make_admin(db, 'frank', is_blocked=True, block_reason='Chargeback fraud')
    assert _login(client, 'erin').get_json()['error']['detail'] == 'Account is inactive'
    assert _login(client, 'frank').get_json()['error']['detail'] == 'Chargeback fraud'


def test_login_page_redirects_authenticated_admin(client, db):
    admin = make_admin(db, 'gina')
    resp = client.get('/auth/login', headers=auth_headers(admin))
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/dashboard')
    anon = client.get('/auth/login?next=/brands')
    assert anon.status_code == 200
    assert anon.get_json() == {'authenticated': False, 'next': '/brands'}


def test_page_requests_redirect_instead_of_json(client, db):
    resp = client.get('/brands', headers=page_headers())
    assert resp.status_code == 302
    assert '/auth/login?next=/brands' in resp.headers['Location']
    admin = make_admin(db, 'henry', [make_role(db, 'faq-only', [('faqs', ['view'])])])
    resp = client.get('/brands', headers=page_headers(admin))
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/access-denied')
    denied = client.get('/access-denied')
    assert denied.status_code == 403
    assert denied.get_json()['error']['status'] == 403


def test_xhr_and_api_requests_get_json_denials(client, db):
    admin = make_admin(db, 'ivy')
    xhr = {**page_headers(admin), 'X-Requested-With': 'XMLHttpRequest'}
    resp = client.get('/brands', headers=xhr)
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Missing permission: brands:view'
    assert client.get('/brands').status_code == 401


def test_dashboard_summary(client, db):
    role = make_role(db, 'content', [('faqs', ['view', 'add']), ('dashboard', ['view'])])
    admin = make_admin(db, 'jack', [role])
    body = client.get('/dashboard', headers=auth_headers(admin)).get_json()
    assert body['accessible_modules'] == ['dashboard', 'faqs']
    assert body['total_modules'] == 2
    assert body['is_super'] is False
    assert body['navigation']['content']['children']['faqs']['visible'] is True
    assert body['navigation']['ecommerce']['visible'] is False


def test_login_records_bookkeeping(client, db):
    admin = make_admin(db, 'kim', login_attempts=2)
    assert _login(client, 'kim').status_code == 200
    fresh = db.get(Admin, admin.id)
    assert fresh.login_attempts == 0
    assert fresh.last_login_at is not None
    assert fresh.last_login_ip == '127.0.0.1'


def test_email_match_wins_over_username_equal_to_it(client, db):
    owner = make_admin(db, 'lena')
    # older rows may carry an email-shaped username
    make_admin(db, 'lena@example.com', email='shadow@example.com', password='another-pass-9')
    resp = _login(client, 'lena@example.com')
    assert resp.status_code == 200, resp.get_json()
    me = client.get('/auth/me', headers={'Authorization': f"Bearer {resp.get_json()['access_token']}"})
    assert me.get_json()['admin']['id'] == owner.id
    assert _login(client, 'lena@example.com', 'another-pass-9').status_code == 401
