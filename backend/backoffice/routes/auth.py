from flask import Blueprint, request, abort, redirect, g, current_app, jsonify
from flask_jwt_extended import create_access_token, set_access_cookies, unset_jwt_cookies
from backoffice import get_db
from backoffice.services.accounts import authenticate
from backoffice.services.identity import resolve_principal
from backoffice.services.policy import permission_summary, build_navigation
from backoffice.decorators.auth import login_required, ACCESS_DENIED_PATH

auth_bp = Blueprint('auth', __name__)


@auth_bp.get('/auth/login')
def login_page():
    # already-authenticated users are sent away from the login form
    if g.get('principal') is not None:
        return redirect('/dashboard')
    return {'authenticated': False, 'next': request.args.get('next')}


@auth_bp.post('/auth/login')
def login():
    data = request.get_json(silent=True) or request.form.to_dict()
    identifier = data.get('email') or data.get('username')
    password = data.get('password')
    if not identifier or not password:
        abort(400, description='email & password required')
    session = get_db()
    admin = authenticate(session, identifier, password, current_app.config, ip=request.remote_addr)
    principal = resolve_principal(session, admin.id)
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(admin.id))
    resp = jsonify({'access_token': token, **permission_summary(principal)})
    set_access_cookies(resp, token)
    # a stale cookie on this request must not wipe the fresh one
    g.clear_session = False
    return resp


@auth_bp.post('/auth/logout')
def logout():
    resp = jsonify({'status': 'logged_out'})
    unset_jwt_cookies(resp)
    return resp


@auth_bp.get('/auth/me')
@login_required
def me():
    principal = g.principal
    summary = permission_summary(principal)
    summary['admin']['email'] = principal.email
    return summary


@auth_bp.get('/dashboard')
@login_required
def dashboard():
    summary = permission_summary(g.principal)
    summary['navigation'] = build_navigation(g.principal.matrix)
    return summary


@auth_bp.get(ACCESS_DENIED_PATH)
def access_denied():
    return {
        'error': {
            'status': 403,
            'title': 'Forbidden',
            'detail': 'You do not have permission to access this resource',
        }
    }, 403
