from functools import wraps
import logging

from flask import request, redirect, abort, g

from backoffice.constants.permissions import SUPER_ADMIN_SLUG
from backoffice.errors import AuthorizationDenied, AuthenticationRequired
from backoffice.services import gate

logger = logging.getLogger(__name__)

LOGIN_PATH = '/auth/login'
ACCESS_DENIED_PATH = '/access-denied'


def wants_page() -> bool:
    """Browser page navigation (HTML accepted, not an XHR) gets redirects instead of JSON."""
    if request.headers.get('X-Requested-With') == 'XMLHttpRequest':
        return False
    accept = request.headers.get('Accept', '')
    return 'text/html' in accept


def deny(err: AuthorizationDenied):
    logger.info('Denied %s %s: %s', request.method, request.path, err.detail)
    if wants_page():
        if isinstance(err, AuthenticationRequired):
            return redirect(f'{LOGIN_PATH}?next={request.path}')
        return redirect(ACCESS_DENIED_PATH)
    abort(err.status, description=err.detail)


def _guard(check):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                check(g.get('principal'))
            except AuthorizationDenied as e:
                return deny(e)
            return fn(*args, **kwargs)
        return wrapper
    return outer


def login_required(fn):
    return _guard(gate.check_authenticated)(fn)


def require_permission(module: str, operation: str):
    return _guard(lambda p: gate.check_permission(p, module, operation))


def require_role(role_slug: str):
    return _guard(lambda p: gate.check_role(p, role_slug))


def require_any_permission(*pairs):
    return _guard(lambda p: gate.check_any_permission(p, pairs))


def require_super_admin(fn):
    return require_role(SUPER_ADMIN_SLUG)(fn)
