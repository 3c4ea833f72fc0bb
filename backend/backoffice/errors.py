"""Domain error taxonomy.

Every error carries an HTTP ``status`` and a short ``title`` so the app-level
error handler can render the standard ``{"error": {...}}`` payload without a
per-type lookup table.
"""
from __future__ import annotations
from typing import Optional


class BackofficeError(Exception):
    status = 500
    title = 'Internal Server Error'

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.title)
        self.detail = detail or self.title

    def to_payload(self):
        return {
            'error': {
                'status': self.status,
                'title': self.title,
                'detail': self.detail,
            }
        }


# --- Identity resolution ---

class IdentityError(BackofficeError):
    """Session-held identity could not be turned into a valid principal."""
    status = 401
    title = 'Unauthorized'
    reason = 'identity_invalid'


class AccountNotFound(IdentityError):
    reason = 'account_not_found'


class AccountInactive(IdentityError):
    reason = 'account_inactive'


class AccountBlocked(IdentityError):
    reason = 'account_blocked'


class AccountLocked(IdentityError):
    reason = 'account_locked'


class InvalidCredentials(IdentityError):
    reason = 'invalid_credentials'


# --- Authorization gate ---

class AuthorizationDenied(BackofficeError):
    status = 403
    title = 'Forbidden'


class AuthenticationRequired(AuthorizationDenied):
    status = 401
    title = 'Unauthorized'

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or 'Authentication required')


class InsufficientPermission(AuthorizationDenied):
    def __init__(self, module: str, operation: str, detail: Optional[str] = None):
        self.module = module
        self.operation = operation
        super().__init__(detail or f'Missing permission: {module}:{operation}')


class InsufficientRole(AuthorizationDenied):
    def __init__(self, role_slug: str):
        self.role_slug = role_slug
        super().__init__(f'Required role: {role_slug}')


# --- Ordered collections ---

class OrderingError(BackofficeError):
    pass


class InvalidPosition(OrderingError):
    status = 400
    title = 'Bad Request'


class PersistenceFailure(OrderingError):
    status = 500
    title = 'Internal Server Error'

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or 'Operation failed, no changes made')


# --- Integrity guards ---

class ProtectedRecordError(BackofficeError):
    status = 400
    title = 'Bad Request'


__all__ = [
    'BackofficeError', 'IdentityError', 'AccountNotFound', 'AccountInactive', 'AccountBlocked',
    'AccountLocked', 'InvalidCredentials', 'AuthorizationDenied', 'AuthenticationRequired',
    'InsufficientPermission', 'InsufficientRole', 'OrderingError', 'InvalidPosition',
    'PersistenceFailure', 'ProtectedRecordError',
]
