"""Pure authorization checks over an already-resolved principal.

Each check returns None on success and raises an ``AuthorizationDenied``
subclass otherwise. No principal is always ``AuthenticationRequired`` (401);
a principal that fails the check gets a 403 error.
"""
from __future__ import annotations
from typing import Iterable, Optional, Tuple

from backoffice.errors import AuthenticationRequired, InsufficientPermission, InsufficientRole
from backoffice.services.principal import Principal


def check_authenticated(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise AuthenticationRequired()
    return principal


def check_permission(principal: Optional[Principal], module: str, operation: str):
    check_authenticated(principal)
    if not principal.can(module, operation):
        raise InsufficientPermission(module, operation)


def check_role(principal: Optional[Principal], role_slug: str):
    check_authenticated(principal)
    if role_slug not in principal.role_slugs:
        raise InsufficientRole(role_slug)


def check_any_permission(principal: Optional[Principal], pairs: Iterable[Tuple[str, str]]):
    check_authenticated(principal)
    pairs = list(pairs)
    for module, operation in pairs:
        if principal.can(module, operation):
            return
    wanted = ', '.join(f'{m}:{o}' for m, o in pairs) or 'none'
    if pairs:
        module, operation = pairs[0]
    else:
        module, operation = '', ''
    raise InsufficientPermission(module, operation, detail=f'Missing any of permissions: {wanted}')


def is_allowed(principal: Optional[Principal], module: str, operation: str) -> bool:
    return principal is not None and principal.can(module, operation)


__all__ = ['check_authenticated', 'check_permission', 'check_role', 'check_any_permission', 'is_allowed']
