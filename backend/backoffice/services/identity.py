"""Identity resolution: session-held account id -> valid ``Principal``.

Checks short-circuit in a fixed order (not found, inactive, blocked, locked).
Any failure means "no principal" for the request and the session cookie is
cleared so a stale identity is never reused.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from flask import g
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy import select

from backoffice.models.authz import Admin, AdminRole
from backoffice.errors import AccountNotFound, AccountInactive, AccountBlocked, AccountLocked, IdentityError
from backoffice.services.principal import Principal, RoleRef, freeze_matrix
from backoffice.services.policy import load_roles, aggregate_permissions
from backoffice.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


def check_standing(admin: Optional[Admin], now: Optional[datetime] = None) -> Admin:
    if admin is None:
        raise AccountNotFound('Account not found')
    if not admin.is_active:
        raise AccountInactive('Account is inactive')
    if admin.is_blocked:
        raise AccountBlocked(admin.block_reason or 'Account is blocked')
    lock_until = as_utc(admin.lock_until)
    if lock_until and lock_until > (now or utcnow()):
        raise AccountLocked('Account is temporarily locked')
    return admin


def resolve_principal(session, account_id, now: Optional[datetime] = None) -> Principal:
    try:
        admin_id = int(account_id)
    except (TypeError, ValueError):
        raise AccountNotFound('Account not found')
    admin = session.execute(select(Admin).where(Admin.id == admin_id)).scalar_one_or_none()
    check_standing(admin, now)

    role_ids = session.execute(select(AdminRole.role_id).where(AdminRole.admin_id == admin.id)).scalars().all()
    roles = load_roles(session, role_ids)
    matrix = aggregate_permissions(session, [r.id for r in roles])
    return Principal(
        admin_id=admin.id,
        email=admin.email,
        username=admin.username,
        full_name=admin.full_name,
        roles=tuple(RoleRef(id=r.id, slug=r.slug, name=r.name, level=r.level) for r in roles),
        matrix=freeze_matrix(matrix),
    )


def current_principal() -> Optional[Principal]:
    return g.get('principal')


def load_request_principal():
    """``before_request`` hook: attach ``g.principal`` (or None) for the gate."""
    from backoffice import get_db
    g.principal = None
    g.clear_session = False
    try:
        verify_jwt_in_request(optional=True)
        identity = get_jwt_identity()
    except (JWTExtendedException, PyJWTError) as e:
        logger.info('Discarding unusable session token: %s', e)
        g.clear_session = True
        return None
    if identity is None:
        return None
    try:
        g.principal = resolve_principal(get_db(), identity)
    except IdentityError as e:
        logger.info('Identity %s rejected: %s', identity, e.reason)
        g.clear_session = True
    return None


__all__ = ['check_standing', 'resolve_principal', 'current_principal', 'load_request_principal']
