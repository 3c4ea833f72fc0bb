"""Admin account provisioning and login bookkeeping."""
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import select, func

from backoffice.models.authz import Admin, AdminRole
from backoffice.errors import InvalidCredentials, AccountLocked
from backoffice.services.identity import check_standing
from backoffice.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


def find_admin(session, identifier: str) -> Optional[Admin]:
    ident = (identifier or '').strip().lower()
    if not ident:
        return None
    # an email match wins over a username that happens to equal it
    admin = session.execute(select(Admin).where(func.lower(Admin.email) == ident)).scalar_one_or_none()
    if admin is None:
        admin = session.execute(select(Admin).where(func.lower(Admin.username) == ident)).scalar_one_or_none()
    return admin


def authenticate(session, identifier: str, password: str, settings: Mapping[str, Any],
                 ip: Optional[str] = None, now: Optional[datetime] = None) -> Admin:
    """Verify credentials and update login bookkeeping; commits the bookkeeping.

    Unknown accounts and bad passwords both raise ``InvalidCredentials`` so the
    caller cannot tell which one failed.
    """
    now = now or utcnow()
    admin = find_admin(session, identifier)
    if admin is None:
        raise InvalidCredentials('Invalid credentials')
    # an expired lock is cleared before standing is evaluated
    lock_until = as_utc(admin.lock_until)
    if lock_until and lock_until <= now:
        admin.lock_until = None
        admin.login_attempts = 0
    check_standing(admin, now)

    if not admin.verify_password(password or ''):
        admin.login_attempts = (admin.login_attempts or 0) + 1
        max_attempts = int(settings.get('MAX_LOGIN_ATTEMPTS', 5))
        locked = admin.login_attempts >= max_attempts
        if locked:
            admin.lock_until = now + timedelta(minutes=int(settings.get('LOCK_TIME_MINUTES', 120)))
            logger.warning('Admin %s locked after %s failed attempts', admin.id, admin.login_attempts)
        session.commit()
        if locked:
            raise AccountLocked('Account is temporarily locked')
        raise InvalidCredentials('Invalid credentials')

    admin.login_attempts = 0
    admin.lock_until = None
    admin.last_login_at = now
    admin.last_login_ip = ip
    session.commit()
    logger.info('Admin %s logged in', admin.id)
    return admin


def unlock(admin: Admin):
    admin.login_attempts = 0
    admin.lock_until = None


def create_admin(session, *, first_name: str, last_name: str, email: str, username: str, password: str,
                 role_ids: Iterable[int] = (), phone: Optional[str] = None,
                 created_by: Optional[int] = None) -> Admin:
    """Add (not commit) a new admin with hashed password and role links."""
    admin = Admin(
        first_name=first_name,
        last_name=last_name,
        email=email.strip().lower(),
        username=username.strip().lower(),
        phone=phone,
        password_hash='',
        created_by=created_by,
    )
    admin.set_password(password)
    session.add(admin)
    session.flush()
    for rid in sorted(set(role_ids)):
        session.add(AdminRole(admin_id=admin.id, role_id=rid))
    return admin


__all__ = ['find_admin', 'authenticate', 'unlock', 'create_admin']
