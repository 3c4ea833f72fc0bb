"""Environment-backed configuration.

All environment lookups live here; ``create_app`` merges the result into
``app.config`` before applying caller overrides.
"""
from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_settings() -> Dict[str, Any]:
    token_location = os.getenv('JWT_TOKEN_LOCATION', 'headers,cookies')
    return {
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'SQL_ECHO': _env_bool('SQL_ECHO', False),
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'JWT_TOKEN_LOCATION': [t.strip() for t in token_location.split(',') if t.strip()],
        'JWT_COOKIE_CSRF_PROTECT': _env_bool('JWT_COOKIE_CSRF_PROTECT', True),
        'JWT_COOKIE_SECURE': _env_bool('JWT_COOKIE_SECURE', False),
        'JWT_ACCESS_TOKEN_EXPIRES': timedelta(minutes=_env_int('JWT_ACCESS_TOKEN_EXPIRES_MINUTES', 60 * 24)),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
        # login bookkeeping
        'MAX_LOGIN_ATTEMPTS': _env_int('MAX_LOGIN_ATTEMPTS', 5),
        'LOCK_TIME_MINUTES': _env_int('LOCK_TIME_MINUTES', 120),
        # bootstrap
        'SEED_ADMIN_EMAIL': os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com'),
        'SEED_ADMIN_PASSWORD': os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'),
    }

__all__ = ['load_settings']
