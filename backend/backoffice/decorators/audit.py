"""Audit logging decorator for mutating route handlers.

@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    ... return {'id': role.id, 'name': role.name}, 201

entity_id_key picks the entity id from the returned JSON object; entity_id_arg
falls back to a view argument. meta_builder(data, rv, args, kwargs) overrides
meta_keys. Only 2xx responses are audited; a failing audit write is logged
and rolled back, the view's response is returned unchanged.
"""
from __future__ import annotations

from functools import wraps
import logging
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from backoffice.services.audit import add_audit
from backoffice import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) for a view return value."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    status = getattr(rv, 'status_code', 200)
    return rv, status


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if not 200 <= status < 300:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = data.get(entity_id_key) if entity_id_key else None
            if entity_id is None and entity_id_arg:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs)
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            else:
                meta = None
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.exception('Audit write failed for %s', action)
            return rv
        return wrapper
    return outer
