from __future__ import annotations
from typing import Any, Dict, Optional
from flask import g, has_request_context
from backoffice import get_db
from backoffice.models.audit import AuditLog
from backoffice.services.policy import matrix_to_json


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Stage an audit log entry in the current DB session.

    The actor and its permission matrix come from ``g.principal``; outside a
    request (seeding, scripts) the actor id is 0.
    """
    session = get_db()
    principal = g.get('principal') if has_request_context() else None
    log = AuditLog(
        actor_admin_id=principal.admin_id if principal else 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        perms_snapshot={'perms': matrix_to_json(principal.matrix)} if principal else {},
        meta=meta or {},
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
