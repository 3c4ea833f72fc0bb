from __future__ import annotations
from typing import Any, Dict, List
from flask import request, abort
from sqlalchemy import select, func
from backoffice.config.pagination import normalize_datatable_window


def datatable_window():
    try:
        return normalize_datatable_window(request.args)
    except ValueError as e:
        abort(400, description=str(e))


def count_rows(session, stmt) -> int:
    return session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()


def build_list_payload(rows: List[Dict[str, Any]], draw: int, total: int, filtered: int, limit: int, offset: int):
    """DataTables envelope plus the plain pagination block API clients read."""
    return {
        'draw': draw,
        'recordsTotal': total,
        'recordsFiltered': filtered,
        'data': rows,
        'pagination': {
            'total': filtered,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
        },
    }
