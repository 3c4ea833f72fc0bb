"""Request-body helpers shared by the JSON endpoints.

Form-encoded checkboxes arrive as 'on'; JSON clients send booleans. Both
normalise through parse_bool. Positions are integers; anything else is an
InvalidPosition (400) rather than a silent default.
"""
from __future__ import annotations
from typing import Any, Iterable, Optional
from flask import abort

from backoffice.errors import InvalidPosition

_TRUE = {'1', 'true', 'on', 'yes', 'active'}
_FALSE = {'0', 'false', 'off', 'no', 'inactive', ''}


def parse_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    abort(400, description=f'invalid boolean {value!r}')


def parse_position(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise InvalidPosition('sort_order must be an integer')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPosition('sort_order must be an integer')


def require_fields(data: dict, fields: Iterable[str]):
    missing = [f for f in fields if not str(data.get(f) or '').strip()]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def parse_id_list(values: Any, field_name: str = 'ids'):
    if not isinstance(values, list):
        abort(400, description=f'{field_name} must be a list')
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must contain integers')


__all__ = ['parse_bool', 'parse_position', 'require_fields', 'parse_id_list']
