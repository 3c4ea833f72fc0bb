"""Shared HTTP surface for display-ordered entities (brands, categories, faqs).

Each entity module describes itself with an ``OrderableResource`` and calls
``register_orderable_routes``; position and status changes always go through
``OrderedCollectionManager`` so the dense order holds after every request.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flask import Blueprint, request, abort, g
from sqlalchemy import select, or_

from backoffice import get_db
from backoffice.constants.permissions import slugify
from backoffice.decorators.audit import audit_log
from backoffice.decorators.auth import require_permission, require_any_permission
from backoffice.services.ordering import OrderedCollectionManager
from backoffice.services.policy import can_perform_bulk_operation
from backoffice.utils.listing import datatable_window, count_rows, build_list_payload
from backoffice.utils.sorting import apply_multi_sort, sort_expr_from_args
from backoffice.utils.validation import parse_bool, parse_position, parse_id_list

BULK_ACTIONS = {'activate': 'edit', 'deactivate': 'edit', 'delete': 'delete'}


@dataclass
class OrderableResource:
    model: Any
    module: str
    entity: str
    serialize: Callable[[Any], Dict[str, Any]]
    # apply_fields(session, entity, data, creating) validates and assigns non-ordering fields
    apply_fields: Callable[[Any, Any, Dict[str, Any], bool], None]
    search_columns: List[Any] = field(default_factory=list)
    sort_columns: Dict[str, Any] = field(default_factory=dict)
    # extra bulk actions: name -> (operation, handler(session, ids) -> changed count)
    extra_bulk: Dict[str, Any] = field(default_factory=dict)


def ensure_unique_slug(session, model, slug: str, exclude_id: Optional[int] = None) -> str:
    slug = slugify(slug)
    if not slug:
        abort(400, description='slug required')
    stmt = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if session.execute(stmt).first():
        abort(400, description='slug already in use')
    return slug


def register_orderable_routes(bp: Blueprint, res: OrderableResource):
    model, module, action_prefix = res.model, res.module, res.entity.upper()

    def get_or_404(session, pk):
        obj = session.execute(select(model).where(model.id == pk, model.is_deleted.is_(False))).scalar_one_or_none()
        if not obj:
            abort(404)
        return obj

    @bp.get('')
    @require_permission(module, 'view')
    def list_items():
        session = get_db()
        draw, limit, offset = datatable_window()
        base = select(model).where(model.is_deleted.is_(False))
        total = count_rows(session, base)
        stmt = base
        status = request.args.get('status')
        if status in ('active', 'inactive'):
            stmt = stmt.where(model.is_active.is_(status == 'active'))
        elif status not in (None, '', 'all'):
            abort(400, description='status invalid')
        term = (request.args.get('search[value]') or request.args.get('q') or '').strip()
        if term and res.search_columns:
            stmt = stmt.where(or_(*[col.ilike(f'%{term}%') for col in res.search_columns]))
        filtered = count_rows(session, stmt)
        sort_expr = sort_expr_from_args(request.args)
        if sort_expr:
            stmt = apply_multi_sort(stmt, sort_expr, res.sort_columns, model.id)
        else:
            # inactive rows carry 0, so list the active sequence first
            stmt = stmt.order_by(model.is_active.desc(), model.sort_order.asc(), model.id.asc())
        rows = session.execute(stmt.offset(offset).limit(limit)).scalars().all()
        return build_list_payload([res.serialize(r) for r in rows], draw, total, filtered, limit, offset)

    @bp.get('/next-order')
    @require_permission(module, 'view')
    def next_order():
        return {'next_order': OrderedCollectionManager(get_db(), model).next_order()}

    @bp.get('/<int:item_id>')
    @require_permission(module, 'view')
    def get_item(item_id: int):
        return res.serialize(get_or_404(get_db(), item_id))

    @bp.post('')
    @require_permission(module, 'add')
    @audit_log(f'{action_prefix}.CREATE', entity=res.entity, entity_id_key='id', meta_keys=['sort_order'])
    def create_item():
        data = request.get_json(silent=True) or request.form.to_dict()
        session = get_db()
        position = parse_position(data.get('sort_order'))
        active = parse_bool(data.get('is_active'), True)
        item = model()
        res.apply_fields(session, item, data, True)
        manager = OrderedCollectionManager(session, model)
        if active:
            manager.insert(item, position)
        else:
            with manager.atomic():
                item.is_active = False
                item.sort_order = 0
                session.add(item)
        return res.serialize(item), 201

    @bp.put('/<int:item_id>')
    @require_permission(module, 'edit')
    @audit_log(f'{action_prefix}.UPDATE', entity=res.entity, entity_id_key='id', meta_keys=['sort_order', 'is_active'])
    def update_item(item_id: int):
        session = get_db()
        item = get_or_404(session, item_id)
        data = request.get_json(silent=True) or request.form.to_dict()
        position = parse_position(data.get('sort_order'))
        active = parse_bool(data.get('is_active')) if 'is_active' in data else None
        res.apply_fields(session, item, data, False)
        OrderedCollectionManager(session, model).update(item, position, active)
        return res.serialize(item)

    @bp.post('/<int:item_id>/move')
    @require_permission(module, 'edit')
    @audit_log(f'{action_prefix}.MOVE', entity=res.entity, entity_id_key='id', meta_keys=['sort_order'])
    def move_item(item_id: int):
        session = get_db()
        item = get_or_404(session, item_id)
        position = parse_position((request.get_json(silent=True) or {}).get('position'))
        if position is None:
            abort(400, description='position required')
        OrderedCollectionManager(session, model).move(item, position)
        return res.serialize(item)

    @bp.post('/<int:item_id>/toggle-status')
    @require_permission(module, 'edit')
    @audit_log(f'{action_prefix}.TOGGLE', entity=res.entity, entity_id_key='id', meta_keys=['is_active'])
    def toggle_item(item_id: int):
        session = get_db()
        item = get_or_404(session, item_id)
        OrderedCollectionManager(session, model).update(item, new_active=not item.is_active)
        return res.serialize(item)

    @bp.delete('/<int:item_id>')
    @require_permission(module, 'delete')
    @audit_log(f'{action_prefix}.DELETE', entity=res.entity, entity_id_arg='item_id')
    def delete_item(item_id: int):
        session = get_db()
        item = get_or_404(session, item_id)
        OrderedCollectionManager(session, model).remove(item)
        return {'status': 'deleted', 'id': item_id}

    @bp.post('/bulk')
    @require_any_permission((module, 'edit'), (module, 'delete'))
    @audit_log(f'{action_prefix}.BULK', entity=res.entity, meta_keys=['action', 'ids', 'changed'])
    def bulk_items():
        data = request.get_json(silent=True) or {}
        action = data.get('action')
        ids = parse_id_list(data.get('ids'))
        if not ids:
            abort(400, description='ids required')
        if action in BULK_ACTIONS:
            operation = BULK_ACTIONS[action]
        elif action in res.extra_bulk:
            operation = res.extra_bulk[action][0]
        else:
            abort(400, description='action invalid')
        if not can_perform_bulk_operation(g.principal.matrix, module, [operation]):
            abort(403, description=f'Missing permission: {module}:{operation}')
        session = get_db()
        manager = OrderedCollectionManager(session, model)
        if action == 'activate':
            changed = manager.bulk_set_active(ids, True)
        elif action == 'deactivate':
            changed = manager.bulk_set_active(ids, False)
        elif action == 'delete':
            changed = manager.bulk_soft_delete(ids)
        else:
            with manager.atomic():
                changed = res.extra_bulk[action][1](session, ids)
        return {'action': action, 'ids': sorted(set(ids)), 'changed': changed}

    @bp.post('/normalize')
    @require_permission(module, 'edit')
    @audit_log(f'{action_prefix}.NORMALIZE', entity=res.entity, meta_keys=['changed'])
    def normalize_items():
        changed = OrderedCollectionManager(get_db(), model).normalize()
        return {'changed': changed}

    return bp
