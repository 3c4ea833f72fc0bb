from flask import Blueprint, abort
from sqlalchemy import select
from backoffice.models.catalog import Category
from backoffice.routes.orderable import OrderableResource, register_orderable_routes, ensure_unique_slug
from backoffice.utils.dates import isoformat_z

categories_bp = Blueprint('categories', __name__)


def serialize_category(c: Category):
    return {
        'id': c.id, 'name': c.name, 'slug': c.slug, 'description': c.description, 'parent_id': c.parent_id,
        'seo_title': c.seo_title, 'seo_description': c.seo_description, 'seo_keywords': c.seo_keywords or [],
        'is_active': c.is_active, 'sort_order': c.sort_order,
        'created_at': isoformat_z(c.created_at), 'updated_at': isoformat_z(c.updated_at),
    }


def _validate_parent(session, category: Category, parent_id):
    if parent_id in (None, ''):
        return None
    try:
        parent_id = int(parent_id)
    except (TypeError, ValueError):
        abort(400, description='parent_id must be int')
    if category.id is not None and parent_id == category.id:
        abort(400, description='category cannot be its own parent')
    parent = session.execute(
        select(Category).where(Category.id == parent_id, Category.is_deleted.is_(False))
    ).scalar_one_or_none()
    if not parent:
        abort(400, description='parent category not found')
    # walk up to reject cycles
    seen = {parent.id}
    while parent.parent_id is not None:
        if parent.parent_id == category.id:
            abort(400, description='category hierarchy cannot contain cycles')
        if parent.parent_id in seen:
            break
        seen.add(parent.parent_id)
        parent = session.get(Category, parent.parent_id)
        if parent is None:
            break
    return parent_id


def apply_category_fields(session, category: Category, data, creating: bool):
    if creating or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            abort(400, description='name required')
        category.name = name
    if creating or 'slug' in data:
        category.slug = ensure_unique_slug(session, Category, data.get('slug') or category.name, exclude_id=category.id)
    if 'description' in data:
        category.description = data['description'] or None
    if 'parent_id' in data:
        category.parent_id = _validate_parent(session, category, data['parent_id'])
    for key in ('seo_title', 'seo_description'):
        if key in data:
            setattr(category, key, data[key] or None)
    if 'seo_keywords' in data:
        keywords = data['seo_keywords'] or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(',') if k.strip()]
        category.seo_keywords = keywords


register_orderable_routes(categories_bp, OrderableResource(
    model=Category,
    module='categories',
    entity='Category',
    serialize=serialize_category,
    apply_fields=apply_category_fields,
    search_columns=[Category.name, Category.slug, Category.description],
    sort_columns={
        'name': Category.name, 'slug': Category.slug, 'sort_order': Category.sort_order,
        'is_active': Category.is_active, 'created_at': Category.created_at,
    },
))
