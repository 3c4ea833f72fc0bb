from flask import Blueprint, abort
from sqlalchemy import update
from backoffice.models.catalog import Brand
from backoffice.routes.orderable import OrderableResource, register_orderable_routes, ensure_unique_slug
from backoffice.utils.validation import parse_bool
from backoffice.utils.dates import isoformat_z

brands_bp = Blueprint('brands', __name__)


def serialize_brand(b: Brand):
    return {
        'id': b.id, 'name': b.name, 'slug': b.slug, 'description': b.description, 'website': b.website,
        'seo_title': b.seo_title, 'seo_description': b.seo_description, 'seo_keywords': b.seo_keywords or [],
        'is_featured': b.is_featured, 'is_active': b.is_active, 'sort_order': b.sort_order,
        'created_at': isoformat_z(b.created_at), 'updated_at': isoformat_z(b.updated_at),
    }


def apply_brand_fields(session, brand: Brand, data, creating: bool):
    if creating or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            abort(400, description='name required')
        if len(name) > 100:
            abort(400, description='name too long')
        brand.name = name
    if creating or 'slug' in data:
        brand.slug = ensure_unique_slug(session, Brand, data.get('slug') or brand.name, exclude_id=brand.id)
    for key in ('description', 'website', 'seo_title', 'seo_description'):
        if key in data:
            setattr(brand, key, data[key] or None)
    if brand.seo_title and len(brand.seo_title) > 60:
        abort(400, description='seo_title too long')
    if brand.seo_description and len(brand.seo_description) > 160:
        abort(400, description='seo_description too long')
    if 'seo_keywords' in data:
        keywords = data['seo_keywords'] or []
        if isinstance(keywords, str):
            keywords = [k.strip() for k in keywords.split(',') if k.strip()]
        brand.seo_keywords = keywords
    if 'is_featured' in data or creating:
        brand.is_featured = bool(parse_bool(data.get('is_featured'), False))


def _set_featured(value: bool):
    def handler(session, ids):
        result = session.execute(
            update(Brand).where(Brand.id.in_(ids), Brand.is_deleted.is_(False)).values(is_featured=value)
        )
        return result.rowcount
    return handler


register_orderable_routes(brands_bp, OrderableResource(
    model=Brand,
    module='brands',
    entity='Brand',
    serialize=serialize_brand,
    apply_fields=apply_brand_fields,
    search_columns=[Brand.name, Brand.slug, Brand.description],
    sort_columns={
        'name': Brand.name, 'slug': Brand.slug, 'sort_order': Brand.sort_order,
        'is_active': Brand.is_active, 'is_featured': Brand.is_featured, 'created_at': Brand.created_at,
    },
    extra_bulk={'feature': ('edit', _set_featured(True)), 'unfeature': ('edit', _set_featured(False))},
))
