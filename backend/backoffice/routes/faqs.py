from flask import Blueprint, abort
from backoffice.models.catalog import Faq
from backoffice.routes.orderable import OrderableResource, register_orderable_routes
from backoffice.utils.dates import isoformat_z

faqs_bp = Blueprint('faqs', __name__)


def serialize_faq(f: Faq):
    return {
        'id': f.id, 'question': f.question, 'answer': f.answer,
        'is_active': f.is_active, 'sort_order': f.sort_order,
        'created_at': isoformat_z(f.created_at), 'updated_at': isoformat_z(f.updated_at),
    }


def apply_faq_fields(session, faq: Faq, data, creating: bool):
    for key, limit in (('question', 500), ('answer', None)):
        if creating or key in data:
            value = (data.get(key) or '').strip()
            if not value:
                abort(400, description=f'{key} required')
            if limit and len(value) > limit:
                abort(400, description=f'{key} too long')
            setattr(faq, key, value)


register_orderable_routes(faqs_bp, OrderableResource(
    model=Faq,
    module='faqs',
    entity='Faq',
    serialize=serialize_faq,
    apply_fields=apply_faq_fields,
    search_columns=[Faq.question, Faq.answer],
    sort_columns={'question': Faq.question, 'sort_order': Faq.sort_order, 'is_active': Faq.is_active},
))
