from flask import Blueprint, request, jsonify
from sqlalchemy import func, or_

from axori_api import db
from axori_api.models.communication import (
    Communication, Contact, CommunicationTemplate,
    COMMUNICATION_TYPES, COMMUNICATION_DIRECTIONS, COMMUNICATION_CATEGORIES,
    COMMUNICATION_STATUSES, CONTACT_TYPES, CONTACT_METHODS
)
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.helpers import get_or_404, utcnow, paginate_query
from axori_api.utils.portfolio_access import (
    require_property_permission, check_property_access, load_property_for
)
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_datetime, parse_optional_uuid,
    parse_string_list, parse_bool
)

bp = Blueprint('communications', __name__)

COMMUNICATION_CHOICES = {
    'type': COMMUNICATION_TYPES,
    'direction': COMMUNICATION_DIRECTIONS,
    'category': COMMUNICATION_CATEGORIES,
    'status': COMMUNICATION_STATUSES,
}


def apply_communication_fields(communication, data):
    for field in Communication.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in COMMUNICATION_CHOICES:
            value = validate_choice(value, COMMUNICATION_CHOICES[field], field)
        elif field in ('communication_date', 'acknowledged_at'):
            value = parse_datetime(value, field)
        elif field in ('contact_id', 'transaction_id'):
            value = parse_optional_uuid(value, field)
        elif field in ('attachment_urls', 'tags'):
            value = parse_string_list(value, field)
        elif field in ('acknowledgment_required', 'is_pinned'):
            value = bool(value)
        setattr(communication, field, value)


def snapshot_contact(communication, property):
    """Copy the linked contact's details onto the communication"""
    if not communication.contact_id:
        return
    contact = db.session.get(Contact, communication.contact_id)
    if contact is None or contact.property_id != property.id:
        communication.contact_id = None
        return
    communication.contact_name = communication.contact_name or contact.name
    communication.contact_email = communication.contact_email or contact.email
    communication.contact_phone = communication.contact_phone or contact.phone
    communication.contact_type = communication.contact_type or contact.type


def load_communication(communication_id, permission):
    user = get_authenticated_user()
    communication = get_or_404(Communication, communication_id, 'Communication not found')
    check_property_access(user, communication.property, permission)
    return communication


def load_contact(contact_id, permission):
    user = get_authenticated_user()
    contact = get_or_404(Contact, contact_id, 'Contact not found')
    check_property_access(user, contact.property, permission)
    return contact


def load_template(template_id):
    user = get_authenticated_user()
    template = get_or_404(CommunicationTemplate, template_id, 'Template not found')
    if template.user_id != user.id:
        return None
    return template


# ---------------------------------------------------------------------------
# Communications
# ---------------------------------------------------------------------------

@bp.route('/property/<property_id>', methods=['GET'])
@require_property_permission('view')
def list_communications(property_id):
    """
    Communication log for a property
    ---
    tags:
      - Communications
    parameters:
      - in: query
        name: type
        schema:
          type: string
      - in: query
        name: direction
        schema:
          type: string
      - in: query
        name: category
        schema:
          type: string
      - in: query
        name: status
        schema:
          type: string
      - in: query
        name: contact_id
        schema:
          type: string
      - in: query
        name: search
        schema:
          type: string
      - in: query
        name: is_pinned
        schema:
          type: boolean
      - in: query
        name: start_date
        schema:
          type: string
      - in: query
        name: end_date
        schema:
          type: string
      - in: query
        name: order
        schema:
          type: string
          default: desc
    security:
      - Bearer: []
    responses:
      200:
        description: Pinned first, then by date
    """
    query = Communication.query.filter_by(property_id=request.property.id)
    for field, choices in COMMUNICATION_CHOICES.items():
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(Communication, field) == validate_choice(value, choices, field))
    contact_id = parse_optional_uuid(request.args.get('contact_id'), 'contact_id')
    if contact_id:
        query = query.filter_by(contact_id=contact_id)
    if request.args.get('is_pinned') is not None:
        query = query.filter_by(is_pinned=parse_bool(request.args.get('is_pinned')))
    start = parse_datetime(request.args.get('start_date'), 'start_date')
    end = parse_datetime(request.args.get('end_date'), 'end_date')
    if start:
        query = query.filter(Communication.communication_date >= start)
    if end:
        query = query.filter(Communication.communication_date <= end)
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            Communication.subject.ilike(pattern),
            Communication.summary.ilike(pattern),
            Communication.content.ilike(pattern)
        ))

    date_order = Communication.communication_date.asc() if request.args.get('order') == 'asc' \
        else Communication.communication_date.desc()
    query = query.order_by(Communication.is_pinned.desc(), date_order)

    pagination = paginate_query(query, request.args.get('page', 1, type=int),
                                request.args.get('limit', 50, type=int))
    return jsonify({
        'communications': [c.to_dict() for c in pagination.items],
        'pagination': {
            'page': pagination.page,
            'limit': pagination.per_page,
            'total_count': pagination.total,
            'total_pages': pagination.pages
        }
    }), 200


@bp.route('/<communication_id>', methods=['GET'])
@require_auth
def get_communication(communication_id):
    return jsonify(load_communication(communication_id, 'view').to_dict()), 200


@bp.route('/', methods=['POST'])
@require_auth
def create_communication():
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'property_id', 'type', 'subject')
    property = load_property_for(user, data['property_id'], 'edit')

    communication = Communication(property_id=property.id, created_by=user.id)
    apply_communication_fields(communication, data)
    if communication.communication_date is None:
        communication.communication_date = utcnow()
    snapshot_contact(communication, property)
    db.session.add(communication)
    db.session.commit()
    return jsonify(communication.to_dict()), 201


@bp.route('/<communication_id>', methods=['PATCH'])
@require_auth
def update_communication(communication_id):
    communication = load_communication(communication_id, 'edit')
    data = get_json_body()
    apply_communication_fields(communication, data)
    if data.get('status') == 'acknowledged' and communication.acknowledged_at is None:
        communication.acknowledged_at = utcnow()
    if 'contact_id' in data:
        snapshot_contact(communication, communication.property)
    db.session.commit()
    return jsonify(communication.to_dict()), 200


@bp.route('/<communication_id>', methods=['DELETE'])
@require_auth
def delete_communication(communication_id):
    communication = load_communication(communication_id, 'edit')
    db.session.delete(communication)
    db.session.commit()
    return jsonify({'message': 'Communication deleted'}), 200


@bp.route('/property/<property_id>/stats', methods=['GET'])
@require_property_permission('view')
def get_communication_stats(property_id):
    query = Communication.query.filter_by(property_id=request.property.id)

    def counts(column):
        rows = query.with_entities(column, func.count(Communication.id)).group_by(column).all()
        return {key: count for key, count in rows}

    return jsonify({
        'total': query.count(),
        'by_type': counts(Communication.type),
        'by_status': counts(Communication.status),
        'by_category': counts(Communication.category),
        'requires_response': query.filter(Communication.status == 'requires_response').count(),
        'pinned': query.filter(Communication.is_pinned.is_(True)).count()
    }), 200


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

def apply_contact_fields(contact, data):
    for field in Contact.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'type':
            value = validate_choice(value, CONTACT_TYPES, 'type')
        elif field == 'preferred_contact_method' and value:
            value = validate_choice(value, CONTACT_METHODS, 'preferred_contact_method')
        elif field in ('is_active', 'is_primary'):
            value = bool(value)
        setattr(contact, field, value)


@bp.route('/property/<property_id>/contacts', methods=['GET'])
@require_property_permission('view')
def list_contacts(property_id):
    query = Contact.query.filter_by(property_id=request.property.id)
    if request.args.get('type'):
        query = query.filter_by(type=validate_choice(request.args['type'], CONTACT_TYPES, 'type'))
    if request.args.get('active') is not None:
        query = query.filter_by(is_active=parse_bool(request.args.get('active')))
    contacts = query.order_by(Contact.is_primary.desc(), Contact.name).all()
    return jsonify([contact.to_dict() for contact in contacts]), 200


@bp.route('/contacts/<contact_id>', methods=['GET'])
@require_auth
def get_contact(contact_id):
    return jsonify(load_contact(contact_id, 'view').to_dict()), 200


@bp.route('/contacts', methods=['POST'])
@require_auth
def create_contact():
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'property_id', 'name')
    property = load_property_for(user, data['property_id'], 'edit')

    contact = Contact(property_id=property.id, created_by=user.id)
    apply_contact_fields(contact, data)
    db.session.add(contact)
    db.session.commit()
    return jsonify(contact.to_dict()), 201


@bp.route('/contacts/<contact_id>', methods=['PATCH'])
@require_auth
def update_contact(contact_id):
    contact = load_contact(contact_id, 'edit')
    apply_contact_fields(contact, get_json_body())
    if not contact.name:
        db.session.rollback()
        return jsonify({'error': 'Contact name cannot be empty'}), 400
    db.session.commit()
    return jsonify(contact.to_dict()), 200


@bp.route('/contacts/<contact_id>', methods=['DELETE'])
@require_auth
def delete_contact(contact_id):
    contact = load_contact(contact_id, 'edit')
    db.session.delete(contact)
    db.session.commit()
    return jsonify({'message': 'Contact deleted'}), 200


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def apply_template_fields(template, data):
    for field in CommunicationTemplate.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'type':
            value = validate_choice(value, COMMUNICATION_TYPES, 'type')
        elif field == 'category':
            value = validate_choice(value, COMMUNICATION_CATEGORIES, 'category')
        elif field == 'variables':
            value = parse_string_list(value, 'variables')
        setattr(template, field, value)


@bp.route('/templates', methods=['GET'])
@require_auth
def list_templates():
    user = get_authenticated_user()
    query = CommunicationTemplate.query.filter_by(user_id=user.id)
    if request.args.get('type'):
        query = query.filter_by(type=request.args['type'])
    if request.args.get('category'):
        query = query.filter_by(category=request.args['category'])
    templates = query.order_by(CommunicationTemplate.usage_count.desc(), CommunicationTemplate.name).all()
    return jsonify([template.to_dict() for template in templates]), 200


@bp.route('/templates/<template_id>', methods=['GET'])
@require_auth
def get_template(template_id):
    template = load_template(template_id)
    if template is None:
        return jsonify({'error': 'Template not found'}), 404
    return jsonify(template.to_dict()), 200


@bp.route('/templates', methods=['POST'])
@require_auth
def create_template():
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'name', 'body')
    template = CommunicationTemplate(user_id=user.id, usage_count=0)
    apply_template_fields(template, data)
    db.session.add(template)
    db.session.commit()
    return jsonify(template.to_dict()), 201


@bp.route('/templates/<template_id>', methods=['PATCH'])
@require_auth
def update_template(template_id):
    template = load_template(template_id)
    if template is None:
        return jsonify({'error': 'Template not found'}), 404
    apply_template_fields(template, get_json_body())
    db.session.commit()
    return jsonify(template.to_dict()), 200


@bp.route('/templates/<template_id>', methods=['DELETE'])
@require_auth
def delete_template(template_id):
    template = load_template(template_id)
    if template is None:
        return jsonify({'error': 'Template not found'}), 404
    db.session.delete(template)
    db.session.commit()
    return jsonify({'message': 'Template deleted'}), 200


@bp.route('/templates/<template_id>/use', methods=['POST'])
@require_auth
def use_template(template_id):
    """Record that a template was used"""
    template = load_template(template_id)
    if template is None:
        return jsonify({'error': 'Template not found'}), 404
    template.usage_count = (template.usage_count or 0) + 1
    template.last_used_at = utcnow()
    db.session.commit()
    return jsonify(template.to_dict()), 200
