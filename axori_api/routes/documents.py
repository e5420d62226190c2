from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func, or_, String, cast

from axori_api import db
from axori_api.models.document import (
    PropertyDocument, DOCUMENT_TYPES, PROCESSING_STATUSES, TAX_YEAR_REQUIRED_TYPES
)
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.document_processing import trigger_document_processing
from axori_api.utils.helpers import get_or_404, utctoday
from axori_api.utils.portfolio_access import (
    require_property_permission, check_property_access, load_property_for
)
from axori_api.utils.storage import (
    build_storage_path, validate_upload, upload_file, delete_file,
    generate_presigned_url, generate_presigned_upload_url
)
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_int, parse_bool, parse_string_list
)

bp = Blueprint('documents', __name__)

SORT_FIELDS = {
    'uploaded_at': PropertyDocument.uploaded_at,
    'document_year': PropertyDocument.document_year,
    'document_type': PropertyDocument.document_type,
    'original_filename': PropertyDocument.original_filename,
    'size_bytes': PropertyDocument.size_bytes,
}


def validate_document_year(value):
    return parse_int(value, 'document_year', minimum=1900, maximum=utctoday().year + 1)


def load_document(document_id, permission):
    user = get_authenticated_user()
    document = get_or_404(PropertyDocument, document_id, 'Document not found')
    check_property_access(user, document.property, permission)
    return document


def document_counts(query, column):
    rows = query.with_entities(column, func.count(PropertyDocument.id)).group_by(column).all()
    return {str(key) if key is not None else 'none': count for key, count in rows}


@bp.route('/property/<property_id>', methods=['GET'])
@require_property_permission('view')
def list_documents(property_id):
    """
    List a property's documents
    ---
    tags:
      - Documents
    parameters:
      - in: query
        name: type
        schema:
          type: string
      - in: query
        name: year
        schema:
          type: integer
      - in: query
        name: status
        schema:
          type: string
          enum: [pending, processing, completed, failed]
      - in: query
        name: search
        schema:
          type: string
        description: Matches filename, description and tags
      - in: query
        name: sort
        schema:
          type: string
          default: uploaded_at
      - in: query
        name: order
        schema:
          type: string
          default: desc
      - in: query
        name: page
        schema:
          type: integer
          default: 1
      - in: query
        name: limit
        schema:
          type: integer
          default: 20
    security:
      - Bearer: []
    responses:
      200:
        description: Documents with pagination
      403:
        description: No access to the property
    """
    query = PropertyDocument.query.filter_by(property_id=request.property.id)

    doc_type = request.args.get('type')
    if doc_type:
        query = query.filter_by(document_type=validate_choice(doc_type, DOCUMENT_TYPES, 'type'))
    year = request.args.get('year', type=int)
    if year:
        query = query.filter_by(document_year=year)
    status = request.args.get('status')
    if status:
        query = query.filter_by(processing_status=validate_choice(status, PROCESSING_STATUSES, 'status'))
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            PropertyDocument.original_filename.ilike(pattern),
            PropertyDocument.description.ilike(pattern),
            cast(PropertyDocument.tags, String).ilike(pattern)
        ))

    sort_column = SORT_FIELDS.get(request.args.get('sort', 'uploaded_at'), PropertyDocument.uploaded_at)
    order = request.args.get('order', 'desc')
    query = query.order_by(sort_column.asc() if order == 'asc' else sort_column.desc())

    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 20, type=int), 1), 100)
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    return jsonify({
        'documents': [doc.to_dict() for doc in pagination.items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total_count': pagination.total,
            'total_pages': pagination.pages
        }
    }), 200


@bp.route('/<document_id>', methods=['GET'])
@require_auth
def get_document(document_id):
    document = load_document(document_id, 'view')
    data = document.to_dict()
    data['download_url'] = generate_presigned_url(document.storage_path)
    return jsonify(data), 200


@bp.route('/upload', methods=['POST'])
@require_auth
def upload_document():
    """
    Upload a file and register it (multipart form)
    ---
    tags:
      - Documents
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        multipart/form-data:
          schema:
            type: object
            required:
              - file
              - property_id
            properties:
              file:
                type: string
                format: binary
              property_id:
                type: string
              document_type:
                type: string
              document_year:
                type: integer
              description:
                type: string
              tags:
                type: string
                description: Comma separated
              enable_ai_processing:
                type: boolean
    responses:
      201:
        description: Document stored; AI processing starts when enabled
      400:
        description: Unsupported type, too large or invalid fields
      503:
        description: Storage not configured
    """
    user = get_authenticated_user()
    file = request.files.get('file')
    if not file or not file.filename:
        return jsonify({'error': 'No file provided'}), 400
    if not request.form.get('property_id'):
        return jsonify({'error': 'property_id is required'}), 400

    property = load_property_for(user, request.form['property_id'], 'edit')
    document_type = validate_choice(request.form.get('document_type', 'other'), DOCUMENT_TYPES, 'document_type')
    document_year = validate_document_year(request.form.get('document_year'))

    data = file.read()
    mime_type = file.mimetype or 'application/octet-stream'
    validate_upload(mime_type, len(data))

    storage_path = build_storage_path(user.id, property.id, file.filename)
    upload_file(storage_path, data, mime_type)

    enable_ai = parse_bool(request.form.get('enable_ai_processing'))
    document = PropertyDocument(
        property_id=property.id,
        storage_path=storage_path,
        original_filename=file.filename,
        mime_type=mime_type,
        size_bytes=len(data),
        document_type=document_type,
        document_year=document_year,
        description=request.form.get('description'),
        tags=parse_string_list(request.form.get('tags'), 'tags'),
        processing_status='pending' if enable_ai else None,
        uploaded_by=user.id
    )
    db.session.add(document)
    db.session.commit()

    if enable_ai:
        trigger_document_processing(document.id)
        db.session.refresh(document)
    return jsonify(document.to_dict()), 201


@bp.route('/upload-url', methods=['POST'])
@require_auth
def create_upload_url():
    """Presigned PUT URL for uploading straight to storage"""
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'property_id', 'filename', 'mime_type')
    property = load_property_for(user, data['property_id'], 'edit')
    validate_upload(data['mime_type'], parse_int(data.get('size_bytes'), 'size_bytes', minimum=0))

    storage_path = build_storage_path(user.id, property.id, data['filename'])
    return jsonify({
        'upload_url': generate_presigned_upload_url(storage_path, data['mime_type']),
        'storage_path': storage_path,
        'expires_in': current_app.config.get('S3_PRESIGNED_URL_EXPIRES', 3600)
    }), 200


@bp.route('/', methods=['POST'])
@require_auth
def create_document():
    """Register an object that was uploaded through a presigned URL"""
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'property_id', 'storage_path', 'original_filename')
    property = load_property_for(user, data['property_id'], 'edit')

    if not data['storage_path'].startswith(f'{user.id}/{property.id}/'):
        return jsonify({'error': 'storage_path does not belong to this property'}), 400
    if data.get('mime_type') or data.get('size_bytes') is not None:
        validate_upload(data.get('mime_type'), parse_int(data.get('size_bytes'), 'size_bytes', minimum=0))

    enable_ai = parse_bool(data.get('enable_ai_processing'))
    document = PropertyDocument(
        property_id=property.id,
        storage_path=data['storage_path'],
        original_filename=data['original_filename'],
        mime_type=data.get('mime_type'),
        size_bytes=data.get('size_bytes'),
        document_type=validate_choice(data.get('document_type', 'other'), DOCUMENT_TYPES, 'document_type'),
        document_year=validate_document_year(data.get('document_year')),
        description=data.get('description'),
        tags=parse_string_list(data.get('tags'), 'tags'),
        processing_status='pending' if enable_ai else None,
        uploaded_by=user.id
    )
    db.session.add(document)
    db.session.commit()

    if enable_ai:
        trigger_document_processing(document.id)
        db.session.refresh(document)
    return jsonify(document.to_dict()), 201


@bp.route('/<document_id>', methods=['PATCH'])
@require_auth
def update_document(document_id):
    document = load_document(document_id, 'edit')
    data = get_json_body()
    if 'document_type' in data:
        document.document_type = validate_choice(data['document_type'], DOCUMENT_TYPES, 'document_type')
    if 'document_year' in data:
        document.document_year = validate_document_year(data['document_year'])
    if 'description' in data:
        document.description = data['description']
    if 'tags' in data:
        document.tags = parse_string_list(data['tags'], 'tags')
    db.session.commit()
    return jsonify(document.to_dict()), 200


@bp.route('/<document_id>', methods=['DELETE'])
@require_auth
def delete_document(document_id):
    document = load_document(document_id, 'delete')
    storage_path = document.storage_path
    db.session.delete(document)
    db.session.commit()
    if not delete_file(storage_path):
        current_app.logger.warning(f"Document {document_id} deleted but {storage_path} remains in storage")
    return jsonify({'success': True, 'storage_path': storage_path}), 200


@bp.route('/<document_id>/process', methods=['POST'])
@require_auth
def process_document(document_id):
    """
    (Re)run AI extraction for a document
    ---
    tags:
      - Documents
    security:
      - Bearer: []
    responses:
      200:
        description: Processing queued
      409:
        description: Already processing
    """
    document = load_document(document_id, 'edit')
    if document.processing_status == 'processing':
        return jsonify({'error': 'Document is already being processed'}), 409

    document.processing_status = 'pending'
    document.ai_error = None
    db.session.commit()

    trigger_document_processing(document.id)
    db.session.refresh(document)
    return jsonify({'document': document.to_dict(), 'message': 'AI processing queued'}), 200


@bp.route('/property/<property_id>/stats', methods=['GET'])
@require_property_permission('view')
def get_document_stats(property_id):
    query = PropertyDocument.query.filter_by(property_id=request.property.id)
    total_size = query.with_entities(func.coalesce(func.sum(PropertyDocument.size_bytes), 0)).scalar()
    return jsonify({
        'total_count': query.count(),
        'by_type': document_counts(query, PropertyDocument.document_type),
        'by_year': document_counts(query, PropertyDocument.document_year),
        'by_status': document_counts(query, PropertyDocument.processing_status),
        'total_size_bytes': int(total_size or 0)
    }), 200


@bp.route('/property/<property_id>/tax-year/<year>', methods=['GET'])
@require_property_permission('view')
def get_tax_year_documents(property_id, year):
    """Documents for a tax year and which key types are still missing"""
    year = parse_int(year, 'year', minimum=1900, maximum=utctoday().year + 1)

    documents = PropertyDocument.query.filter_by(property_id=request.property.id, document_year=year) \
        .order_by(PropertyDocument.document_type, PropertyDocument.uploaded_at.desc()).all()

    by_type = {}
    for doc in documents:
        by_type.setdefault(doc.document_type, []).append(doc.to_dict())

    return jsonify({
        'year': year,
        'documents': [doc.to_dict() for doc in documents],
        'by_type': by_type,
        'missing_types': [t for t in TAX_YEAR_REQUIRED_TYPES if t not in by_type],
        'summary': {
            'total_documents': len(documents),
            'processed_count': sum(1 for d in documents if d.processing_status == 'completed'),
            'pending_count': sum(1 for d in documents if d.processing_status in ('pending', 'processing'))
        }
    }), 200
