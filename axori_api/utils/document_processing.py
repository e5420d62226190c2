"""
Fire-and-forget document processing.

``trigger_document_processing`` starts a daemon thread with its own app
context; each run writes only to its own document row. There is no queue,
retry or concurrency limit: a failure is recorded on the row as
``processing_status = 'failed'`` with ``ai_error`` set.
"""
import logging
import threading

from flask import current_app

from axori_api import db
from axori_api.models.document import PropertyDocument
from axori_api.utils.extraction import extract_document_data, validate_extracted_data
from axori_api.utils.helpers import utcnow
from axori_api.utils.storage import download_file

logger = logging.getLogger(__name__)


def process_document(document_id):
    document = db.session.get(PropertyDocument, document_id)
    if document is None:
        logger.error(f"Document {document_id} not found for processing")
        return

    logger.info(f"Processing document {document_id} ({document.document_type})")
    document.processing_status = 'processing'
    document.ai_error = None
    db.session.commit()

    try:
        file_bytes = download_file(document.storage_path)
        data, confidence = extract_document_data(
            file_bytes, document.mime_type, document.document_type, document.original_filename
        )
        is_valid, missing = validate_extracted_data(document.document_type, data)
        if not is_valid:
            data = dict(data, _validation={'missing_fields': missing})

        document.ai_extracted_data = data
        document.ai_confidence = confidence
        document.ai_processed_at = utcnow()
        document.processing_status = 'completed'
        document.ai_error = None
        db.session.commit()
        logger.info(f"Document {document_id} processed (confidence {confidence})")
    except Exception as e:
        db.session.rollback()
        logger.exception(f"Document {document_id} processing failed: {e}")
        document = db.session.get(PropertyDocument, document_id)
        if document is not None:
            document.processing_status = 'failed'
            document.ai_error = str(e)
            db.session.commit()


def _run_in_context(app, document_id):
    with app.app_context():
        try:
            process_document(document_id)
        finally:
            db.session.remove()


def trigger_document_processing(document_id):
    """Start processing without waiting for it"""
    app = current_app._get_current_object()
    if not app.config.get('DOCUMENT_PROCESSING_ASYNC', True):
        process_document(document_id)
        return None

    thread = threading.Thread(
        target=_run_in_context,
        args=(app, document_id),
        name=f'document-processing-{document_id}',
        daemon=True
    )
    thread.start()
    return thread
