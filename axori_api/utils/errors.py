"""Typed API errors and the JSON error handlers"""
import logging

from flask import jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from axori_api import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that maps directly onto an HTTP response"""

    def __init__(self, message, status_code=400, details=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {'error': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class NotFoundError(ApiError):
    def __init__(self, message='Not found'):
        super().__init__(message, 404)


class ForbiddenError(ApiError):
    def __init__(self, message='Forbidden', details=None):
        super().__init__(message, 403, details)


class ConflictError(ApiError):
    def __init__(self, message, details=None):
        super().__init__(message, 409, details)


def register_error_handlers(app):
    """Render every error as a JSON body"""

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        logger.warning(f"Integrity error: {error.orig}")
        message = str(error.orig).lower()
        if 'foreign key' in message:
            return jsonify({'error': 'Referenced record does not exist'}), 400
        # sqlite: "NOT NULL constraint failed", postgres: "violates not-null constraint"
        if 'not null' in message or 'not-null' in message:
            return jsonify({'error': 'A required field is missing'}), 400
        if 'check constraint' in message:
            return jsonify({'error': 'Validation failed'}), 400
        return jsonify({'error': 'Duplicate entry'}), 409

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'error': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception(f"Unhandled error: {error}")
        return jsonify({'error': 'Internal server error'}), 500
