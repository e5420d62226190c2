"""Request payload validation helpers.

Each helper either returns the cleaned value or raises ``ApiError`` (400),
which the error handlers render as ``{"error": ..., "details": ...}``.
"""
import re
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from axori_api.utils.errors import ApiError

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def get_json_body():
    """Return the JSON body as a dict, or raise 400 when it is missing"""
    from flask import request
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ApiError('No data provided', 400)
    return data


def require_fields(data, *fields):
    missing = [field for field in fields if data.get(field) in (None, '')]
    if missing:
        raise ApiError('Validation failed', 400, {
            field: 'This field is required' for field in missing
        })


def validate_choice(value, choices, field):
    if value not in choices:
        raise ApiError('Validation failed', 400, {
            field: f"Must be one of: {', '.join(choices)}"
        })
    return value


def parse_uuid(value, field='id'):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ApiError(f'Invalid {field} format', 400)


def parse_optional_uuid(value, field='id'):
    if value in (None, ''):
        return None
    return parse_uuid(value, field)


def parse_date(value, field):
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ApiError('Validation failed', 400, {field: 'Must be an ISO date (YYYY-MM-DD)'})


def parse_datetime(value, field):
    """Parse an ISO 8601 timestamp into a naive UTC datetime"""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ApiError('Validation failed', 400, {field: 'Must be an ISO 8601 timestamp'})
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_int(value, field, minimum=None, maximum=None, default=None):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (ValueError, TypeError):
        raise ApiError('Validation failed', 400, {field: 'Must be an integer'})
    if minimum is not None and number < minimum:
        raise ApiError('Validation failed', 400, {field: f'Must be at least {minimum}'})
    if maximum is not None and number > maximum:
        raise ApiError('Validation failed', 400, {field: f'Must be at most {maximum}'})
    return number


def parse_decimal(value, field, minimum=None):
    if value in (None, ''):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ApiError('Validation failed', 400, {field: 'Must be a number'})
    if not number.is_finite():
        raise ApiError('Validation failed', 400, {field: 'Must be a number'})
    if minimum is not None and number < minimum:
        raise ApiError('Validation failed', 400, {field: f'Must be at least {minimum}'})
    return number


def parse_string_list(value, field):
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(',') if item.strip()]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ApiError('Validation failed', 400, {field: 'Must be a list of strings'})
    return value


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def normalize_email(value):
    email = (value or '').strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ApiError('Validation failed', 400, {'email': 'Must be a valid email address'})
    return email
