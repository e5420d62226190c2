"""Helper utility functions"""
import uuid
from datetime import datetime, timezone

from flask import abort


def utcnow():
    """Current UTC time as a naive datetime (timestamps are stored in UTC)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utctoday():
    """The current UTC calendar day, consistent with ``utcnow`` timestamps"""
    return utcnow().date()


def isoformat(value):
    return value.isoformat() if value else None


def to_float(value):
    return float(value) if value is not None else None


def str_or_none(value):
    return str(value) if value is not None else None


def get_or_404(model, object_id, description=None):
    """Fetch a row by primary key; malformed ids are treated as missing"""
    try:
        key = object_id if isinstance(object_id, uuid.UUID) else uuid.UUID(str(object_id))
    except (ValueError, TypeError):
        abort(404, description=description or f'{model.__name__} not found')
    return model.query.get_or_404(key, description=description or f'{model.__name__} not found')


def paginate_query(query, page, per_page):
    """Paginate a query, clamping bad input instead of erroring"""
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)
    return query.paginate(page=page, per_page=per_page, error_out=False)


def format_sequence_identifier(prefix, number, width=3):
    """FORGE-001, DEC-012 ..."""
    return f'{prefix}-{number:0{width}d}'


def parse_sequence_number(identifier):
    """Numeric suffix of an identifier like ``FORGE-042``, or 0"""
    if not identifier or '-' not in identifier:
        return 0
    suffix = identifier.rsplit('-', 1)[1]
    return int(suffix) if suffix.isdigit() else 0


def percent(part, whole):
    if not whole:
        return 0
    return round(part / whole * 100, 1)
