"""Column types shared by the models.

PostgreSQL gets native UUID and JSONB columns; other dialects (sqlite in
tests) fall back to CHAR(32) and JSON text.
"""
import uuid

from sqlalchemy import JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from axori_api import db

GUID = Uuid(as_uuid=True)
JSONType = JSON().with_variant(JSONB(), 'postgresql')


def uuid_pk():
    return db.Column(GUID, primary_key=True, default=uuid.uuid4)
