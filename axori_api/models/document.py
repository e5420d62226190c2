from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, to_float

DOCUMENT_TYPES = (
    'lease', 'tax_bill', 'insurance_policy', 'insurance_claim', 'closing_disclosure',
    'deed', 'title_policy', 'appraisal', 'inspection', 'mortgage_statement',
    'hoa_statement', 'utility_bill', 'receipt', 'contractor_invoice', 'permit',
    'year_end_report', 'rent_roll', '1099', 'w9', 'other'
)

PROCESSING_STATUSES = ('pending', 'processing', 'completed', 'failed')

# Documents an investor usually needs for a tax year
TAX_YEAR_REQUIRED_TYPES = (
    'lease', 'tax_bill', 'insurance_policy', 'mortgage_statement', 'year_end_report', '1099'
)


class PropertyDocument(db.Model):
    """Uploaded file attached to a property, with its AI extraction state"""
    __tablename__ = 'property_documents'

    id = uuid_pk()
    property_id = db.Column(GUID, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True)

    # File
    storage_path = db.Column(db.Text, nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    mime_type = db.Column(db.String(100))
    size_bytes = db.Column(db.BigInteger)

    # Classification
    document_type = db.Column(db.Enum(*DOCUMENT_TYPES, name='document_type_enum'), nullable=False, default='other')
    document_year = db.Column(db.Integer, index=True)

    # AI processing; null status means AI processing was never requested
    processing_status = db.Column(db.Enum(*PROCESSING_STATUSES, name='document_processing_status_enum'))
    ai_processed_at = db.Column(db.DateTime)
    ai_extracted_data = db.Column(JSONType)
    ai_confidence = db.Column(db.Numeric(4, 3))
    ai_error = db.Column(db.Text)

    description = db.Column(db.Text)
    tags = db.Column(JSONType, default=list)

    uploaded_by = db.Column(GUID, db.ForeignKey('users.id'), nullable=False)
    uploaded_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'property_id': str(self.property_id),
            'storage_path': self.storage_path,
            'original_filename': self.original_filename,
            'mime_type': self.mime_type,
            'size_bytes': self.size_bytes,
            'document_type': self.document_type,
            'document_year': self.document_year,
            'processing_status': self.processing_status,
            'ai_processed_at': isoformat(self.ai_processed_at),
            'ai_extracted_data': self.ai_extracted_data,
            'ai_confidence': to_float(self.ai_confidence),
            'ai_error': self.ai_error,
            'description': self.description,
            'tags': self.tags or [],
            'uploaded_by': str(self.uploaded_by),
            'uploaded_at': isoformat(self.uploaded_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<PropertyDocument {self.original_filename}>'
