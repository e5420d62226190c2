from axori_api import db
from axori_api.models.types import GUID, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, to_float, str_or_none

PROPERTY_STATUSES = ('draft', 'active', 'archived')


class Property(db.Model):
    """A real-estate asset inside a portfolio"""
    __tablename__ = 'properties'

    id = uuid_pk()
    portfolio_id = db.Column(GUID, db.ForeignKey('portfolios.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(GUID, db.ForeignKey('users.id'), nullable=False)
    added_by = db.Column(GUID, db.ForeignKey('users.id'))

    status = db.Column(db.Enum(*PROPERTY_STATUSES, name='property_status_enum'), nullable=False, default='draft')
    ownership_status = db.Column(db.String(50))

    # Address Details
    address = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(50))
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(50), nullable=False)
    zip_code = db.Column(db.String(20), nullable=False, index=True)
    county = db.Column(db.String(100))

    # Geo-location
    latitude = db.Column(db.Numeric(10, 8))
    longitude = db.Column(db.Numeric(11, 8))

    # Attributes
    property_type = db.Column(db.String(50))
    nickname = db.Column(db.String(100))
    notes = db.Column(db.Text)
    color_tag = db.Column(db.String(20))

    # Acquisition & valuation
    purchase_price = db.Column(db.Numeric(14, 2))
    purchase_date = db.Column(db.Date)
    current_value = db.Column(db.Numeric(14, 2))

    # Timestamps
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, index=True)

    # Relationships
    transactions = db.relationship('PropertyTransaction', backref='property', lazy='dynamic',
                                   cascade='all, delete-orphan')
    loans = db.relationship('Loan', backref='property', lazy='dynamic', cascade='all, delete-orphan')
    documents = db.relationship('PropertyDocument', backref='property', lazy='dynamic',
                                cascade='all, delete-orphan')
    communications = db.relationship('Communication', backref='property', lazy='dynamic',
                                     cascade='all, delete-orphan')
    contacts = db.relationship('Contact', backref='property', lazy='dynamic', cascade='all, delete-orphan')

    UPDATABLE_FIELDS = (
        'address', 'unit', 'city', 'state', 'zip_code', 'county', 'latitude', 'longitude',
        'property_type', 'nickname', 'notes', 'color_tag', 'ownership_status',
        'purchase_price', 'purchase_date', 'current_value'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'portfolio_id': str(self.portfolio_id),
            'user_id': str(self.user_id),
            'added_by': str_or_none(self.added_by),
            'status': self.status,
            'ownership_status': self.ownership_status,
            'address': self.address,
            'unit': self.unit,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'county': self.county,
            'latitude': to_float(self.latitude),
            'longitude': to_float(self.longitude),
            'property_type': self.property_type,
            'nickname': self.nickname,
            'notes': self.notes,
            'color_tag': self.color_tag,
            'purchase_price': to_float(self.purchase_price),
            'purchase_date': isoformat(self.purchase_date),
            'current_value': to_float(self.current_value),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Property {self.nickname or self.address}>'
