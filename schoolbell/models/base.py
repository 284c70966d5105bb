# models/base.py
from datetime import datetime
import uuid

from schoolbell.extensions import db


class BaseModel(db.Model):
    """Base model class with common functionality."""

    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    def to_dict(self):
        """Convert model instance to dictionary keyed by attribute name."""
        result = {}
        for attr in self.__mapper__.column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                result[attr.key] = value.isoformat()
            else:
                result[attr.key] = value
        return result

    def save(self):
        """Save the model instance."""
        db.session.add(self)
        db.session.commit()
        return self
