import uuid
from datetime import datetime
from models.db import db

class Provider(db.Model):
    __tablename__ = "providers"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # public slug used in booking links, e.g. /booking/acme
    provider_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    business_name = db.Column(db.String(160), nullable=False)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30), nullable=True)

    # deactivated (never deleted) to revoke public booking
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    appointments = db.relationship("Appointment", back_populates="provider", lazy="dynamic")
