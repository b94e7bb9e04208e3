import uuid
from datetime import datetime
from models.db import db

APPOINTMENT_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled", "no_show")
PAYMENT_STATUSES = ("pending", "paid", "failed")


class Appointment(db.Model):
    __tablename__ = "appointments"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    provider_id = db.Column(db.String(36), db.ForeignKey("providers.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    scheduled_date = db.Column(db.Date, nullable=False, index=True)
    scheduled_time = db.Column(db.Time, nullable=False)
    service_type = db.Column(db.String(120), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")
    payment_status = db.Column(db.String(20), nullable=False, default="pending")

    notes = db.Column(db.Text, nullable=True)
    total_amount = db.Column(db.Numeric(10, 2), nullable=True)

    cancel_reason = db.Column(db.String(255), nullable=True)
    reminder_sent_at = db.Column(db.DateTime, nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    provider = db.relationship("Provider", back_populates="appointments")
    customer = db.relationship("Customer", back_populates="appointments")

    __table_args__ = (
        # Hard business-rule: one live appointment per provider slot (prevents double booking).
        # Cancelled rows are left out so the slot can be booked again.
        db.Index(
            "uq_appointment_active_slot",
            "provider_id", "scheduled_date", "scheduled_time",
            unique=True,
            sqlite_where=db.text("status <> 'cancelled'"),
            postgresql_where=db.text("status <> 'cancelled'"),
        ),
    )

    def to_dict(self, include_customer: bool = False) -> dict:
        out = {
            "id": self.id,
            "provider_id": self.provider_id,
            "customer_id": self.customer_id,
            "scheduled_date": self.scheduled_date.isoformat(),
            "scheduled_time": self.scheduled_time.strftime("%H:%M"),
            "service_type": self.service_type,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "total_amount": float(self.total_amount) if self.total_amount is not None else None,
            "cancel_reason": self.cancel_reason,
            "reminder_sent_at": self.reminder_sent_at.isoformat() if self.reminder_sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_customer and self.customer is not None:
            out["customer"] = self.customer.to_dict()
        return out
