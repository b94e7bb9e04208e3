import logging
from datetime import date, time

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.appointment import Appointment
from scheduling.calendar import Slot
from scheduling.errors import Conflict, DependencyError

logger = logging.getLogger(__name__)


def _occupying_query(provider_id: str, include_cancelled: bool):
    q = Appointment.query.filter(Appointment.provider_id == provider_id)
    if not include_cancelled:
        q = q.filter(Appointment.status != "cancelled")
    return q


def booked_slots(provider_id: str, start_date: date, end_date: date, include_cancelled: bool = False) -> set:
    """Slots in [start_date, end_date] held by an appointment of this provider."""
    try:
        rows = (
            _occupying_query(provider_id, include_cancelled)
            .filter(and_(Appointment.scheduled_date >= start_date, Appointment.scheduled_date <= end_date))
            .with_entities(Appointment.scheduled_date, Appointment.scheduled_time)
            .all()
        )
    except SQLAlchemyError as exc:
        raise DependencyError("Failed to read booked slots", details=str(exc)) from exc
    return {Slot(d, t) for d, t in rows}


def is_slot_taken(provider_id: str, day: date, at: time, include_cancelled: bool = False) -> bool:
    try:
        hit = (
            _occupying_query(provider_id, include_cancelled)
            .filter_by(scheduled_date=day, scheduled_time=at)
            .first()
        )
    except SQLAlchemyError as exc:
        raise DependencyError("Failed to read booked slots", details=str(exc)) from exc
    return hit is not None


def book(provider_id: str, customer_id: int, day: date, at: time, service_type: str,
         total_amount=None, notes=None, include_cancelled: bool = False) -> Appointment:
    """
    Insert a pending appointment. The partial unique index uq_appointment_active_slot
    decides the race: the loser gets Conflict.
    """
    # Only needed when cancelled rows still hold their slot; the index covers the rest.
    if include_cancelled and is_slot_taken(provider_id, day, at, include_cancelled=True):
        raise Conflict("Time slot is already booked")

    appt = Appointment(
        provider_id=provider_id,
        customer_id=customer_id,
        scheduled_date=day,
        scheduled_time=at,
        service_type=service_type,
        total_amount=total_amount,
        notes=notes,
        status="pending",
        payment_status="pending",
    )
    db.session.add(appt)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Slot %s %s already booked for provider %s", day, at, provider_id)
        raise Conflict("Time slot is already booked")
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DependencyError("Failed to create appointment", details=str(exc)) from exc
    return appt
