"""
Appointment state machine.

    pending -> confirmed -> in_progress -> completed
    (pending | confirmed | in_progress) -> cancelled | no_show

Every action runs in two phases: the status write (must succeed, atomic per row)
and then the customer notification (reported, never rolled back). Both land in
a single TransitionResult.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.appointment import APPOINTMENT_STATUSES, PAYMENT_STATUSES, Appointment
from models.customer import Customer
from models.provider import Provider
from scheduling import notifications
from scheduling.errors import Conflict, DependencyError, NotFound, ValidationError
from security.ownership import require_ownership

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = frozenset({"pending", "confirmed", "in_progress"})
TERMINAL_STATUSES = frozenset({"completed", "cancelled", "no_show"})


@dataclass(frozen=True)
class Rule:
    allowed_from: frozenset
    new_status: Optional[str]        # None: notification-only action
    notification: Optional[str]      # None: nothing is sent
    verb: str
    needs_reason: bool = False


RULES = {
    "confirm": Rule(frozenset({"pending"}), "confirmed", notifications.CONFIRMATION, "confirm"),
    "start": Rule(frozenset({"confirmed"}), "in_progress", notifications.ON_MY_WAY, "start"),
    "complete": Rule(frozenset({"in_progress"}), "completed", notifications.SERVICE_COMPLETE, "complete"),
    "cancel": Rule(ACTIVE_STATUSES, "cancelled", notifications.CANCELLATION, "cancel", needs_reason=True),
    "no_show": Rule(ACTIVE_STATUSES, "no_show", None, "mark as no-show"),
    "reschedule": Rule(ACTIVE_STATUSES, None, notifications.RESCHEDULE, "reschedule", needs_reason=True),
    "remind": Rule(ACTIVE_STATUSES, None, notifications.REMINDER, "send a reminder for"),
}

# the two idempotence cases get their own wording
_ALREADY = {
    ("confirm", "confirmed"): "Appointment is already confirmed",
    ("cancel", "cancelled"): "Appointment is already cancelled",
}


@dataclass
class TransitionResult:
    appointment: Appointment
    changed: bool
    previous_status: str
    notification: Optional[notifications.NotificationOutcome] = None

    def to_dict(self) -> dict:
        out = {"appointment": self.appointment.to_dict()}
        if self.notification is not None:
            out["notification"] = self.notification.to_dict()
        return out


@dataclass(frozen=True)
class AppointmentUpdate:
    """Corrective edit. Only these fields exist; anything else in the payload is rejected."""

    status: Optional[str] = None
    notes: Optional[str] = None
    payment_status: Optional[str] = None
    fields_set: frozenset = frozenset()

    @classmethod
    def from_payload(cls, data) -> "AppointmentUpdate":
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        allowed = {"status", "notes", "payment_status"}
        unknown = sorted(set(data) - allowed)
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")
        if not data:
            raise ValidationError("No updatable fields provided")

        status = data.get("status")
        if "status" in data and status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")

        payment_status = data.get("payment_status")
        if "payment_status" in data and payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment_status. Must be one of: {', '.join(PAYMENT_STATUSES)}")

        notes = data.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")

        return cls(status=status, notes=notes, payment_status=payment_status, fields_set=frozenset(data))


class AppointmentLifecycle:
    def __init__(self, dispatcher: notifications.NotificationDispatcher):
        self.dispatcher = dispatcher

    # ---------- loading / guard ----------
    def load(self, appointment_id: str, caller_provider_id: str) -> Appointment:
        appt = db.session.get(Appointment, appointment_id)
        if appt is None:
            raise NotFound("Appointment not found")
        require_ownership(appt.provider_id, caller_provider_id)
        return appt

    # ---------- provider actions ----------
    def confirm(self, appointment_id, caller_provider_id) -> TransitionResult:
        return self._run("confirm", appointment_id, caller_provider_id)

    def start(self, appointment_id, caller_provider_id, eta_minutes=None) -> TransitionResult:
        return self._run("start", appointment_id, caller_provider_id, eta_minutes=eta_minutes)

    def complete(self, appointment_id, caller_provider_id, payment_link=None) -> TransitionResult:
        return self._run("complete", appointment_id, caller_provider_id, payment_link=payment_link)

    def cancel(self, appointment_id, caller_provider_id, reason) -> TransitionResult:
        return self._run("cancel", appointment_id, caller_provider_id, reason=reason)

    def mark_no_show(self, appointment_id, caller_provider_id) -> TransitionResult:
        return self._run("no_show", appointment_id, caller_provider_id)

    def reschedule(self, appointment_id, caller_provider_id, reason) -> TransitionResult:
        return self._run("reschedule", appointment_id, caller_provider_id, reason=reason)

    def remind(self, appointment_id, caller_provider_id) -> TransitionResult:
        return self._run("remind", appointment_id, caller_provider_id)

    def _run(self, action, appointment_id, caller_provider_id, reason=None, eta_minutes=None, payment_link=None):
        rule = RULES[action]
        appt = self.load(appointment_id, caller_provider_id)
        previous = appt.status

        if previous not in rule.allowed_from:
            raise Conflict(_ALREADY.get((action, previous)) or f"Cannot {rule.verb} an appointment that is {previous}")

        if rule.needs_reason:
            reason = reason.strip() if isinstance(reason, str) else ""
            if not reason:
                raise ValidationError(f"{action.capitalize()} reason is required")

        customer, provider = self._context(appt)

        changed = False
        if rule.new_status is not None:
            extra = {"cancel_reason": reason[:255]} if action == "cancel" else {}
            self._compare_and_set(appt, previous, rule.new_status, **extra)
            changed = True
            logger.info("Appointment %s: %s -> %s", appt.id, previous, rule.new_status)

        outcome = None
        if rule.notification is not None:
            outcome = self.dispatcher.dispatch(
                rule.notification, customer, provider, appt,
                reason=reason, eta_minutes=eta_minutes, payment_link=payment_link,
            )
            if action == "remind" and outcome.sms.sent:
                self._mark_reminded(appt)

        return TransitionResult(appointment=appt, changed=changed, previous_status=previous, notification=outcome)

    # ---------- generic update / delete ----------
    def update(self, appointment_id, caller_provider_id, req: AppointmentUpdate) -> TransitionResult:
        """Bypasses transition rules; status overrides are the caller's to audit."""
        appt = self.load(appointment_id, caller_provider_id)
        previous = appt.status

        if "status" in req.fields_set:
            appt.status = req.status
        if "notes" in req.fields_set:
            appt.notes = req.notes
        if "payment_status" in req.fields_set:
            appt.payment_status = req.payment_status

        self._commit("Failed to update appointment")
        return TransitionResult(appointment=appt, changed=appt.status != previous, previous_status=previous)

    def delete(self, appointment_id, caller_provider_id) -> None:
        appt = self.load(appointment_id, caller_provider_id)
        if appt.status != "cancelled":
            raise Conflict("Only cancelled appointments can be permanently deleted")
        db.session.delete(appt)
        self._commit("Failed to delete appointment")

    # ---------- batch job ----------
    def remind_due(self, today: Optional[date] = None) -> list:
        """Reminders for tomorrow's live appointments that haven't had one yet."""
        tomorrow = (today or date.today()) + timedelta(days=1)
        try:
            due = (
                Appointment.query
                .filter(
                    Appointment.scheduled_date == tomorrow,
                    Appointment.status.in_(("pending", "confirmed")),
                    Appointment.reminder_sent_at.is_(None),
                )
                .order_by(Appointment.scheduled_time.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise DependencyError("Failed to load appointments for reminders", details=str(exc)) from exc

        results = []
        for appt in due:
            customer, provider = appt.customer, appt.provider
            if customer is None or provider is None:
                logger.warning("Missing customer or provider for appointment %s", appt.id)
                results.append({"appointmentId": appt.id, "success": False, "error": "Missing customer or provider"})
                continue

            outcome = self.dispatcher.dispatch(notifications.REMINDER, customer, provider, appt)
            if outcome.sms.sent:
                self._mark_reminded(appt)
                results.append({"appointmentId": appt.id, "success": True})
            else:
                results.append({"appointmentId": appt.id, "success": False, "error": outcome.sms.error})
        return results

    # ---------- helpers ----------
    def _context(self, appt):
        customer = db.session.get(Customer, appt.customer_id)
        if customer is None:
            raise NotFound("Customer not found")
        provider = db.session.get(Provider, appt.provider_id)
        if provider is None:
            raise NotFound("Provider not found")
        return customer, provider

    def _compare_and_set(self, appt, expected, new_status, **extra):
        stmt = (
            update(Appointment)
            .where(Appointment.id == appt.id, Appointment.status == expected)
            .values(status=new_status, updated_at=datetime.utcnow(), **extra)
            .execution_options(synchronize_session=False)
        )
        try:
            res = db.session.execute(stmt)
            if res.rowcount != 1:
                db.session.rollback()
                raise Conflict("Appointment was modified by another request")
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("Time slot is already booked")
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyError("Failed to update appointment", details=str(exc)) from exc
        db.session.refresh(appt)

    def _mark_reminded(self, appt):
        appt.reminder_sent_at = datetime.utcnow()
        self._commit("Failed to record reminder")

    def _commit(self, message):
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("Time slot is already booked")
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DependencyError(message, details=str(exc)) from exc
