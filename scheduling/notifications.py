"""
Customer-facing messages for appointment transitions.

Dispatch is best-effort: whatever the gateways return (or raise) is folded into
a NotificationOutcome and handed back to the caller. Nothing here touches the
database, so a failed send can never undo a status change.
"""
import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

CONFIRMATION = "confirmation"
CANCELLATION = "cancellation"
RESCHEDULE = "reschedule"
REMINDER = "reminder"
ON_MY_WAY = "on_my_way"
SERVICE_COMPLETE = "service_complete"

KINDS = (CONFIRMATION, CANCELLATION, RESCHEDULE, REMINDER, ON_MY_WAY, SERVICE_COMPLETE)

NO_PHONE_ERROR = "Customer phone number not available"


def format_date(value: date) -> str:
    # "Monday, January 20, 2025"
    return f"{value.strftime('%A')}, {value.strftime('%B')} {value.day}, {value.year}"


def format_time(value: time) -> str:
    # "2:00 PM"
    hour12 = value.hour % 12 or 12
    ampm = "PM" if value.hour >= 12 else "AM"
    return f"{hour12}:{value.minute:02d} {ampm}"


@dataclass
class MessageContext:
    customer_name: str
    business_name: str
    service_type: str
    date_text: str
    time_text: str
    reason: Optional[str] = None
    eta_minutes: Optional[str] = None
    payment_link: Optional[str] = None


def render_sms(kind: str, ctx: MessageContext) -> str:
    if kind == CONFIRMATION:
        return (
            f"Hi {ctx.customer_name}! Your {ctx.service_type} appointment with {ctx.business_name} "
            f"is confirmed for {ctx.date_text} at {ctx.time_text}. "
            f"We'll send a reminder 24 hours before. Thanks!"
        )
    if kind == REMINDER:
        return (
            f"Hi {ctx.customer_name}! This is a reminder that your {ctx.service_type} appointment with "
            f"{ctx.business_name} is scheduled for {ctx.date_text} at {ctx.time_text}. "
            f"We'll see you then! Reply STOP to opt out."
        )
    if kind == CANCELLATION:
        return (
            f"Hi {ctx.customer_name}! Your {ctx.service_type} appointment with {ctx.business_name} "
            f"on {ctx.date_text} at {ctx.time_text} has been cancelled. {ctx.reason} "
            f"We apologize for any inconvenience. Please contact us if you'd like to reschedule."
        )
    if kind == RESCHEDULE:
        return (
            f"Hi {ctx.customer_name}! Your {ctx.service_type} appointment with {ctx.business_name} "
            f"scheduled for {ctx.date_text} at {ctx.time_text} needs to be rescheduled. {ctx.reason} "
            f"Please contact us to choose a new date and time."
        )
    if kind == ON_MY_WAY:
        eta = ctx.eta_minutes or "30"
        return (
            f"Hi {ctx.customer_name}! This is {ctx.business_name}. I'm on my way to your location "
            f"and should arrive in about {eta} minutes. See you soon!"
        )
    if kind == SERVICE_COMPLETE:
        tail = f"You can pay online here: {ctx.payment_link}" if ctx.payment_link else "Thank you for your business!"
        return (
            f"Hi {ctx.customer_name}! Your {ctx.service_type} with {ctx.business_name} is complete. "
            f"{tail} We'd love a review!"
        )
    raise ValueError(f"Unknown notification kind: {kind}")


def render_confirmation_email(ctx: MessageContext):
    subject = f"Appointment Confirmed - {ctx.business_name}"
    body = (
        f"Hi {ctx.customer_name}!\n\n"
        f"Your {ctx.service_type} appointment with {ctx.business_name} is confirmed for "
        f"{ctx.date_text} at {ctx.time_text}.\n\n"
        f"Thanks!\n{ctx.business_name}\n"
    )
    return subject, body


@dataclass
class ChannelResult:
    sent: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"sent": self.sent}
        if self.message_id:
            out["messageId"] = self.message_id
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class NotificationOutcome:
    kind: str
    sms: ChannelResult
    email: Optional[ChannelResult] = None

    def to_dict(self) -> dict:
        out = {"kind": self.kind, "sms": self.sms.to_dict()}
        if self.email is not None:
            out["email"] = self.email.to_dict()
        return out


class NotificationDispatcher:
    """
    `sms_gateway` needs `send(phone, message)` returning an object with
    success / message_id / error. `email_sender(to, subject, body)` returns (ok, error).
    """

    def __init__(self, sms_gateway, email_sender: Optional[Callable] = None):
        self.sms_gateway = sms_gateway
        self.email_sender = email_sender

    def dispatch(self, kind: str, customer, provider, appointment, reason: Optional[str] = None,
                 eta_minutes: Optional[str] = None, payment_link: Optional[str] = None) -> NotificationOutcome:
        if kind not in KINDS:
            raise ValueError(f"Unknown notification kind: {kind}")

        ctx = MessageContext(
            customer_name=customer.name,
            business_name=provider.business_name,
            service_type=appointment.service_type,
            date_text=format_date(appointment.scheduled_date),
            time_text=format_time(appointment.scheduled_time),
            reason=reason,
            eta_minutes=eta_minutes,
            payment_link=payment_link,
        )

        outcome = NotificationOutcome(kind=kind, sms=self._send_sms(kind, customer, ctx, appointment))
        if kind == CONFIRMATION:
            outcome.email = self._send_email(customer, ctx)
        return outcome

    def _send_sms(self, kind, customer, ctx, appointment) -> ChannelResult:
        if not customer.phone:
            logger.warning("No phone number for customer %s, skipping %s SMS", customer.id, kind)
            return ChannelResult(sent=False, error=NO_PHONE_ERROR)

        try:
            result = self.sms_gateway.send(customer.phone, render_sms(kind, ctx))
        except Exception as e:
            # gateway bugs must not turn a committed transition into a 500
            logger.exception("SMS %s for appointment %s raised", kind, appointment.id)
            return ChannelResult(sent=False, error=str(e) or "Failed to send SMS")

        if not result.success:
            logger.warning("SMS %s for appointment %s failed: %s", kind, appointment.id, result.error)
            return ChannelResult(sent=False, error=result.error or "Failed to send SMS")
        return ChannelResult(sent=True, message_id=result.message_id)

    def _send_email(self, customer, ctx) -> ChannelResult:
        if not customer.email:
            return ChannelResult(sent=False, error="No email address")
        if self.email_sender is None:
            return ChannelResult(sent=False, error="Email service not configured")

        subject, body = render_confirmation_email(ctx)
        try:
            ok, err = self.email_sender(customer.email, subject, body)
        except Exception as e:
            logger.exception("Confirmation email to customer %s raised", customer.id)
            return ChannelResult(sent=False, error=str(e))
        return ChannelResult(sent=bool(ok), error=None if ok else err)
