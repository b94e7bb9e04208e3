from flask import Blueprint, request, jsonify, g

from models import db
from models.appointment import Appointment
from scheduling.errors import Conflict, NotFound, ValidationError
from security.ownership import require_ownership
from utils.audit import log_event
from utils.auth_context import login_required
from utils.payments import create_payment_intent, intent_metadata, retrieve_payment_intent
from utils.validators import optional_str

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _payload() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _appointment(appointment_id) -> Appointment:
    if appointment_id is not None and not isinstance(appointment_id, str):
        raise ValidationError("appointment_id must be a string")
    appt = db.session.get(Appointment, appointment_id) if appointment_id else None
    if appt is None:
        raise NotFound("Appointment not found")
    return appt


@payments_bp.post("/create-intent")
@login_required
def start_payment():
    data = _payload()
    appt = _appointment(data.get("appointment_id"))
    require_ownership(appt.provider_id, g.provider.id)

    if appt.payment_status == "paid":
        raise Conflict("Appointment is already paid")
    if appt.status in ("cancelled", "no_show"):
        raise Conflict(f"Cannot take payment for an appointment that is {appt.status}")
    if appt.total_amount is None or appt.total_amount <= 0:
        raise ValidationError("Appointment has no amount to charge")

    intent, fee = create_payment_intent(appt.total_amount, appt.id, g.provider.id)
    appt.stripe_payment_intent_id = intent["id"]
    db.session.commit()

    log_event("PAYMENT_INTENT_CREATED", provider_id=g.provider.id, entity="appointment", entity_id=appt.id,
              metadata={"payment_intent_id": intent["id"]})
    return jsonify(
        success=True,
        client_secret=intent["client_secret"],
        payment_intent_id=intent["id"],
        amount=float(appt.total_amount),
        platform_fee=float(fee),
    ), 200


@payments_bp.post("/confirm")
def confirm_payment():
    data = _payload()
    payment_intent_id = optional_str(data, "payment_intent_id")
    appointment_id = optional_str(data, "appointment_id")
    if not payment_intent_id or not appointment_id:
        raise ValidationError("payment_intent_id and appointment_id are required")

    appt = _appointment(appointment_id)
    intent = retrieve_payment_intent(payment_intent_id)
    if intent is None:
        raise NotFound("Payment intent not found")

    if intent_metadata(intent, "appointment_id") != appt.id:
        raise ValidationError("Payment intent does not belong to this appointment")
    if intent["status"] != "succeeded":
        raise ValidationError("Payment not completed")

    # only payment_status moves; the lifecycle status is the provider's call
    appt.payment_status = "paid"
    db.session.commit()

    log_event("PAYMENT_PAID", entity="appointment", entity_id=appt.id,
              metadata={"payment_intent_id": payment_intent_id})
    return jsonify(
        success=True,
        paymentStatus=intent["status"],
        amount=intent["amount"],
        message="Payment confirmed successfully",
    ), 200
