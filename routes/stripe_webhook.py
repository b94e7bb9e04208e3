from flask import Blueprint, request, jsonify, current_app
import stripe

from models import db
from models.appointment import Appointment
from utils.audit import log_event
from utils.payments import intent_metadata

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

PAYMENT_EVENTS = {
    "payment_intent.succeeded": "paid",
    "payment_intent.payment_failed": "failed",
}


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not endpoint_secret:
        current_app.logger.error("STRIPE_WEBHOOK_SECRET is not set; dropping webhook")
        return jsonify(success=False, error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(request.data, request.headers.get("Stripe-Signature"), endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        current_app.logger.warning("Rejected Stripe webhook: %s", e)
        return jsonify(success=False, error="Invalid webhook signature"), 400

    new_status = PAYMENT_EVENTS.get(event["type"])
    if new_status:
        intent = event["data"]["object"]
        appointment_id = intent_metadata(intent, "appointment_id")

        appt = db.session.get(Appointment, appointment_id) if appointment_id else None
        if appt is None:
            appt = Appointment.query.filter_by(stripe_payment_intent_id=intent["id"]).first()

        # a late failure never downgrades a paid appointment
        if appt and appt.payment_status != "paid":
            appt.payment_status = new_status
            db.session.commit()
            log_event(f"PAYMENT_{new_status.upper()}", entity="appointment", entity_id=appt.id,
                      metadata={"payment_intent_id": intent["id"], "event": event["type"]})

    return jsonify(received=True), 200
