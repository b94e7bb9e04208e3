from decimal import Decimal
from datetime import date, time
from unittest.mock import patch

import stripe

from models import db
from models.appointment import Appointment
from scheduling import ledger
from utils.payments import calculate_platform_fee, to_cents

from tests.conftest import login, make_provider


def _priced_appointment(provider, customer, amount="150.00"):
    return ledger.book(provider.id, customer.id, date(2030, 1, 21), time(14, 0), "Full Detail",
                       total_amount=Decimal(amount) if amount else None)


def _payment_status(appt_id):
    db.session.expire_all()
    return db.session.get(Appointment, appt_id).payment_status


def test_money_helpers():
    assert to_cents(Decimal("150.00")) == 15000
    assert to_cents("19.999") == 2000
    assert calculate_platform_fee(Decimal("150.00"), 2.9) == Decimal("4.35")


def test_create_intent(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    headers = login(client, provider)
    intent = {"id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"}

    with patch("utils.payments.stripe.PaymentIntent.create", return_value=intent) as create:
        resp = client.post("/payments/create-intent", json={"appointment_id": appt.id}, headers=headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["client_secret"] == "pi_123_secret"
    assert body["platform_fee"] == 4.35
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 15000
    assert kwargs["metadata"]["appointment_id"] == appt.id

    db.session.expire_all()
    assert db.session.get(Appointment, appt.id).stripe_payment_intent_id == "pi_123"


def test_create_intent_needs_an_amount(client, provider, customer):
    appt = _priced_appointment(provider, customer, amount=None)
    headers = login(client, provider)
    with patch("utils.payments.stripe.PaymentIntent.create") as create:
        resp = client.post("/payments/create-intent", json={"appointment_id": appt.id}, headers=headers)
    assert resp.status_code == 400
    create.assert_not_called()


def test_create_intent_for_someone_elses_appointment(client, provider, customer):
    rival = make_provider("rival", "Rival Wash")
    appt = _priced_appointment(rival, customer)
    headers = login(client, provider)
    with patch("utils.payments.stripe.PaymentIntent.create") as create:
        resp = client.post("/payments/create-intent", json={"appointment_id": appt.id}, headers=headers)
    assert resp.status_code == 403
    create.assert_not_called()


def test_gateway_error_is_a_dependency_failure(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    headers = login(client, provider)
    with patch("utils.payments.stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("down")):
        resp = client.post("/payments/create-intent", json={"appointment_id": appt.id}, headers=headers)
    assert resp.status_code == 503
    assert resp.get_json()["success"] is False


def test_confirm_marks_paid(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    intent = {"id": "pi_123", "status": "succeeded", "amount": 15000, "metadata": {"appointment_id": appt.id}}

    with patch("utils.payments.stripe.PaymentIntent.retrieve", return_value=intent):
        resp = client.post("/payments/confirm", json={"payment_intent_id": "pi_123", "appointment_id": appt.id})

    assert resp.status_code == 200
    assert resp.get_json()["paymentStatus"] == "succeeded"
    assert _payment_status(appt.id) == "paid"
    # lifecycle status is untouched by payment
    assert db.session.get(Appointment, appt.id).status == "pending"


def test_confirm_rejects_unfinished_or_foreign_intent(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    pending = {"id": "pi_1", "status": "processing", "amount": 15000, "metadata": {"appointment_id": appt.id}}
    foreign = {"id": "pi_2", "status": "succeeded", "amount": 15000, "metadata": {"appointment_id": "other"}}

    for intent in (pending, foreign):
        with patch("utils.payments.stripe.PaymentIntent.retrieve", return_value=intent):
            resp = client.post("/payments/confirm",
                               json={"payment_intent_id": intent["id"], "appointment_id": appt.id})
        assert resp.status_code == 400
    assert _payment_status(appt.id) == "pending"


def test_webhook_updates_payment_status(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    event = {
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123", "metadata": {"appointment_id": appt.id}}},
    }
    with patch("routes.stripe_webhook.stripe.Webhook.construct_event", return_value=event):
        resp = client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": "t=1,v1=x"})

    assert resp.status_code == 200
    assert _payment_status(appt.id) == "paid"


def test_late_failure_never_downgrades_paid(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    appt.payment_status = "paid"
    appt.stripe_payment_intent_id = "pi_123"
    db.session.commit()
    event = {"type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_123", "metadata": {}}}}

    with patch("routes.stripe_webhook.stripe.Webhook.construct_event", return_value=event):
        client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": "t=1,v1=x"})

    assert _payment_status(appt.id) == "paid"


def test_webhook_bad_signature(client, provider):
    with patch("routes.stripe_webhook.stripe.Webhook.construct_event",
               side_effect=stripe.SignatureVerificationError("bad", "sig")):
        resp = client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": "nope"})
    assert resp.status_code == 400


def test_malformed_payment_requests(client, provider, customer):
    appt = _priced_appointment(provider, customer)
    headers = login(client, provider)
    with patch("utils.payments.stripe.PaymentIntent.retrieve") as retrieve:
        assert client.post("/payments/confirm", json=["x"]).status_code == 400
        assert client.post("/payments/confirm",
                           json={"payment_intent_id": 7, "appointment_id": appt.id}).status_code == 400
    retrieve.assert_not_called()
    resp = client.post("/payments/create-intent", json={"appointment_id": {"id": appt.id}}, headers=headers)
    assert resp.status_code == 400
