from decimal import Decimal, ROUND_HALF_UP

import stripe
from flask import current_app

from scheduling.errors import DependencyError


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_platform_fee(amount, fee_percent) -> Decimal:
    """Fee in currency units, rounded to cents."""
    fee = Decimal(str(amount)) * Decimal(str(fee_percent)) / Decimal("100")
    return fee.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _configure():
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe.api_key:
        raise DependencyError("Stripe secret key missing (STRIPE_SECRET_KEY)")


def create_payment_intent(amount, appointment_id: str, provider_id: str):
    _configure()
    fee_percent = current_app.config.get("PLATFORM_FEE_PERCENT", 2.9)
    fee = calculate_platform_fee(amount, fee_percent)
    try:
        intent = stripe.PaymentIntent.create(
            amount=to_cents(amount),
            currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
            automatic_payment_methods={"enabled": True},
            metadata={
                "appointment_id": appointment_id,
                "provider_id": provider_id,
                "platform_fee": str(fee),
                "platform_fee_percent": str(fee_percent),
            },
        )
    except stripe.StripeError as exc:
        current_app.logger.error("PaymentIntent create failed for appointment %s: %s", appointment_id, exc)
        raise DependencyError("Payment gateway error", details=str(exc)) from exc
    return intent, fee


def retrieve_payment_intent(payment_intent_id: str):
    _configure()
    try:
        return stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.InvalidRequestError:
        return None
    except stripe.StripeError as exc:
        raise DependencyError("Payment gateway error", details=str(exc)) from exc


def intent_metadata(intent, key: str):
    try:
        return intent["metadata"][key]
    except (KeyError, TypeError):
        return None
