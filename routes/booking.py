from datetime import datetime

from flask import Blueprint, request, jsonify, current_app

from models import db
from models.customer import Customer
from models.provider import Provider
from scheduling import ledger
from scheduling.errors import Conflict, NotFound, ValidationError
from utils.audit import log_event
from utils.validators import (
    is_valid_email, is_valid_phone, optional_str, parse_amount, parse_date_strict, parse_time_strict,
)

booking_bp = Blueprint("booking", __name__, url_prefix="/booking")


def _active_provider(slug: str) -> Provider:
    provider = Provider.query.filter_by(provider_id=slug).first()
    if not provider or not provider.is_active:
        raise NotFound("Provider not found or inactive")
    return provider


def _customer_fields(data: dict) -> dict:
    fields = {f: optional_str(data, f) for f in ("name", "phone", "email", "address", "notes")}
    if not fields["name"] or not fields["phone"]:
        raise ValidationError("Customer name and phone are required")
    if fields["email"] and not is_valid_email(fields["email"]):
        raise ValidationError("Invalid email format")
    if not is_valid_phone(fields["phone"]):
        raise ValidationError("Invalid phone number format")
    return fields


def _resolve_customer(fields: dict) -> Customer:
    """
    Match on phone AND email when an email is given, else on phone alone.
    A match with a different name is treated as a different person. A match
    with the same name only has its blank email/address/notes filled in; an
    anonymous booking never overwrites what the customer already has on file.
    """
    q = Customer.query.filter_by(phone=fields["phone"])
    if fields["email"]:
        q = q.filter_by(email=fields["email"])
    existing = q.order_by(Customer.id.asc()).first()

    if existing and existing.name.strip().lower() == fields["name"].lower():
        for field in ("email", "address", "notes"):
            if fields[field] and not getattr(existing, field):
                setattr(existing, field, fields[field])
        return existing

    customer = Customer(**fields)
    db.session.add(customer)
    db.session.flush()
    return customer


# ---------- PUBLIC: provider info ----------
@booking_bp.get("/<slug>/info")
def provider_info(slug: str):
    provider = _active_provider(slug)
    engine = current_app.extensions["availability"]
    return jsonify(
        success=True,
        provider={
            "provider_id": provider.provider_id,
            "business_name": provider.business_name,
            "phone": provider.phone,
        },
        business_hours=[t.strftime("%H:%M") for t in engine.business_hours],
    ), 200


# ---------- PUBLIC: open slots ----------
@booking_bp.get("/<slug>/availability")
def get_availability(slug: str):
    provider = _active_provider(slug)
    engine = current_app.extensions["availability"]

    result = engine.availability(
        provider.id,
        request.args.get("startDate"),
        request.args.get("endDate"),
    )
    return jsonify(success=True, **result.to_dict()), 200


# ---------- PUBLIC: book a slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/<slug>")
def create_booking(slug: str):
    provider = _active_provider(slug)
    engine = current_app.extensions["availability"]
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    service_type = optional_str(data, "service_type") or optional_str(data, "service_name")
    customer_data = data.get("customer")
    if not service_type or not data.get("scheduled_date") or not data.get("scheduled_time") or not customer_data:
        raise ValidationError("service_type, scheduled_date, scheduled_time, and customer are required")
    if not isinstance(customer_data, dict):
        raise ValidationError("customer must be an object")
    customer_fields = _customer_fields(customer_data)

    day = parse_date_strict(data["scheduled_date"])
    at = parse_time_strict(data["scheduled_time"])

    if datetime.combine(day, at) <= datetime.now():
        raise ValidationError("Appointment date and time must be in the future")
    if at not in engine.business_hours:
        raise ValidationError("Requested time is outside business hours")

    amount = parse_amount(data.get("service_price"))

    customer = _resolve_customer(customer_fields)
    try:
        appt = ledger.book(
            provider.id, customer.id, day, at, service_type,
            total_amount=amount,
            include_cancelled=engine.include_cancelled,
        )
    except Conflict:
        db.session.rollback()
        log_event("BOOKING_FAIL_ALREADY_BOOKED", provider_id=provider.id, entity="slot",
                  entity_id=f"{day.isoformat()} {at.strftime('%H:%M')}")
        raise

    log_event("BOOKING_CREATE", provider_id=provider.id, entity="appointment", entity_id=appt.id,
              metadata={"customer_id": customer.id, "source": "public"})
    return jsonify(success=True, appointment=appt.to_dict()), 201
