from datetime import date

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.appointment import APPOINTMENT_STATUSES, Appointment
from models.customer import Customer
from scheduling import ledger
from scheduling.availability import parse_date_lenient
from scheduling.errors import Conflict, NotFound, ValidationError
from scheduling.lifecycle import AppointmentUpdate
from utils.audit import log_event
from utils.auth_context import login_required
from utils.validators import optional_str, parse_amount, parse_date_strict, parse_time_strict

appointments_bp = Blueprint("appointments", __name__, url_prefix="/appointments")

MAX_LIST_LIMIT = 200


def _lifecycle():
    return current_app.extensions["lifecycle"]


def _body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _reason() -> str:
    return _body().get("reason")


def _transition_response(result, action: str, **metadata):
    log_event(
        f"APPOINTMENT_{action}",
        provider_id=g.provider.id,
        entity="appointment",
        entity_id=result.appointment.id,
        metadata={
            "from": result.previous_status,
            "to": result.appointment.status,
            "sms_sent": result.notification.sms.sent if result.notification else None,
            **metadata,
        },
    )
    return jsonify(success=True, **result.to_dict()), 200


# ---------- PROVIDER: list / create ----------
@appointments_bp.get("")
@login_required
def list_appointments():
    status = request.args.get("status")
    if status and status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")

    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    q = Appointment.query.filter_by(provider_id=g.provider.id)
    if status:
        q = q.filter_by(status=status)

    # lenient: unparseable bounds are ignored
    start = parse_date_lenient(request.args.get("startDate"))
    end = parse_date_lenient(request.args.get("endDate"))
    if start:
        q = q.filter(Appointment.scheduled_date >= start)
    if end:
        q = q.filter(Appointment.scheduled_date <= end)

    rows = (
        q.order_by(Appointment.scheduled_date.asc(), Appointment.scheduled_time.asc())
        .limit(limit)
        .all()
    )
    return jsonify(
        success=True,
        appointments=[a.to_dict(include_customer=True) for a in rows],
        count=len(rows),
    ), 200


@appointments_bp.post("")
@login_required
def create_appointment():
    data = _body()
    customer_id = data.get("customer_id")
    service_type = optional_str(data, "service_type")

    if not customer_id or not data.get("scheduled_date") or not data.get("scheduled_time") or not service_type:
        raise ValidationError("customer_id, scheduled_date, scheduled_time and service_type are required")
    if not isinstance(customer_id, int) or isinstance(customer_id, bool):
        raise ValidationError("customer_id must be an integer")

    # a provider can only book for itself
    requested_provider = data.get("provider_id")
    if requested_provider and requested_provider not in (g.provider.id, g.provider.provider_id):
        log_event("APPOINTMENT_CREATE_FORBIDDEN", provider_id=g.provider.id,
                  metadata={"requested_provider": requested_provider})
        return jsonify(success=False, error="Forbidden"), 403

    day = parse_date_strict(data["scheduled_date"])
    at = parse_time_strict(data["scheduled_time"])
    if day < date.today():
        raise ValidationError("Appointment date must be in the future")
    amount = parse_amount(data.get("total_amount"))

    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")

    engine = current_app.extensions["availability"]
    try:
        appt = ledger.book(
            g.provider.id, customer.id, day, at, service_type,
            total_amount=amount,
            notes=optional_str(data, "notes"),
            include_cancelled=engine.include_cancelled,
        )
    except Conflict:
        log_event("BOOKING_FAIL_ALREADY_BOOKED", provider_id=g.provider.id, entity="slot",
                  entity_id=f"{day.isoformat()} {at.strftime('%H:%M')}")
        raise

    log_event("BOOKING_CREATE", provider_id=g.provider.id, entity="appointment", entity_id=appt.id,
              metadata={"customer_id": customer.id, "source": "provider"})
    return jsonify(success=True, appointment=appt.to_dict()), 201


# ---------- PROVIDER: single appointment ----------
@appointments_bp.get("/<appointment_id>")
@login_required
def get_appointment(appointment_id: str):
    appt = _lifecycle().load(appointment_id, g.provider.id)
    return jsonify(success=True, appointment=appt.to_dict(include_customer=True)), 200


@appointments_bp.patch("/<appointment_id>")
@login_required
def update_appointment(appointment_id: str):
    req = AppointmentUpdate.from_payload(request.get_json(silent=True))
    result = _lifecycle().update(appointment_id, g.provider.id, req)

    if result.changed:
        # corrective edit outside the lifecycle rules
        log_event("APPOINTMENT_STATUS_OVERRIDE", provider_id=g.provider.id, entity="appointment",
                  entity_id=appointment_id, metadata={"from": result.previous_status, "to": result.appointment.status})
    log_event("APPOINTMENT_UPDATE", provider_id=g.provider.id, entity="appointment", entity_id=appointment_id,
              metadata={"fields": sorted(req.fields_set)})
    return jsonify(success=True, appointment=result.appointment.to_dict()), 200


@appointments_bp.delete("/<appointment_id>")
@login_required
def delete_appointment(appointment_id: str):
    _lifecycle().delete(appointment_id, g.provider.id)
    log_event("APPOINTMENT_DELETE", provider_id=g.provider.id, entity="appointment", entity_id=appointment_id)
    return jsonify(success=True, message="Appointment deleted successfully"), 200


# ---------- PROVIDER: lifecycle actions ----------
@appointments_bp.post("/<appointment_id>/confirm")
@login_required
def confirm_appointment(appointment_id: str):
    result = _lifecycle().confirm(appointment_id, g.provider.id)
    return _transition_response(result, "CONFIRM")


@appointments_bp.post("/<appointment_id>/cancel")
@login_required
def cancel_appointment(appointment_id: str):
    reason = _reason()
    result = _lifecycle().cancel(appointment_id, g.provider.id, reason)
    return _transition_response(result, "CANCEL", reason=reason)


@appointments_bp.post("/<appointment_id>/reschedule")
@login_required
def reschedule_appointment(appointment_id: str):
    reason = _reason()
    result = _lifecycle().reschedule(appointment_id, g.provider.id, reason)
    return _transition_response(result, "RESCHEDULE_REQUEST", reason=reason)


@appointments_bp.post("/<appointment_id>/reminder")
@login_required
def send_reminder(appointment_id: str):
    result = _lifecycle().remind(appointment_id, g.provider.id)
    return _transition_response(result, "REMINDER")


@appointments_bp.post("/<appointment_id>/start")
@login_required
def start_appointment(appointment_id: str):
    data = _body()
    eta = data.get("eta_minutes")
    result = _lifecycle().start(appointment_id, g.provider.id, eta_minutes=str(eta) if eta else None)
    return _transition_response(result, "START")


@appointments_bp.post("/<appointment_id>/complete")
@login_required
def complete_appointment(appointment_id: str):
    payment_link = optional_str(_body(), "payment_link")
    result = _lifecycle().complete(appointment_id, g.provider.id, payment_link=payment_link)
    return _transition_response(result, "COMPLETE")


@appointments_bp.post("/<appointment_id>/no-show")
@login_required
def no_show_appointment(appointment_id: str):
    result = _lifecycle().mark_no_show(appointment_id, g.provider.id)
    return _transition_response(result, "NO_SHOW")
