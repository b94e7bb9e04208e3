from dataclasses import dataclass

from flask import Blueprint, request, jsonify, g

from models import db
from models.appointment import Appointment
from models.customer import Customer
from scheduling.errors import Forbidden, NotFound, ValidationError
from security.ownership import can_view_customer
from utils.audit import log_event
from utils.auth_context import login_required
from utils.validators import is_valid_email, is_valid_phone

customers_bp = Blueprint("customers", __name__, url_prefix="/customers")


@dataclass(frozen=True)
class CustomerUpdate:
    values: dict

    FIELDS = ("name", "phone", "email", "address", "notes")

    @classmethod
    def from_payload(cls, data, creating: bool = False) -> "CustomerUpdate":
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        unknown = sorted(set(data) - set(cls.FIELDS))
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

        values = {}
        for field in cls.FIELDS:
            if field not in data:
                continue
            raw = data[field]
            if raw is not None and not isinstance(raw, str):
                raise ValidationError(f"{field} must be a string")
            values[field] = (raw or "").strip() or None

        if creating and (not values.get("name") or not values.get("phone")):
            raise ValidationError("Customer name and phone are required")
        if "name" in values and not values["name"]:
            raise ValidationError("Customer name cannot be empty")
        if "phone" in values and not is_valid_phone(values["phone"] or ""):
            raise ValidationError("Invalid phone number format")
        if values.get("email") and not is_valid_email(values["email"]):
            raise ValidationError("Invalid email format")
        return cls(values=values)


def _visible_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    if not can_view_customer(customer.id, g.provider.id):
        raise Forbidden("Forbidden")
    return customer


@customers_bp.get("")
@login_required
def list_customers():
    search = (request.args.get("search") or "").strip()

    q = (
        Customer.query
        .join(Appointment, Appointment.customer_id == Customer.id)
        .filter(Appointment.provider_id == g.provider.id)
        .distinct()
    )
    if search:
        like = f"%{search}%"
        q = q.filter(Customer.name.ilike(like) | Customer.phone.ilike(like) | Customer.email.ilike(like))

    rows = q.order_by(Customer.name.asc()).limit(200).all()
    return jsonify(success=True, customers=[c.to_dict() for c in rows], count=len(rows)), 200


@customers_bp.post("")
@login_required
def create_customer():
    req = CustomerUpdate.from_payload(request.get_json(silent=True), creating=True)
    customer = Customer(**req.values)
    db.session.add(customer)
    db.session.commit()

    log_event("CUSTOMER_CREATE", provider_id=g.provider.id, entity="customer", entity_id=customer.id)
    return jsonify(success=True, customer=customer.to_dict()), 201


@customers_bp.get("/<int:customer_id>")
@login_required
def get_customer(customer_id: int):
    customer = _visible_customer(customer_id)
    history = (
        customer.appointments
        .filter_by(provider_id=g.provider.id)
        .order_by(Appointment.scheduled_date.desc(), Appointment.scheduled_time.desc())
        .all()
    )
    return jsonify(
        success=True,
        customer=customer.to_dict(),
        appointments=[a.to_dict() for a in history],
    ), 200


@customers_bp.patch("/<int:customer_id>")
@login_required
def update_customer(customer_id: int):
    customer = _visible_customer(customer_id)
    req = CustomerUpdate.from_payload(request.get_json(silent=True))
    for field, value in req.values.items():
        setattr(customer, field, value)
    db.session.commit()

    log_event("CUSTOMER_UPDATE", provider_id=g.provider.id, entity="customer", entity_id=customer.id,
              metadata={"fields": sorted(req.values)})
    return jsonify(success=True, customer=customer.to_dict()), 200
