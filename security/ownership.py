from flask import g

from models.appointment import Appointment
from scheduling.errors import Forbidden


def verify_ownership(resource_provider_id, caller_provider_id) -> bool:
    """True iff the caller is the provider that owns the resource. No superuser bypass."""
    if resource_provider_id is None or caller_provider_id is None:
        return False
    return str(resource_provider_id) == str(caller_provider_id)


def require_ownership(resource_provider_id, caller_provider_id=None) -> None:
    if caller_provider_id is None:
        provider = getattr(g, "provider", None)
        caller_provider_id = provider.id if provider is not None else None
    if not verify_ownership(resource_provider_id, caller_provider_id):
        raise Forbidden("Forbidden")


def can_view_customer(customer_id: int, caller_provider_id) -> bool:
    # customers are shared; a provider sees the ones it has booked
    if caller_provider_id is None:
        return False
    return (
        Appointment.query
        .filter_by(customer_id=customer_id, provider_id=str(caller_provider_id))
        .first()
        is not None
    )
