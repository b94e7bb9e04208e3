import re

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.provider import Provider
from scheduling.errors import ValidationError
from security.password import hash_password, verify_password
from security.session import create_session, revoke_session, revoke_all_sessions
from security.csrf import issue_csrf_token
from utils.audit import log_event
from utils.auth_context import login_required
from utils.sms import is_valid_phone_number
from utils.validators import optional_str

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")
MIN_PASSWORD_LENGTH = 8


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _provider_json(p: Provider) -> dict:
    return {
        "id": p.id,
        "provider_id": p.provider_id,
        "business_name": p.business_name,
        "email": p.email,
        "phone": p.phone,
        "is_active": p.is_active,
    }


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    email = (optional_str(data, "email") or "").lower()
    password = data.get("password") or ""
    slug = (optional_str(data, "provider_id") or "").lower()
    business_name = optional_str(data, "business_name") or ""
    phone = optional_str(data, "phone")

    if not _is_valid_email(email):
        return jsonify(success=False, error="Invalid email"), 400
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        return jsonify(success=False, error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400
    if not SLUG_RE.match(slug):
        return jsonify(success=False, error="provider_id must be 2-63 lowercase letters, digits or dashes"), 400
    if not business_name:
        return jsonify(success=False, error="business_name is required"), 400
    if phone and not is_valid_phone_number(phone):
        return jsonify(success=False, error="Invalid phone number format"), 400

    if Provider.query.filter((Provider.email == email) | (Provider.provider_id == slug)).first():
        log_event("REGISTER_FAIL_EXISTS", metadata={"email": email, "provider_id": slug})
        return jsonify(success=False, error="Email or provider_id already registered"), 409

    provider = Provider(
        email=email,
        password_hash=hash_password(password),
        provider_id=slug,
        business_name=business_name,
        phone=phone,
    )
    db.session.add(provider)
    db.session.commit()
    log_event("REGISTER_SUCCESS", provider_id=provider.id)

    return jsonify(success=True, provider=_provider_json(provider)), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    email = (optional_str(data, "email") or "").lower()
    password = data.get("password") or ""
    if not isinstance(password, str):
        raise ValidationError("password must be a string")

    provider = Provider.query.filter_by(email=email).first()
    if not provider or not verify_password(password, provider.password_hash):
        log_event("LOGIN_FAIL", provider_id=provider.id if provider else None, metadata={"email": email})
        return jsonify(success=False, error="Invalid credentials"), 401

    # Rotate: revoke any existing sessions for this provider
    revoked_count = revoke_all_sessions(provider.id)

    raw_token = create_session(provider.id)
    resp = jsonify(success=True, provider=_provider_json(provider))
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "booking_session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", provider_id=provider.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(success=True, provider=_provider_json(g.provider)), 200


@auth_bp.patch("/me")
@login_required
def update_me():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    unknown = sorted(set(data) - {"business_name", "phone", "is_active"})
    if unknown:
        return jsonify(success=False, error=f"Unknown field(s): {', '.join(unknown)}"), 400

    if "business_name" in data:
        name = data["business_name"]
        if not isinstance(name, str) or not name.strip() or len(name.strip()) > 160:
            return jsonify(success=False, error="Invalid business_name"), 400
        g.provider.business_name = name.strip()

    if "phone" in data:
        phone = data["phone"]
        if phone and (not isinstance(phone, str) or not is_valid_phone_number(phone)):
            return jsonify(success=False, error="Invalid phone number format"), 400
        g.provider.phone = phone or None

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            return jsonify(success=False, error="is_active must be a boolean"), 400
        # deactivation hides the public booking page; history stays
        g.provider.is_active = data["is_active"]

    db.session.commit()
    log_event("PROVIDER_UPDATE", provider_id=g.provider.id, metadata={"fields": sorted(data)})
    return jsonify(success=True, provider=_provider_json(g.provider)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "booking_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", provider_id=g.provider.id)

    resp = jsonify(success=True, message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
