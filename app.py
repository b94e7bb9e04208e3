import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate

from config import Config
from routes import (
    health_bp, auth_bp, booking_bp, appointments_bp, customers_bp, payments_bp, webhook_bp,
)
from models import db
from models.provider import Provider
from scheduling.availability import AvailabilityEngine
from scheduling.calendar import parse_business_hours
from scheduling.errors import SchedulingError
from scheduling.lifecycle import AppointmentLifecycle
from scheduling.notifications import NotificationDispatcher
from security.csrf import require_csrf
from utils.auth_context import load_current_provider
from utils.audit import log_event
from utils.emailer import send_email
from utils.sms import TwilioSMSGateway

# State-changing requests that never carry a provider session
CSRF_EXEMPT_PREFIXES = (
    "/auth/login",
    "/auth/register",
    "/health",
    "/booking/",
    "/payments/confirm",
    "/webhooks/",
)


def build_engine(app):
    """Wire the scheduling core from config; kept on app.extensions so tests can swap parts."""
    cfg = app.config
    app.extensions["availability"] = AvailabilityEngine(
        business_hours=parse_business_hours(cfg["BUSINESS_HOURS"]),
        default_days=cfg.get("AVAILABILITY_DEFAULT_DAYS", 7),
        max_days=cfg.get("AVAILABILITY_MAX_DAYS", 90),
        cancelled_slots_rebookable=cfg.get("CANCELLED_SLOTS_REBOOKABLE", True),
    )
    dispatcher = NotificationDispatcher(
        sms_gateway=TwilioSMSGateway(
            cfg.get("TWILIO_ACCOUNT_SID"),
            cfg.get("TWILIO_AUTH_TOKEN"),
            cfg.get("TWILIO_PHONE_NUMBER"),
            timeout_seconds=cfg.get("NOTIFICATION_TIMEOUT_SECONDS", 10),
        ),
        email_sender=send_email,
    )
    app.extensions["notifications"] = dispatcher
    app.extensions["lifecycle"] = AppointmentLifecycle(dispatcher)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    build_engine(app)

    @app.before_request
    def _load_provider():
        load_current_provider()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path.startswith(CSRF_EXEMPT_PREFIXES):
                return None

            # Only enforce CSRF if a provider is already authenticated (cookie session)
            if getattr(g, "provider", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        body = {"success": False, "error": exc.message}
        if app.debug and exc.details:
            body["details"] = str(exc.details)
        return jsonify(body), exc.status_code

    @app.errorhandler(500)
    def _internal_error(exc):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        body = {"success": False, "error": "Internal server error"}
        if app.debug:
            body["details"] = str(getattr(exc, "original_exception", exc))
        return jsonify(body), 500

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("send-reminders")
    def send_reminders():
        """Text every customer booked for tomorrow who hasn't had a reminder yet."""
        results = app.extensions["lifecycle"].remind_due()
        sent = sum(1 for r in results if r["success"])
        for r in results:
            if not r["success"]:
                click.echo(f"{r['appointmentId']}: {r['error']}")
        log_event("REMINDER_BATCH", metadata={"processed": len(results), "sent": sent})
        click.echo(f"Processed {len(results)} appointments, sent {sent} reminders")

    @app.cli.command("deactivate-provider")
    @click.argument("slug")
    def deactivate_provider(slug):
        """Hide a provider's public booking page (bootstrap/support)."""
        provider = Provider.query.filter_by(provider_id=slug.strip().lower()).first()
        if not provider:
            click.echo("Provider not found")
            return
        provider.is_active = False
        db.session.commit()
        log_event("PROVIDER_DEACTIVATED", provider_id=provider.id, metadata={"source": "cli"})
        click.echo(f"{provider.provider_id} deactivated")

#-------------------------


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
