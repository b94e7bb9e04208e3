from __future__ import annotations

from datetime import date, time

import pytest

from app import create_app
from config import Config
from models import db
from models.customer import Customer
from models.provider import Provider
from scheduling import ledger
from security.password import hash_password
from utils.sms import SMSResult

PASSWORD = "correct-horse-1"


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    BCRYPT_ROUNDS = 4
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}
    BUSINESS_HOURS = "08:00,09:00,10:00,11:00,12:00,13:00,14:00,15:00,16:00,17:00"
    AVAILABILITY_DEFAULT_DAYS = 7
    AVAILABILITY_MAX_DAYS = 31
    CANCELLED_SLOTS_REBOOKABLE = True
    TWILIO_ACCOUNT_SID = None
    TWILIO_AUTH_TOKEN = None
    TWILIO_PHONE_NUMBER = None
    SMTP_HOST = None
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"


class FakeSMSGateway:
    # Records messages instead of calling the network.
    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail_with: str | None = None
        self.raise_with: Exception | None = None

    def send(self, to: str, message: str) -> SMSResult:
        if self.raise_with is not None:
            raise self.raise_with
        self.sent.append((to, message))
        if self.fail_with:
            return SMSResult(success=False, error=self.fail_with)
        return SMSResult(success=True, message_id=f"SM{len(self.sent):04d}")


class FakeEmailSender:
    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []

    def __call__(self, to: str, subject: str, body: str):
        self.sent.append((to, subject, body))
        return True, None


@pytest.fixture
def app(tmp_path):
    cfg = type("Cfg", (TestConfig,), {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}"})
    app = create_app(cfg)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sms(app) -> FakeSMSGateway:
    fake = FakeSMSGateway()
    app.extensions["notifications"].sms_gateway = fake
    return fake


@pytest.fixture
def mailer(app) -> FakeEmailSender:
    fake = FakeEmailSender()
    app.extensions["notifications"].email_sender = fake
    return fake


@pytest.fixture
def lifecycle(app, sms, mailer):
    return app.extensions["lifecycle"]


def make_provider(slug: str = "acme", business_name: str = "Acme Detailing", is_active: bool = True) -> Provider:
    p = Provider(
        provider_id=slug,
        business_name=business_name,
        email=f"{slug}@example.com",
        password_hash=hash_password(PASSWORD),
        is_active=is_active,
    )
    db.session.add(p)
    db.session.commit()
    return p


def make_customer(name: str = "John Smith", phone: str = "5551234567", email: str | None = None) -> Customer:
    c = Customer(name=name, phone=phone, email=email)
    db.session.add(c)
    db.session.commit()
    return c


def make_appointment(provider, customer, day: date = date(2030, 1, 21), at: time = time(14, 0),
                     service_type: str = "Full Detail", status: str = "pending"):
    appt = ledger.book(provider.id, customer.id, day, at, service_type)
    if status != "pending":
        appt.status = status
        db.session.commit()
    return appt


@pytest.fixture
def provider(app) -> Provider:
    return make_provider()


@pytest.fixture
def customer(app) -> Customer:
    return make_customer()


def login(client, provider) -> dict:
    """Logs the provider in and returns headers carrying the CSRF token."""
    resp = client.post("/auth/login", json={"email": provider.email, "password": PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    token = client.get_cookie("csrf_token").value
    return {"X-CSRF-Token": token}
