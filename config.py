import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as booking.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "booking.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "booking_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # bcrypt cost factor
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", "false")  # set True when using HTTPS

    # Business hours: slot start times, 1-hour slots
    BUSINESS_HOURS = os.getenv(
        "BUSINESS_HOURS",
        "08:00,09:00,10:00,11:00,12:00,13:00,14:00,15:00,16:00,17:00",
    )
    # Availability window when the caller gives no range
    AVAILABILITY_DEFAULT_DAYS = int(os.getenv("AVAILABILITY_DEFAULT_DAYS", "7"))
    # Longest window one availability request may cover
    AVAILABILITY_MAX_DAYS = int(os.getenv("AVAILABILITY_MAX_DAYS", "90"))
    # False: a cancelled appointment keeps holding its slot
    CANCELLED_SLOTS_REBOOKABLE = _env_bool("CANCELLED_SLOTS_REBOOKABLE", "true")

    # Notifications (single bounded call per send, no retries)
    NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

    # Payments (Stripe)
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
    PLATFORM_FEE_PERCENT = float(os.getenv("PLATFORM_FEE_PERCENT", "2.9"))

    # Basic app settings
    DEBUG = False
