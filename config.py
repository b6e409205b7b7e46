import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _csv(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file next to the app unless DATABASE_URL points at PostgreSQL
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "quadralink.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Auth cookies
    AUTH_COOKIE_NAME = "quadralink_session"
    CSRF_COOKIE_NAME = "quadralink_csrf"
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60
    IDLE_TIMEOUT_SECONDS = 20 * 60
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Passwords
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LEN = 8

    # Booking engine
    # Weekday and HH:MM availability checks use this zone, not the server's
    BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "UTC")
    # counsellor statuses that refuse new requests
    BOOKING_BLOCKING_STATUSES = _csv("BOOKING_BLOCKING_STATUSES", ("busy", "offline"))
    BOOKING_MAX_RETRIES = int(os.getenv("BOOKING_MAX_RETRIES", "3"))

    # Schedule pagination
    SCHEDULE_DEFAULT_LIMIT = 10
    SCHEDULE_MAX_LIMIT = 100

    # tests and throwaway setups; real deployments run `flask db upgrade`
    CREATE_TABLES_ON_STARTUP = False

    DEBUG = False
