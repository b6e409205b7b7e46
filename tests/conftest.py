import pytest

from app import create_app
from config import Config
from models import db
from models.counsellor import Counsellor
from models.institution import Institution
from models.user import User
from scheduling.engine import BookingEngine
from scheduling.repository import BookingRepository
from security.password import hash_password
from utils.seed import grant_role

PASSWORD = "correct-horse-battery"

# 2027-01-04 is a Monday; its week runs Sunday 01-03 .. Saturday 01-09
MONDAY = "2027-01-04"
NEXT_MONDAY = "2027-01-11"


class TestConfig(Config):
    __test__ = False

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CREATE_TABLES_ON_STARTUP = True
    BCRYPT_ROUNDS = 4
    BOOKING_TIMEZONE = "UTC"


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, user_id, message, severity="info"):
        self.sent.append((user_id, message, severity))


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    def notify(self, user_id, message, severity="info"):
        self.calls += 1
        raise RuntimeError("push gateway down")


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(email=None, roles=("STUDENT",), pseudonym=None, password=PASSWORD):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.edu",
            password_hash=hash_password(password),
            pseudonym=pseudonym,
        )
        db.session.add(user)
        db.session.flush()
        for name in roles:
            grant_role(user, name)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_counsellor(make_user):
    def _make(availability=None, max_sessions=5, session_duration=30, status="available", pseudonym="Dr Ada"):
        user = make_user(roles=("COUNSELLOR",), pseudonym=pseudonym)
        counsellor = Counsellor(
            user_id=user.id,
            availability={"Monday": ["09:00-11:00"]} if availability is None else availability,
            max_sessions=max_sessions,
            session_duration=session_duration,
            status=status,
        )
        db.session.add(counsellor)
        db.session.commit()
        return counsellor

    return _make


@pytest.fixture
def institution(app):
    row = Institution(shortcode="UNILAG", name="University of Lagos", email_pattern=r"^[0-9]{9}@live\.unilag\.edu\.ng$")
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(app, notifier):
    return BookingEngine(BookingRepository(db.session), notifier, timezone="UTC")


def at(day, hm):
    return f"{day}T{hm}:00"


def login(client, email, password=PASSWORD):
    """Logs ``client`` in and returns the CSRF token to echo on writes."""
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client.get_cookie(TestConfig.CSRF_COOKIE_NAME).value


@pytest.fixture
def logged_in(app):
    """Returns (client, headers) for a user with a session and CSRF header."""
    def _login(user):
        c = app.test_client()
        token = login(c, user.email)
        return c, {"X-CSRF-Token": token}

    return _login
