import json

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from models import db
from models.counsellor import Counsellor
from models.institution import Institution
from models.user import User
from routes import health_bp, auth_bp, counsellors_bp, notifications_bp
from scheduling.engine import BookingEngine
from scheduling.errors import BookingError
from scheduling.notifier import ConnectionRegistry, Notifier
from scheduling.timeutils import get_zone, validate_availability
from security.csrf import csrf_protect
from utils.auth_context import load_current_user
from utils.institutions import is_valid_pattern, normalize_shortcode
from utils.seed import grant_role, seed_roles


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # fail fast on a bad BOOKING_TIMEZONE
    get_zone(app.config["BOOKING_TIMEZONE"])

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(counsellors_bp)
    app.register_blueprint(notifications_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Process-wide push registry; a WebSocket layer registers its senders here
    app.extensions["connection_registry"] = ConnectionRegistry()
    app.extensions["notifier"] = Notifier(app.extensions["connection_registry"])

    if app.config.get("CREATE_TABLES_ON_STARTUP"):
        with app.app_context():
            db.create_all()

    # Seed default roles at startup (idempotent); skipped until `flask db upgrade` has run
    with app.app_context():
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        return csrf_protect()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        return jsonify(error=exc.message), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Grant ADMIN to a user by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")

        if grant_role(user, "ADMIN"):
            db.session.commit()
        click.echo(f"{user.email} is ADMIN")

    @app.cli.command("add-institution")
    @click.argument("shortcode")
    @click.argument("name")
    @click.argument("email_pattern")
    def add_institution(shortcode, name, email_pattern):
        """Register an institution and the regex its student emails must match."""
        code = normalize_shortcode(shortcode)
        if not is_valid_pattern(email_pattern):
            raise click.ClickException("Invalid email pattern")
        if Institution.query.filter_by(shortcode=code).first():
            raise click.ClickException(f"Institution {code} already exists")

        db.session.add(Institution(shortcode=code, name=name.strip(), email_pattern=email_pattern))
        db.session.commit()
        click.echo(f"Institution {code} added")

    @app.cli.command("create-counsellor")
    @click.argument("email")
    @click.option("--availability", default="{}", help='JSON, e.g. {"Monday": ["09:00-11:00"]}')
    @click.option("--max-sessions", default=5, type=click.IntRange(min=1))
    @click.option("--session-duration", default=30, type=click.IntRange(min=1))
    def create_counsellor(email, availability, max_sessions, session_duration):
        """Give a user the COUNSELLOR role and a booking profile."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")
        if user.counsellor_profile is not None:
            raise click.ClickException("User already has a counsellor profile")

        try:
            table = validate_availability(json.loads(availability))
        except (ValueError, BookingError) as exc:
            raise click.ClickException(f"Invalid availability: {exc}")

        grant_role(user, "COUNSELLOR")
        profile = Counsellor(
            user_id=user.id,
            availability=table,
            max_sessions=max_sessions,
            session_duration=session_duration,
        )
        db.session.add(profile)
        db.session.commit()
        click.echo(f"Counsellor profile {profile.id} created for {user.email}")

    @app.cli.command("resend-notifications")
    @click.option("--limit", default=200, type=click.IntRange(min=1))
    def resend_notifications(limit):
        """Re-send booking notifications that were not delivered."""
        sent = BookingEngine.from_app(app).resend_notifications(limit=limit)
        click.echo(f"Re-sent notifications for {sent} booking(s)")


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5002)
