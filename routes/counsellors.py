from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.booking import Booking
from models.counsellor import Counsellor, COUNSELLOR_STATUSES
from scheduling.engine import BookingEngine, parse_id
from scheduling.errors import BookingError
from scheduling.timeutils import validate_availability
from security.rbac import require_roles, role_names
from utils.audit import log_event
from utils.auth_context import login_required

counsellors_bp = Blueprint("counsellors", __name__, url_prefix="/councillors")


def _engine() -> BookingEngine:
    return BookingEngine.from_app(current_app)


def _field(data, camel, snake):
    value = data.get(camel)
    return data.get(snake) if value is None else value


def _positive_int(value, name):
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be a positive integer")
    return value


# ---------- counsellor directory ----------
@counsellors_bp.get("")
@login_required
def list_counsellors():
    rows = Counsellor.query.order_by(Counsellor.id.asc()).all()
    return jsonify([c.to_dict() for c in rows]), 200


@counsellors_bp.get("/<int:councillor_id>")
@login_required
def get_counsellor(councillor_id: int):
    counsellor = db.session.get(Counsellor, councillor_id)
    if not counsellor:
        return jsonify(error="Councillor not found"), 404
    return jsonify(counsellor.to_dict()), 200


# ---------- COUNSELLOR: edit own profile ----------
@counsellors_bp.patch("/me")
@require_roles("COUNSELLOR")
def update_own_profile():
    counsellor = g.user.counsellor_profile
    if counsellor is None:
        return jsonify(error="No counsellor profile for this account"), 404

    data = request.get_json(silent=True) or {}
    try:
        if "availability" in data:
            counsellor.availability = validate_availability(data["availability"])
        if "status" in data:
            if data["status"] not in COUNSELLOR_STATUSES:
                raise ValueError(f"status must be one of {', '.join(COUNSELLOR_STATUSES)}")
            counsellor.status = data["status"]
        max_sessions = _field(data, "maxSessions", "max_sessions")
        if max_sessions is not None:
            counsellor.max_sessions = _positive_int(max_sessions, "maxSessions")
        session_duration = _field(data, "sessionDuration", "session_duration")
        if session_duration is not None:
            counsellor.session_duration = _positive_int(session_duration, "sessionDuration")
    except ValueError as exc:
        db.session.rollback()
        return jsonify(error=str(exc)), 400
    except BookingError as exc:
        db.session.rollback()
        return jsonify(error=exc.message), 400

    db.session.commit()
    log_event("COUNSELLOR_UPDATE", user_id=g.user.id, entity="counsellor", entity_id=counsellor.id,
              metadata={"fields": sorted(data.keys())})
    return jsonify(counsellor.to_dict()), 200


# ---------- STUDENTS: request a session ----------
@counsellors_bp.post("/book")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    councillor_id = _field(data, "councillorId", "councillor_id")
    start_time = _field(data, "startTime", "start_time")
    end_time = _field(data, "endTime", "end_time")

    if not councillor_id or not start_time or not end_time:
        return jsonify(error="councillorId, startTime, endTime are required"), 400
    councillor_id = parse_id(councillor_id, "councillorId")

    user_id = g.user.id
    try:
        booking = _engine().create_booking(user_id, councillor_id, start_time, end_time)
    except BookingError as exc:
        log_event("BOOKING_FAIL", user_id=user_id, entity="counsellor", entity_id=councillor_id,
                  metadata={"reason": exc.message})
        raise

    log_event("BOOKING_CREATE", user_id=user_id, entity="booking", entity_id=booking.id,
              metadata={"councillor_id": booking.councillor_id})
    return jsonify(booking.to_dict()), 201


# ---------- MODERATOR/ADMIN: accept / decline / reschedule ----------
@counsellors_bp.patch("/book/<int:booking_id>")
@require_roles("MODERATOR", "ADMIN")
def update_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")

    booking = _engine().update_booking_status(
        booking_id,
        role_names(g.user),
        status,
        new_start_time=_field(data, "newStartTime", "new_start_time"),
        new_end_time=_field(data, "newEndTime", "new_end_time"),
    )

    log_event("BOOKING_UPDATE", user_id=g.user.id, entity="booking", entity_id=booking_id,
              metadata={"status": status})
    return jsonify(message="Booking updated", booking=booking.to_dict()), 200


# ---------- owner or MODERATOR/ADMIN: cancel ----------
@counsellors_bp.delete("/book/<int:booking_id>")
@login_required
def cancel_booking(booking_id: int):
    user_id = g.user.id
    booking = _engine().cancel_booking(booking_id, user_id, role_names(g.user))

    log_event("BOOKING_CANCEL", user_id=user_id, entity="booking", entity_id=booking_id)
    return jsonify(message="Booking cancelled", booking=booking.to_dict()), 200


# ---------- schedule ----------
@counsellors_bp.get("/schedule/<int:councillor_id>")
@login_required
def schedule(councillor_id: int):
    page = request.args.get("page", type=int)
    limit = request.args.get("limit", type=int)
    if ("page" in request.args and page is None) or ("limit" in request.args and limit is None):
        return jsonify(error="page and limit must be positive integers"), 400

    result = _engine().get_schedule(councillor_id, page=page, limit=limit)

    data = []
    for b in result.bookings:
        row = b.to_dict()
        row["user"] = {"pseudonym": b.user.display_name if b.user else None}
        data.append(row)

    return jsonify(
        data=data,
        total=result.total,
        page=result.page,
        limit=result.limit,
        availability=result.availability,
    ), 200


# ---------- STUDENTS: my bookings ----------
@counsellors_bp.get("/bookings/me")
@login_required
def my_bookings():
    q = Booking.query.filter_by(user_id=g.user.id)
    status = request.args.get("status")
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.start_time.desc()).limit(200).all()
    return jsonify([b.to_dict() for b in rows]), 200
