"""
Counsellor booking engine.

Each operation is one transaction on the repository's session: the
counsellor row is locked and its ``booking_version`` claimed before any
booking write, so two requests racing for overlapping slots cannot both
commit. Notifications go out only after the commit and never fail the
operation.
"""
import logging
from collections import namedtuple
from datetime import datetime

from models import db
from models.booking import Booking
from scheduling.errors import Conflict, Forbidden, InvalidInput, NotFound
from scheduling.repository import BookingRepository
from scheduling.timeutils import (
    duration_minutes,
    fits_availability,
    format_local,
    from_storage,
    get_zone,
    local_slot,
    parse_timestamp,
    to_storage,
    week_window,
)
from security.rbac import PRIVILEGED_ROLES, has_any_role

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
TRANSITIONS = {
    "accepted": {"pending"},
    "declined": {"pending"},
    "rescheduled": {"pending", "accepted", "declined", "rescheduled"},
    "cancelled": {"pending", "accepted", "declined", "rescheduled"},
}

COUNSELLOR_DECISIONS = ("accepted", "declined", "rescheduled")

Schedule = namedtuple("Schedule", "bookings total page limit availability")


def parse_id(value, field):
    """Accepts a positive int or a string of digits."""
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInput(f"{field} must be an integer")
    return value


class _LostClaim(Exception):
    pass


class BookingEngine:
    def __init__(
        self,
        repository,
        notifier,
        timezone="UTC",
        blocking_statuses=("busy", "offline"),
        max_retries=3,
        default_page_size=10,
        max_page_size=100,
    ):
        self.repo = repository
        self.notifier = notifier
        self.tz = get_zone(timezone) if isinstance(timezone, str) else timezone
        self.blocking_statuses = tuple(blocking_statuses)
        self.max_retries = max(1, int(max_retries))
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @classmethod
    def from_app(cls, app):
        return cls(
            BookingRepository(db.session),
            app.extensions["notifier"],
            timezone=app.config.get("BOOKING_TIMEZONE", "UTC"),
            blocking_statuses=app.config.get("BOOKING_BLOCKING_STATUSES", ("busy", "offline")),
            max_retries=app.config.get("BOOKING_MAX_RETRIES", 3),
            default_page_size=app.config.get("SCHEDULE_DEFAULT_LIMIT", 10),
            max_page_size=app.config.get("SCHEDULE_MAX_LIMIT", 100),
        )

    @property
    def session(self):
        return self.repo.session

    # ---------- operations ----------

    def create_booking(self, requester_id, councillor_id, start_time, end_time) -> Booking:
        councillor_id = parse_id(councillor_id, "councillorId")
        start = parse_timestamp(start_time, self.tz, "startTime")
        end = parse_timestamp(end_time, self.tz, "endTime")

        def work():
            counsellor = self.repo.find_counsellor(councillor_id, lock=True)
            if counsellor is None:
                raise NotFound("Councillor not found")
            if counsellor.status in self.blocking_statuses:
                raise Conflict(f"Councillor is {counsellor.status}")

            self._check_slot(counsellor, start, end)
            self._check_weekly_cap(counsellor, start)
            self._claim(counsellor)

            booking = self.repo.add_booking(Booking(
                user_id=requester_id,
                councillor_id=counsellor.id,
                start_time=to_storage(start),
                end_time=to_storage(end),
                status="pending",
                notification_sent=False,
            ))
            return booking, self._messages(booking, counsellor)

        return self._run(work)

    def update_booking_status(self, booking_id, actor_roles, new_status, new_start_time=None, new_end_time=None) -> Booking:
        if not has_any_role(actor_roles, PRIVILEGED_ROLES):
            raise Forbidden("Only moderators or admins can update bookings")

        def work():
            booking, counsellor = self._load(booking_id)
            if counsellor is None:
                raise NotFound("Councillor not found for booking")
            if new_status not in COUNSELLOR_DECISIONS:
                raise InvalidInput("Invalid status")
            self._check_transition(booking, new_status)

            if new_status == "rescheduled":
                if not new_start_time or not new_end_time:
                    raise InvalidInput("New times required for reschedule")
                start = parse_timestamp(new_start_time, self.tz, "newStartTime")
                end = parse_timestamp(new_end_time, self.tz, "newEndTime")

                self._check_slot(counsellor, start, end, exclude_booking_id=booking.id)
                self._check_weekly_cap(counsellor, start, exclude_booking_id=booking.id)
                booking.start_time = to_storage(start)
                booking.end_time = to_storage(end)

            self._claim(counsellor)
            booking.status = new_status
            booking.notification_sent = False
            self.repo.save_booking(booking)
            return booking, self._messages(booking, counsellor)

        return self._run(work)

    def cancel_booking(self, booking_id, actor_id, actor_roles) -> Booking:
        def work():
            booking, counsellor = self._load(booking_id)
            if booking.user_id != actor_id and not has_any_role(actor_roles, PRIVILEGED_ROLES):
                raise Forbidden("Can only cancel own booking")
            self._check_transition(booking, "cancelled")

            if counsellor is not None:
                self._claim(counsellor)
            booking.status = "cancelled"
            booking.cancelled_at = datetime.utcnow()
            booking.notification_sent = False
            self.repo.save_booking(booking)

            actor = self.repo.find_user(actor_id)
            return booking, self._messages(booking, counsellor, actor=actor)

        return self._run(work)

    def get_schedule(self, councillor_id, page=None, limit=None) -> Schedule:
        try:
            page = 1 if page is None else int(page)
            limit = self.default_page_size if limit is None else int(limit)
        except (TypeError, ValueError):
            raise InvalidInput("page and limit must be positive integers")
        if page < 1 or limit < 1:
            raise InvalidInput("page and limit must be positive integers")
        limit = min(limit, self.max_page_size)

        counsellor = self.repo.find_counsellor(councillor_id)
        if counsellor is None:
            raise NotFound("Councillor not found")

        bookings = self.repo.active_schedule(counsellor.id, offset=(page - 1) * limit, limit=limit)
        total = self.repo.count_active(counsellor.id)
        return Schedule(bookings, total, page, limit, counsellor.availability or {})

    def resend_notifications(self, limit=200) -> int:
        """Re-send the current status message for bookings still owing one.

        Recipients whose inbox already holds the message since the booking's
        last write are skipped.
        """
        sent = 0
        for booking in self.repo.unsent_notifications(limit=limit):
            messages = [
                (user_id, message, severity)
                for user_id, message, severity in self._messages(booking, booking.counsellor)
                if not self.repo.already_notified(user_id, message, since=booking.updated_at)
            ]
            if self._dispatch(booking, messages):
                sent += 1
        return sent

    # ---------- validation ----------

    def _check_slot(self, counsellor, start, end, exclude_booking_id=None):
        if end <= start:
            raise InvalidInput("End time must be after start time")
        if duration_minutes(start, end) > counsellor.session_duration:
            raise InvalidInput(f"Session must not exceed {counsellor.session_duration} minutes")

        slot = local_slot(start, end, self.tz)
        if slot is None or not fits_availability(counsellor.availability, *slot):
            raise Conflict("Time slot not available")

        clash = self.repo.find_overlapping(
            counsellor.id, to_storage(start), to_storage(end), exclude_booking_id=exclude_booking_id
        )
        if clash is not None:
            raise Conflict("Slot overlaps with existing booking")

    def _check_weekly_cap(self, counsellor, start, exclude_booking_id=None):
        week_start, week_end = week_window(start, self.tz)
        taken = self.repo.count_in_window(
            counsellor.id, to_storage(week_start), to_storage(week_end), exclude_booking_id=exclude_booking_id
        )
        if taken >= counsellor.max_sessions:
            raise Conflict(f"Max sessions reached: councillor allows {counsellor.max_sessions} per week")

    def _check_transition(self, booking, new_status):
        if booking.status not in TRANSITIONS[new_status]:
            raise Conflict(f"Cannot change a {booking.status} booking to {new_status}")

    # ---------- transaction plumbing ----------

    def _load(self, booking_id):
        booking = self.repo.find_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        counsellor = self.repo.find_counsellor(booking.councillor_id, lock=True)
        # re-read under the counsellor lock
        self.session.refresh(booking)
        return booking, counsellor

    def _claim(self, counsellor):
        if not self.repo.claim_counsellor(counsellor):
            raise _LostClaim()

    def _run(self, work):
        for attempt in range(1, self.max_retries + 1):
            try:
                booking, messages = work()
                self.session.commit()
            except _LostClaim:
                self.session.rollback()
                logger.info("Concurrent booking write detected, retrying (attempt %s)", attempt)
                continue
            except Exception:
                self.session.rollback()
                raise

            self._dispatch(booking, messages)
            return booking

        raise Conflict("Booking is being changed by another request, please retry")

    # ---------- notifications ----------

    def _messages(self, booking, counsellor, actor=None):
        requester = self.repo.find_user(booking.user_id)
        counsellor_user = counsellor.user if counsellor is not None else None
        counsellor_name = counsellor_user.display_name if counsellor_user else "your councillor"
        requester_name = requester.display_name if requester else "A student"
        when = format_local(from_storage(booking.start_time), self.tz)
        status = booking.status

        if status == "pending":
            to_requester = (f"Your booking with {counsellor_name} is pending.", "info")
            to_counsellor = (f"{requester_name} has requested a booking on {when}.", "info")
        elif status == "rescheduled":
            to_requester = (f"Your booking has been rescheduled to {when} by {counsellor_name}.", "info")
            to_counsellor = (f"You rescheduled a booking to {when}.", "info")
        elif status == "cancelled":
            who = actor.display_name if actor is not None else requester_name
            to_requester = (f"Your booking on {when} has been cancelled.", "warning")
            to_counsellor = (f"{who} cancelled the booking on {when}.", "warning")
        else:
            severity = "warning" if status == "declined" else "info"
            to_requester = (f"Your booking on {when} has been {status} by {counsellor_name}.", severity)
            to_counsellor = (f"You {status} a booking on {when}.", severity)

        messages = [(booking.user_id,) + to_requester]
        if counsellor_user is not None:
            messages.append((counsellor_user.id,) + to_counsellor)
        return messages

    def _dispatch(self, booking, messages) -> bool:
        booking_id = booking.id
        delivered = True
        for user_id, message, severity in messages:
            try:
                self.notifier.notify(user_id, message, severity)
            except Exception:
                delivered = False
                logger.exception("Notification to user %s for booking %s failed", user_id, booking_id)
                self.session.rollback()

        if not delivered:
            return False

        try:
            booking.notification_sent = True
            self.session.commit()
        except Exception:
            logger.exception("Could not mark booking %s as notified", booking_id)
            self.session.rollback()
            return False
        return True
