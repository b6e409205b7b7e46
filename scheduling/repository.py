from typing import List, Optional

from sqlalchemy import func, select, update

from models.booking import Booking
from models.counsellor import Counsellor
from models.notification import Notification
from models.user import User


class BookingRepository:
    """SQLAlchemy queries used by the booking engine.

    Every method works on the caller's session so one engine operation is
    a single transaction. Datetime arguments are naive UTC, as stored.
    """

    def __init__(self, session):
        self.session = session

    def find_counsellor(self, councillor_id, lock: bool = False) -> Optional[Counsellor]:
        stmt = select(Counsellor).where(Counsellor.id == councillor_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_booking(self, booking_id) -> Optional[Booking]:
        return self.session.get(Booking, booking_id)

    def find_user(self, user_id) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_overlapping(self, councillor_id, start, end, exclude_booking_id=None) -> Optional[Booking]:
        stmt = select(Booking).where(
            Booking.councillor_id == councillor_id,
            Booking.status != "cancelled",
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return self.session.execute(stmt.order_by(Booking.start_time).limit(1)).scalar_one_or_none()

    def count_in_window(self, councillor_id, window_start, window_end, exclude_booking_id=None) -> int:
        stmt = select(func.count(Booking.id)).where(
            Booking.councillor_id == councillor_id,
            Booking.status != "cancelled",
            Booking.start_time >= window_start,
            Booking.start_time < window_end,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return self.session.execute(stmt).scalar_one()

    def claim_counsellor(self, counsellor: Counsellor) -> bool:
        """Bump ``booking_version`` only if nobody else has since we read it."""
        seen = counsellor.booking_version
        result = self.session.execute(
            update(Counsellor)
            .where(Counsellor.id == counsellor.id, Counsellor.booking_version == seen)
            .values(booking_version=seen + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        counsellor.booking_version = seen + 1
        return True

    def add_booking(self, booking: Booking) -> Booking:
        self.session.add(booking)
        self.session.flush()
        return booking

    def save_booking(self, booking: Booking) -> Booking:
        self.session.flush()
        return booking

    def active_schedule(self, councillor_id, offset: int, limit: int) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.councillor_id == councillor_id, Booking.status != "cancelled")
            .order_by(Booking.start_time.asc(), Booking.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def count_active(self, councillor_id) -> int:
        stmt = select(func.count(Booking.id)).where(
            Booking.councillor_id == councillor_id, Booking.status != "cancelled"
        )
        return self.session.execute(stmt).scalar_one()

    def unsent_notifications(self, limit: int = 200) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.notification_sent.is_(False))
            .order_by(Booking.updated_at.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def already_notified(self, user_id, message: str, since) -> bool:
        stmt = select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.message == message,
            Notification.created_at >= since,
        )
        return self.session.execute(stmt.limit(1)).first() is not None
