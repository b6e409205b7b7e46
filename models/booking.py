from datetime import datetime, timezone
from models.db import db

BOOKING_STATUSES = ("pending", "accepted", "declined", "rescheduled", "cancelled")


def _iso(value):
    # stored naive UTC
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    councillor_id = db.Column(db.Integer, db.ForeignKey("counsellors.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")
    notification_sent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User")
    counsellor = db.relationship("Counsellor")

    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_booking_time_order"),
        db.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in BOOKING_STATUSES) + ")",
            name="ck_booking_status",
        ),
        db.Index("ix_bookings_councillor_window", "councillor_id", "start_time", "end_time"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "councillorId": self.councillor_id,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "status": self.status,
            "notificationSent": self.notification_sent,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
