from datetime import datetime
from models.db import db

COUNSELLOR_STATUSES = ("available", "busy", "offline")


class Counsellor(db.Model):
    __tablename__ = "counsellors"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)

    # e.g. {"Monday": ["09:00-11:00"], "Wednesday": ["14:00-16:00"]}
    availability = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(20), nullable=False, default="available")
    max_sessions = db.Column(db.Integer, nullable=False, default=5)       # per calendar week
    session_duration = db.Column(db.Integer, nullable=False, default=30)  # minutes

    # bumped on every booking write for this counsellor
    booking_version = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship("User", backref=db.backref("counsellor_profile", uselist=False))

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.user.display_name if self.user else None,
            "availability": self.availability or {},
            "status": self.status,
            "maxSessions": self.max_sessions,
            "sessionDuration": self.session_duration,
        }
