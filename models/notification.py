from datetime import datetime, timezone
from models.db import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default="info")  # info, warning
    read = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "message": self.message,
            "type": self.type,
            "read": self.read,
            "timestamp": self.created_at.replace(tzinfo=timezone.utc).isoformat(),
        }
