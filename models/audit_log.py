from datetime import datetime
from models.db import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)  # null for anonymous requests
    action = db.Column(db.String(80), nullable=False, index=True)  # BOOKING_CREATE, LOGIN_FAIL, ...
    entity = db.Column(db.String(40), nullable=True)   # booking, counsellor, user
    entity_id = db.Column(db.String(40), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
