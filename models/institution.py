from datetime import datetime
from models.db import db


class Institution(db.Model):
    __tablename__ = "institutions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    shortcode = db.Column(db.String(32), unique=True, nullable=False, index=True)  # stored upper-case

    # regex every student email of this institution must match
    email_pattern = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
