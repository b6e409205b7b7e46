from flask import Blueprint, jsonify, g, request

from models import db
from models.notification import Notification
from utils.auth_context import login_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notifications_bp.get("")
@login_required
def list_notifications():
    q = Notification.query.filter_by(user_id=g.user.id)
    if request.args.get("unread") == "true":
        q = q.filter_by(read=False)

    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(200).all()
    return jsonify([n.to_dict() for n in rows]), 200


@notifications_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(notification_id: int):
    row = db.session.get(Notification, notification_id)
    if not row or row.user_id != g.user.id:
        return jsonify(error="Notification not found"), 404

    row.read = True
    db.session.commit()
    return jsonify(row.to_dict()), 200
