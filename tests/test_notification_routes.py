from models import db
from models.notification import Notification


def test_mark_own_notification_read(app, logged_in, make_user):
    user = make_user()
    row = app.extensions["notifier"].notify(user.id, "Your booking is pending.", "info")
    c, headers = logged_in(user)

    assert c.get("/notifications?unread=true").get_json()[0]["id"] == row.id

    resp = c.post(f"/notifications/{row.id}/read", headers=headers)

    assert resp.status_code == 200
    assert resp.get_json()["read"] is True
    assert db.session.get(Notification, row.id).read is True
    assert c.get("/notifications?unread=true").get_json() == []


def test_cannot_mark_another_users_notification(app, logged_in, make_user):
    owner = make_user()
    stranger = make_user()
    row = app.extensions["notifier"].notify(owner.id, "Your booking is pending.", "info")
    c, headers = logged_in(stranger)

    resp = c.post(f"/notifications/{row.id}/read", headers=headers)

    assert resp.status_code == 404
    assert resp.get_json()["error"] == "Notification not found"
    assert db.session.get(Notification, row.id).read is False


def test_unknown_notification_is_404(logged_in, make_user):
    c, headers = logged_in(make_user())
    assert c.post("/notifications/9999/read", headers=headers).status_code == 404


def test_mark_read_requires_login(client):
    assert client.post("/notifications/1/read").status_code == 401
