import pytest

from conftest import MONDAY, at
from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.counsellor import Counsellor


@pytest.fixture
def student(make_user):
    return make_user(pseudonym="quiet-owl")


@pytest.fixture
def counsellor(make_counsellor):
    return make_counsellor(availability={"Monday": ["09:00-11:00"]}, max_sessions=2)


def request_booking(client, headers, counsellor, start="09:00", end="09:30"):
    return client.post(
        "/councillors/book",
        json={"councillorId": counsellor.id, "startTime": at(MONDAY, start), "endTime": at(MONDAY, end)},
        headers=headers,
    )


def test_booking_requires_login(client, counsellor):
    resp = request_booking(client, {}, counsellor)
    assert resp.status_code == 401


def test_booking_requires_csrf_header(logged_in, student, counsellor):
    c, _ = logged_in(student)
    resp = request_booking(c, {}, counsellor)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "CSRF validation failed"


def test_student_books_a_session(logged_in, student, counsellor):
    c, headers = logged_in(student)

    resp = request_booking(c, headers, counsellor)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "pending"
    assert body["councillorId"] == counsellor.id
    assert body["startTime"] == "2027-01-04T09:00:00+00:00"
    assert AuditLog.query.filter_by(action="BOOKING_CREATE").count() == 1

    inbox = c.get("/notifications").get_json()
    assert inbox[0]["message"] == "Your booking with Dr Ada is pending."


def test_snake_case_body_is_accepted(logged_in, student, counsellor):
    c, headers = logged_in(student)
    resp = c.post(
        "/councillors/book",
        json={"councillor_id": counsellor.id, "start_time": at(MONDAY, "09:00"), "end_time": at(MONDAY, "09:30")},
        headers=headers,
    )
    assert resp.status_code == 201


@pytest.mark.parametrize("payload,status", [
    ({}, 400),
    ({"startTime": "soon", "endTime": at(MONDAY, "09:30")}, 400),
    ({"startTime": at(MONDAY, "09:00"), "endTime": at(MONDAY, "09:45")}, 400),
    ({"startTime": at(MONDAY, "11:00"), "endTime": at(MONDAY, "11:30")}, 409),
])
def test_rejected_requests(logged_in, student, counsellor, payload, status):
    c, headers = logged_in(student)
    if payload:
        payload["councillorId"] = counsellor.id
    resp = c.post("/councillors/book", json=payload, headers=headers)
    assert resp.status_code == status
    assert "error" in resp.get_json()


@pytest.mark.parametrize("bad_id", [[1], "abc", {"id": 1}, True, "-2"])
def test_malformed_councillor_id_is_rejected(logged_in, student, counsellor, bad_id):
    c, headers = logged_in(student)
    resp = c.post(
        "/councillors/book",
        json={"councillorId": bad_id, "startTime": at(MONDAY, "09:00"), "endTime": at(MONDAY, "09:30")},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "councillorId must be an integer"
    assert Booking.query.count() == 0


def test_numeric_string_councillor_id_is_accepted(logged_in, student, counsellor):
    c, headers = logged_in(student)
    resp = c.post(
        "/councillors/book",
        json={"councillorId": str(counsellor.id), "startTime": at(MONDAY, "09:00"), "endTime": at(MONDAY, "09:30")},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.get_json()["councillorId"] == counsellor.id


def test_overlap_is_a_conflict(logged_in, student, make_user, counsellor):
    c, headers = logged_in(student)
    assert request_booking(c, headers, counsellor).status_code == 201

    other, other_headers = logged_in(make_user())
    resp = request_booking(other, other_headers, counsellor, "09:15", "09:45")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Slot overlaps with existing booking"
    assert AuditLog.query.filter_by(action="BOOKING_FAIL").count() == 1


def test_unknown_counsellor_is_404(logged_in, student):
    c, headers = logged_in(student)
    resp = c.post(
        "/councillors/book",
        json={"councillorId": 999, "startTime": at(MONDAY, "09:00"), "endTime": at(MONDAY, "09:30")},
        headers=headers,
    )
    assert resp.status_code == 404


def test_moderator_accepts(logged_in, student, make_user, counsellor):
    c, headers = logged_in(student)
    booking_id = request_booking(c, headers, counsellor).get_json()["id"]

    mod, mod_headers = logged_in(make_user(roles=("MODERATOR",)))
    resp = mod.patch(f"/councillors/book/{booking_id}", json={"status": "accepted"}, headers=mod_headers)

    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "accepted"
    assert db.session.get(Booking, booking_id).status == "accepted"


def test_moderator_reschedules(logged_in, student, make_user, counsellor):
    c, headers = logged_in(student)
    booking_id = request_booking(c, headers, counsellor).get_json()["id"]

    mod, mod_headers = logged_in(make_user(roles=("MODERATOR",)))
    resp = mod.patch(
        f"/councillors/book/{booking_id}",
        json={"status": "rescheduled", "newStartTime": at(MONDAY, "10:30"), "newEndTime": at(MONDAY, "11:00")},
        headers=mod_headers,
    )
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["startTime"] == "2027-01-04T10:30:00+00:00"

    missing = mod.patch(f"/councillors/book/{booking_id}", json={"status": "rescheduled"}, headers=mod_headers)
    assert missing.status_code == 400


def test_student_cannot_update_status(logged_in, student, counsellor):
    c, headers = logged_in(student)
    booking_id = request_booking(c, headers, counsellor).get_json()["id"]

    resp = c.patch(f"/councillors/book/{booking_id}", json={"status": "accepted"}, headers=headers)
    assert resp.status_code == 403


def test_cancel_by_owner_and_stranger(logged_in, student, make_user, counsellor):
    c, headers = logged_in(student)
    booking_id = request_booking(c, headers, counsellor).get_json()["id"]

    stranger, stranger_headers = logged_in(make_user())
    assert stranger.delete(f"/councillors/book/{booking_id}", headers=stranger_headers).status_code == 403

    resp = c.delete(f"/councillors/book/{booking_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "cancelled"

    assert c.delete(f"/councillors/book/{booking_id}", headers=headers).status_code == 409
    assert c.delete("/councillors/book/9999", headers=headers).status_code == 404


def test_schedule(logged_in, student, counsellor):
    c, headers = logged_in(student)
    request_booking(c, headers, counsellor, "10:00", "10:30")
    request_booking(c, headers, counsellor, "09:00", "09:30")

    body = c.get(f"/councillors/schedule/{counsellor.id}?page=1&limit=500").get_json()

    assert body["total"] == 2
    assert body["limit"] == 100
    assert body["availability"] == {"Monday": ["09:00-11:00"]}
    assert [row["startTime"][11:16] for row in body["data"]] == ["09:00", "10:00"]
    assert body["data"][0]["user"]["pseudonym"] == "quiet-owl"


@pytest.mark.parametrize("query", ["page=0", "limit=0", "page=abc"])
def test_schedule_rejects_bad_paging(logged_in, student, counsellor, query):
    c, _ = logged_in(student)
    assert c.get(f"/councillors/schedule/{counsellor.id}?{query}").status_code == 400


def test_schedule_unknown_counsellor(logged_in, student):
    c, _ = logged_in(student)
    assert c.get("/councillors/schedule/999").status_code == 404


def test_my_bookings(logged_in, student, counsellor):
    c, headers = logged_in(student)
    request_booking(c, headers, counsellor)

    rows = c.get("/councillors/bookings/me").get_json()
    assert len(rows) == 1
    assert c.get("/councillors/bookings/me?status=cancelled").get_json() == []


def test_directory(logged_in, student, counsellor):
    c, _ = logged_in(student)
    listing = c.get("/councillors").get_json()
    assert listing[0]["name"] == "Dr Ada"
    assert c.get(f"/councillors/{counsellor.id}").get_json()["sessionDuration"] == 30
    assert c.get("/councillors/999").status_code == 404


def test_counsellor_edits_own_profile(logged_in, counsellor):
    c, headers = logged_in(counsellor.user)

    resp = c.patch(
        "/councillors/me",
        json={"availability": {"tuesday": ["13:00-15:00"]}, "status": "busy", "maxSessions": 3},
        headers=headers,
    )

    assert resp.status_code == 200
    refreshed = db.session.get(Counsellor, counsellor.id)
    assert refreshed.availability == {"Tuesday": ["13:00-15:00"]}
    assert refreshed.status == "busy"
    assert refreshed.max_sessions == 3


@pytest.mark.parametrize("payload", [
    {"availability": {"Monday": ["11:00-09:00"]}},
    {"status": "sleeping"},
    {"sessionDuration": 0},
    {"maxSessions": "five"},
])
def test_counsellor_profile_validation(logged_in, counsellor, payload):
    c, headers = logged_in(counsellor.user)
    assert c.patch("/councillors/me", json=payload, headers=headers).status_code == 400
    assert db.session.get(Counsellor, counsellor.id).status == "available"


def test_students_cannot_edit_profiles(logged_in, student):
    c, headers = logged_in(student)
    assert c.patch("/councillors/me", json={"status": "busy"}, headers=headers).status_code == 403
