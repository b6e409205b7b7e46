from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from scheduling.repository import BookingRepository


def mon(hour, minute=0):
    return datetime(2027, 1, 4, hour, minute)


@pytest.fixture
def repo(app):
    return BookingRepository(db.session)


@pytest.fixture
def existing(make_user, make_counsellor):
    counsellor = make_counsellor()
    booking = Booking(
        user_id=make_user().id,
        councillor_id=counsellor.id,
        start_time=mon(10),
        end_time=mon(10, 30),
    )
    db.session.add(booking)
    db.session.commit()
    return booking


@pytest.mark.parametrize("start,end", [
    (mon(9, 30), mon(10)),
    (mon(10, 30), mon(11)),
])
def test_touching_intervals_do_not_overlap(repo, existing, start, end):
    assert repo.find_overlapping(existing.councillor_id, start, end) is None


@pytest.mark.parametrize("start,end", [
    (mon(9, 45), mon(10, 15)),
    (mon(10, 15), mon(10, 45)),
    (mon(10), mon(10, 30)),
    (mon(9), mon(11)),
    (mon(10, 5), mon(10, 10)),
])
def test_partial_and_containing_intervals_overlap(repo, existing, start, end):
    assert repo.find_overlapping(existing.councillor_id, start, end).id == existing.id


def test_overlap_ignores_cancelled_and_excluded(repo, existing):
    assert repo.find_overlapping(existing.councillor_id, mon(10), mon(10, 30), exclude_booking_id=existing.id) is None

    existing.status = "cancelled"
    db.session.commit()
    assert repo.find_overlapping(existing.councillor_id, mon(10), mon(10, 30)) is None


def test_overlap_is_per_counsellor(repo, existing, make_counsellor):
    other = make_counsellor()
    assert repo.find_overlapping(other.id, mon(10), mon(10, 30)) is None


def test_already_notified_only_counts_messages_since(repo, existing, app):
    notifier = app.extensions["notifier"]
    notifier.notify(existing.user_id, "Your booking is pending.", "info")

    assert repo.already_notified(existing.user_id, "Your booking is pending.", since=existing.updated_at)
    assert not repo.already_notified(existing.user_id, "Something else.", since=existing.updated_at)
    assert not repo.already_notified(existing.user_id, "Your booking is pending.", since=datetime(2100, 1, 1))


def test_unknown_status_is_rejected_by_the_schema(existing):
    existing.status = "done"
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()
