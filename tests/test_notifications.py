import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from goswift import notifications
from goswift.errors import NotFound
from goswift.models import ActivityLog


def test_notify_and_read_side(session, make_user, identity_of):
    alice, bob = make_user(), make_user()
    notifications.notify(alice.id, notifications.BOOKING_REQUEST, "New Booking Request", "Bob booked 1 seat")
    notifications.notify(alice.id, notifications.BOOKING_CANCELLED, "Booking Cancelled", "A booking has been cancelled.")
    notifications.notify(bob.id, notifications.BOOKING_CONFIRMED, "Booking Confirmed", "Confirmed")

    me = identity_of(alice)
    rows = notifications.list_notifications(session, me)
    assert [n.type for n in rows] == ["booking_cancelled", "booking_request"]
    assert notifications.unread_count(session, me) == 2

    notifications.mark_read(session, me, rows[0].id)
    assert notifications.unread_count(session, me) == 1
    assert [n.id for n in notifications.list_notifications(session, me, unread_only=True)] == [rows[1].id]

    assert notifications.mark_all_read(session, me) == 1
    assert notifications.unread_count(session, me) == 0
    assert notifications.unread_count(session, identity_of(bob)) == 1


def test_cannot_read_someone_elses_notification(session, make_user, identity_of):
    alice, bob = make_user(), make_user()
    notifications.notify(bob.id, notifications.TRIP_CANCELLED, "Trip Cancelled", "Cancelled")
    (note,) = notifications.list_notifications(session, identity_of(bob))
    with pytest.raises(NotFound):
        notifications.mark_read(session, identity_of(alice), note.id)


def test_log_activity(session, make_user):
    user = make_user()
    notifications.log_activity(user.id, "user_login", "", "127.0.0.1")
    notifications.log_activity(None, "anonymous_probe")
    rows = session.exec(select(ActivityLog).order_by(ActivityLog.id)).all()
    assert [(r.user_id, r.action, r.ip_address) for r in rows] == [
        (user.id, "user_login", "127.0.0.1"),
        (None, "anonymous_probe", None),
    ]


def test_sink_failures_are_logged_not_raised(make_user, monkeypatch, caplog):
    user = make_user()

    def broken_session():
        raise SQLAlchemyError("database is gone")

    monkeypatch.setattr(notifications.database, "new_session", broken_session)
    notifications.notify(user.id, notifications.BOOKING_REQUEST, "t", "m")
    notifications.log_activity(user.id, "user_login")
    assert "Failed to write booking_request notification" in caplog.text
    assert "Failed to log activity user_login" in caplog.text
