"""
Tests for the notification scheduler sweep.

Due notifications are pushed exactly once; future, inactive and already
sent rows are left alone.
"""
from datetime import timedelta

import pytest

from db_models import Notification, utcnow
from services.realtime import RealtimeHub, user_room
from services.scheduler import NotificationScheduler


class FakeSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, frame):
        self.frames.append(frame)


@pytest.fixture
def hub() -> RealtimeHub:
    return RealtimeHub()


@pytest.mark.asyncio
async def test_due_notification_sent_once(session_maker, db_session, customer, hub):
    socket = FakeSocket()
    hub.connect(socket, user_id=customer.id, role=customer.role)
    hub.join(socket, user_room(customer.id))

    past = utcnow() - timedelta(minutes=5)
    due = Notification(title="Flash sale", message="Today only", user_id=customer.id, scheduled_at=past)
    db_session.add_all([
        due,
        Notification(title="Later", message="Tomorrow", user_id=customer.id, scheduled_at=utcnow() + timedelta(hours=2)),
        Notification(title="Old", message="Already out", user_id=customer.id, scheduled_at=past, sent_at=past),
        Notification(title="Off", message="Disabled", user_id=customer.id, scheduled_at=past, is_active=False),
    ])
    await db_session.commit()

    scheduler = NotificationScheduler(session_maker, hub, interval_seconds=60)

    assert await scheduler.sweep() == 1
    assert await scheduler.sweep() == 0

    assert len(socket.frames) == 1
    assert socket.frames[0]["event"] == "new_notification"
    assert socket.frames[0]["data"]["title"] == "Flash sale"

    await db_session.refresh(due)
    assert due.sent_at is not None

    status = scheduler.get_status()
    assert status["sweeps"] == 2
    assert status["sentCount"] == 1


@pytest.mark.asyncio
async def test_global_notification_broadcasts(session_maker, db_session, hub):
    sockets = [FakeSocket(), FakeSocket()]
    for s in sockets:
        hub.connect(s)

    db_session.add(Notification(
        title="Maintenance", message="Back soon", is_global=True, scheduled_at=utcnow() - timedelta(seconds=1)
    ))
    await db_session.commit()

    await NotificationScheduler(session_maker, hub).sweep()

    assert all(len(s.frames) == 1 for s in sockets)


@pytest.mark.asyncio
async def test_start_and_stop(session_maker, hub):
    scheduler = NotificationScheduler(session_maker, hub, interval_seconds=3600)
    await scheduler.start()
    assert scheduler.get_status()["running"] is True

    await scheduler.stop()
    assert scheduler.get_status()["running"] is False
