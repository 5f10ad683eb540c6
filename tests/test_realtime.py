import asyncio

import pytest

from app.core.realtime import PresenceBroadcaster
from app.staff.schemas.presence import PresenceUpdatedEvent, SessionClosedEvent


def presence(session_id="s1", count=1):
    return PresenceUpdatedEvent(
        session_id=session_id,
        participant_id="S001",
        name="Asha",
        present_count=count,
        roster_size=40,
        time="09:00:00",
    )


async def test_publish_reaches_every_watcher_of_the_session():
    broadcaster = PresenceBroadcaster()
    first = broadcaster.subscribe("s1")
    second = broadcaster.subscribe("s1")
    other = broadcaster.subscribe("s2")

    delivered = broadcaster.publish("s1", presence())

    assert delivered == 2
    message = await first.get(timeout=1)
    assert message == {
        "event": "presenceUpdated",
        "sessionId": "s1",
        "participantId": "S001",
        "name": "Asha",
        "presentCount": 1,
        "rosterSize": 40,
        "time": "09:00:00",
    }
    assert (await second.get(timeout=1))["presentCount"] == 1
    assert other.pending() == 0


async def test_publish_without_watchers_is_a_no_op():
    broadcaster = PresenceBroadcaster()
    assert broadcaster.publish("s1", presence()) == 0


async def test_full_queue_drops_instead_of_blocking():
    broadcaster = PresenceBroadcaster(queue_size=2)
    slow = broadcaster.subscribe("s1")
    fast = broadcaster.subscribe("s1")

    for count in range(1, 4):
        broadcaster.publish("s1", presence(count=count))
        await fast.get(timeout=1)

    assert slow.pending() == 2
    assert slow.dropped == 1
    assert fast.dropped == 0
    assert (await slow.get(timeout=1))["presentCount"] == 1


async def test_unsubscribe_stops_delivery():
    broadcaster = PresenceBroadcaster()

    async with broadcaster.subscribe("s1") as subscription:
        assert broadcaster.watcher_count("s1") == 1

    assert subscription.closed
    assert broadcaster.watcher_count("s1") == 0
    assert broadcaster.publish("s1", presence()) == 0


async def test_subscription_iterates_in_order():
    broadcaster = PresenceBroadcaster()
    subscription = broadcaster.subscribe("s1")

    broadcaster.publish("s1", presence(count=1))
    broadcaster.publish("s1", SessionClosedEvent(session_id="s1", present_count=1, absent_count=3))

    received = []
    async for message in subscription:
        received.append(message["event"])
        if len(received) == 2:
            break

    assert received == ["presenceUpdated", "sessionClosed"]


async def test_get_times_out_when_idle():
    subscription = PresenceBroadcaster().subscribe("s1")

    with pytest.raises(asyncio.TimeoutError):
        await subscription.get(timeout=0.01)
