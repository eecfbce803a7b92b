from __future__ import annotations

import asyncio
import json
import threading

import pytest

from backend.app.routers.events import (
    STREAM_BACKLOG_LIMIT,
    SubscriberBacklogError,
    format_sse,
    queue_deliverer,
)
from backend.app.services.notifier import EVENTS_INGESTED, ChangeNotifier


def test_broadcast_reaches_every_subscriber():
    notifier = ChangeNotifier()
    first, second = [], []
    notifier.subscribe(first.append)
    notifier.subscribe(second.append)

    delivered = notifier.broadcast({"type": "ping"})

    assert delivered == 2
    assert first == second == [{"type": "ping"}]


def test_failing_subscriber_is_removed_without_affecting_others():
    notifier = ChangeNotifier()
    healthy = []

    def broken(_message):
        raise ConnectionError("client went away")

    notifier.subscribe(broken, label="broken")
    notifier.subscribe(healthy.append)

    assert notifier.broadcast({"n": 1}) == 1
    assert notifier.subscriber_count == 1
    assert notifier.broadcast({"n": 2}) == 1
    assert healthy == [{"n": 1}, {"n": 2}]


def test_unsubscribe_is_idempotent():
    notifier = ChangeNotifier()
    handle = notifier.subscribe(lambda message: None)

    assert notifier.unsubscribe(handle) is True
    assert notifier.unsubscribe(handle) is False
    assert notifier.broadcast({"type": "ping"}) == 0


def test_notify_ingested_message_shape():
    notifier = ChangeNotifier()
    received = []
    notifier.subscribe(received.append)

    notifier.notify_ingested(inserted=2, skipped=1, total=3)

    assert received == [
        {"type": EVENTS_INGESTED, "payload": {"inserted": 2, "skipped": 1, "total": 3}}
    ]


def test_concurrent_subscribe_and_broadcast_do_not_corrupt_registry():
    notifier = ChangeNotifier()
    handles = []
    errors = []

    def churn():
        try:
            for _ in range(200):
                handles.append(notifier.subscribe(lambda message: None))
                notifier.broadcast({"type": "ping"})
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=churn) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert notifier.subscriber_count == 800
    for handle in handles:
        notifier.unsubscribe(handle)
    assert notifier.subscriber_count == 0


def test_format_sse_frames_json_messages():
    frame = format_sse({"type": EVENTS_INGESTED, "payload": {"inserted": 1}})

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: ") :]) == {
        "type": EVENTS_INGESTED,
        "payload": {"inserted": 1},
    }


def test_queue_deliverer_hands_messages_to_the_event_loop():
    async def scenario():
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        notifier = ChangeNotifier()
        notifier.subscribe(queue_deliverer(loop, queue))

        await loop.run_in_executor(None, notifier.broadcast, {"type": "ping"})
        return await asyncio.wait_for(queue.get(), timeout=1)

    assert asyncio.run(scenario()) == {"type": "ping"}


def test_backlogged_stream_subscriber_is_dropped():
    async def scenario():
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        for index in range(STREAM_BACKLOG_LIMIT):
            queue.put_nowait({"n": index})
        deliver = queue_deliverer(loop, queue)
        with pytest.raises(SubscriberBacklogError):
            deliver({"type": "ping"})

        notifier = ChangeNotifier()
        notifier.subscribe(deliver)
        delivered = notifier.broadcast({"type": "ping"})
        return delivered, notifier.subscriber_count

    assert asyncio.run(scenario()) == (0, 0)
