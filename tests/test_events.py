"""Tests for the event bus and the event API."""

import asyncio
import json
import time
import unittest

from fastapi.testclient import TestClient

from filecourier.api import (
    EventBus, Failed, Finished, Received, Started,
    create_app, encode_event,
)


def wait_until(predicate, timeout: float = 5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


class EventEncodingTest(unittest.TestCase):

    def test_externally_tagged_json(self):
        self.assertEqual(
            json.loads(encode_event(Started(file="a.txt"))),
            {"Started": {"file": "a.txt"}}
        )
        self.assertEqual(
            json.loads(encode_event(Failed(file="a.txt", reason="boom"))),
            {"Failed": {"file": "a.txt", "reason": "boom"}}
        )
        self.assertEqual(
            json.loads(encode_event(Received(file="/in/a.txt"))),
            {"Received": {"file": "/in/a.txt", "verified": True}}
        )


class EventBusTest(unittest.IsolatedAsyncioTestCase):

    async def test_publish_without_subscribers(self):
        bus = EventBus()
        for i in range(20):
            bus.publish(Started(file=f"event-{i}"))
        self.assertEqual(bus.published, 20)
        self.assertEqual(bus.subscriber_count, 0)

    async def test_late_subscriber_sees_no_replay(self):
        bus = EventBus()
        for i in range(20):
            bus.publish(Started(file=f"event-{i}"))

        subscription = bus.subscribe()
        self.assertEqual(subscription.pending(), 0)
        self.assertIsNone(subscription.get_nowait())

        bus.publish(Finished(file="late"))
        event = await asyncio.wait_for(subscription.get(), timeout=1)
        self.assertEqual(event, Finished(file="late"))

    async def test_lagging_subscriber_drops_oldest(self):
        bus = EventBus(capacity=16)
        subscription = bus.subscribe()

        for i in range(20):
            bus.publish(Started(file=f"event-{i}"))

        self.assertEqual(subscription.pending(), 16)
        self.assertEqual(subscription.missed, 4)
        self.assertEqual(subscription.get_nowait().file, "event-4")

    async def test_fan_out_to_every_subscriber(self):
        bus = EventBus()
        first = bus.subscribe()
        second = bus.subscribe()

        bus.publish(Received(file="x"))

        self.assertEqual(first.get_nowait(), Received(file="x"))
        self.assertEqual(second.get_nowait(), Received(file="x"))

    async def test_unsubscribe(self):
        bus = EventBus()
        subscription = bus.subscribe()
        bus.unsubscribe(subscription)

        bus.publish(Started(file="x"))

        self.assertEqual(bus.subscriber_count, 0)
        self.assertIsNone(subscription.get_nowait())

    async def test_publish_from_another_thread(self):
        bus = EventBus()
        subscription = bus.subscribe()

        await asyncio.to_thread(bus.publish, Started(file="threaded"))

        event = await asyncio.wait_for(subscription.get(), timeout=1)
        self.assertEqual(event.file, "threaded")


class EventApiTest(unittest.TestCase):

    def setUp(self):
        self.bus = EventBus()
        self.client = TestClient(create_app(self.bus))

    def test_root(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['name'], "filecourier")
        self.assertEqual(body['subscribers'], 0)

    def test_websocket_receives_events(self):
        with self.client.websocket_connect("/ws") as websocket:
            wait_until(lambda: self.bus.subscriber_count == 1)

            self.bus.publish(Started(file="a.txt"))
            self.bus.publish(Failed(file="a.txt", reason="refused"))

            self.assertEqual(json.loads(websocket.receive_text()),
                             {"Started": {"file": "a.txt"}})
            self.assertEqual(json.loads(websocket.receive_text()),
                             {"Failed": {"file": "a.txt", "reason": "refused"}})

        wait_until(lambda: self.bus.subscriber_count == 0)


if __name__ == '__main__':
    unittest.main()
