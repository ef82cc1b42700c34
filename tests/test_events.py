"""Tests for the event bus and toast center."""

import asyncio

import pytest

from churchthrive_sync.events import TOPIC_TOASTS, EventBus, ToastCenter, ToastType


class TestEventBus:
    """Tests for topic routing."""

    def test_publish_reaches_topic_subscribers(self):
        bus = EventBus()
        received = []
        bus.subscribe("sync.state", received.append)

        bus.publish("sync.state", {"value": 1})
        bus.publish("other", {"value": 2})

        assert received == [{"topic": "sync.state", "value": 1}]

    def test_wildcard_sees_every_topic(self):
        bus = EventBus()
        received = []
        bus.subscribe("*", lambda e: received.append(e["topic"]))

        bus.publish("a", {})
        bus.publish("b", {})

        assert received == ["a", "b"]

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe("t", received.append)
        assert bus.subscriber_count("t") == 1

        unsubscribe()
        unsubscribe()
        bus.publish("t", {})

        assert received == []
        assert bus.subscriber_count("t") == 0

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe("t", broken)
        bus.subscribe("t", received.append)

        bus.publish("t", {"n": 1})

        assert received == [{"topic": "t", "n": 1}]


class TestToastCenter:
    """Tests for transient notifications."""

    def test_add_uses_type_default_duration(self):
        center = ToastCenter(EventBus())
        assert center.success("저장됨").duration == 3.0
        assert center.error("실패").duration == 5.0
        assert center.warning("주의").duration == 4.0
        assert center.info("알림").duration == 3.0
        assert [t.type for t in center.toasts] == [
            ToastType.SUCCESS,
            ToastType.ERROR,
            ToastType.WARNING,
            ToastType.INFO,
        ]

    def test_add_accepts_string_type(self):
        center = ToastCenter(EventBus())
        toast = center.add("warning", "offline", duration=10)
        assert toast.type == ToastType.WARNING
        assert toast.duration == 10

    def test_ids_are_unique(self):
        center = ToastCenter(EventBus())
        ids = {center.info(str(i)).id for i in range(5)}
        assert len(ids) == 5

    def test_every_change_publishes_full_list(self):
        bus = EventBus()
        snapshots = []
        bus.subscribe(TOPIC_TOASTS, lambda e: snapshots.append([t["message"] for t in e["toasts"]]))
        center = ToastCenter(bus)

        first = center.info("one")
        center.info("two")
        center.remove(first.id)
        center.clear()

        assert snapshots == [["one"], ["one", "two"], ["two"], []]

    def test_remove_unknown(self):
        center = ToastCenter(EventBus())
        assert center.remove("toast-missing") is False

    def test_without_loop_toasts_stay(self):
        center = ToastCenter(EventBus())
        center.info("sticky until removed", duration=0.01)
        assert len(center.toasts) == 1

    @pytest.mark.asyncio
    async def test_auto_removal(self):
        center = ToastCenter(EventBus())
        center.info("short", duration=0.01)
        center.info("kept", duration=0)

        await asyncio.sleep(0.05)

        assert [t.message for t in center.toasts] == ["kept"]

    @pytest.mark.asyncio
    async def test_manual_remove_cancels_timer(self):
        bus = EventBus()
        events = []
        bus.subscribe(TOPIC_TOASTS, events.append)
        center = ToastCenter(bus)

        toast = center.info("x", duration=0.01)
        assert center.remove(toast.id) is True
        await asyncio.sleep(0.03)

        assert len(events) == 2
