"""Tests for per-request progress channels."""

from __future__ import annotations

import asyncio

import pytest

from iconforge.core.config.models import ProgressConfig
from iconforge.core.progress.broadcaster import ProgressBroadcaster, Subscription
from iconforge.core.progress.events import EventType, ProgressEvent


def _event(event_type: EventType, request_id: str = "r1", **kwargs: object) -> ProgressEvent:
    return ProgressEvent(type=event_type, request_id=request_id, **kwargs)  # type: ignore[arg-type]


async def _drain(subscription: Subscription, timeout: float = 1.0) -> list[ProgressEvent]:
    async def _collect() -> list[ProgressEvent]:
        return [event async for event in subscription]

    return await asyncio.wait_for(_collect(), timeout)


@pytest.fixture
def quiet_broadcaster() -> ProgressBroadcaster:
    """Broadcaster whose heartbeat never fires during a test."""
    return ProgressBroadcaster(ProgressConfig(heartbeat_interval_seconds=60))


class TestChannelLifecycle:
    def test_open_twice_rejected(self, quiet_broadcaster: ProgressBroadcaster) -> None:
        quiet_broadcaster.open("r1")
        with pytest.raises(ValueError, match="already open"):
            quiet_broadcaster.open("r1")

    def test_publish_without_channel(self, quiet_broadcaster: ProgressBroadcaster) -> None:
        with pytest.raises(KeyError):
            quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED))

    def test_nothing_after_terminal(self, quiet_broadcaster: ProgressBroadcaster) -> None:
        quiet_broadcaster.open("r1")
        quiet_broadcaster.publish(_event(EventType.REQUEST_COMPLETED))
        with pytest.raises(ValueError, match="already resolved"):
            quiet_broadcaster.publish(_event(EventType.ATTEMPT_FAILED))

    def test_last_event_tracks_state(self, quiet_broadcaster: ProgressBroadcaster) -> None:
        quiet_broadcaster.open("r1")
        quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED, attempt_label="gpt-gen1"))
        last = quiet_broadcaster.last_event("r1")
        assert last is not None and last.attempt_label == "gpt-gen1"

    def test_close_removes_channel(self, quiet_broadcaster: ProgressBroadcaster) -> None:
        quiet_broadcaster.open("r1")
        quiet_broadcaster.close("r1")
        assert not quiet_broadcaster.has_channel("r1")
        assert quiet_broadcaster.last_event("r1") is None


class TestSubscribe:
    async def test_live_subscriber_receives_events_until_terminal(
        self, quiet_broadcaster: ProgressBroadcaster
    ) -> None:
        quiet_broadcaster.open("r1")
        subscription = quiet_broadcaster.subscribe("r1")

        quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED))
        quiet_broadcaster.publish(_event(EventType.ATTEMPT_SUCCEEDED))
        quiet_broadcaster.publish(_event(EventType.REQUEST_COMPLETED))

        events = await _drain(subscription)
        assert [e.type for e in events] == [
            EventType.ATTEMPT_STARTED,
            EventType.ATTEMPT_SUCCEEDED,
            EventType.REQUEST_COMPLETED,
        ]

    async def test_late_subscriber_gets_terminal_event(
        self, quiet_broadcaster: ProgressBroadcaster
    ) -> None:
        quiet_broadcaster.open("r1")
        quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED))
        quiet_broadcaster.publish(_event(EventType.REQUEST_ERROR, message="failed"))

        events = await _drain(quiet_broadcaster.subscribe("r1"))

        assert len(events) == 1
        assert events[0].type is EventType.REQUEST_ERROR

    async def test_reconnect_primes_with_last_state(
        self, quiet_broadcaster: ProgressBroadcaster
    ) -> None:
        quiet_broadcaster.open("r1")
        quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED, attempt_label="a"))
        quiet_broadcaster.publish(_event(EventType.ATTEMPT_STARTED, attempt_label="b"))

        subscription = quiet_broadcaster.subscribe("r1")
        quiet_broadcaster.publish(_event(EventType.REQUEST_COMPLETED))

        events = await _drain(subscription)
        assert [e.attempt_label for e in events] == ["b", None]

    async def test_new_subscriber_replaces_old(
        self, quiet_broadcaster: ProgressBroadcaster
    ) -> None:
        quiet_broadcaster.open("r1")
        first = quiet_broadcaster.subscribe("r1")
        second = quiet_broadcaster.subscribe("r1")

        quiet_broadcaster.publish(_event(EventType.REQUEST_COMPLETED))

        assert await _drain(first) == []
        assert [e.type for e in await _drain(second)] == [EventType.REQUEST_COMPLETED]

    async def test_closing_subscription_does_not_affect_channel(
        self, quiet_broadcaster: ProgressBroadcaster
    ) -> None:
        quiet_broadcaster.open("r1")
        subscription = quiet_broadcaster.subscribe("r1")
        subscription.close()

        quiet_broadcaster.publish(_event(EventType.REQUEST_COMPLETED))

        assert await _drain(subscription) == []
        last = quiet_broadcaster.last_event("r1")
        assert last is not None and last.is_terminal

    async def test_lagging_subscriber_drops_oldest(self) -> None:
        broadcaster = ProgressBroadcaster(
            ProgressConfig(heartbeat_interval_seconds=60, subscriber_queue_size=2)
        )
        broadcaster.open("r1")
        subscription = broadcaster.subscribe("r1")
        for label in ("a", "b", "c"):
            broadcaster.publish(_event(EventType.ATTEMPT_STARTED, attempt_label=label))
        broadcaster.close("r1")

        events = await _drain(subscription)
        assert [e.attempt_label for e in events] == ["c"]


class TestHeartbeat:
    async def test_heartbeats_flow_but_are_not_state(self, broadcaster: ProgressBroadcaster) -> None:
        broadcaster.open("r1", trial_mode=True)
        broadcaster.publish(_event(EventType.ATTEMPT_STARTED))
        subscription = broadcaster.subscribe("r1")

        await asyncio.sleep(0.18)
        broadcaster.publish(_event(EventType.REQUEST_COMPLETED))
        events = await _drain(subscription)

        heartbeats = [e for e in events if e.is_heartbeat]
        assert heartbeats
        assert all(not e.is_terminal and e.trial_mode for e in heartbeats)
        assert events[-1].type is EventType.REQUEST_COMPLETED
        last = broadcaster.last_event("r1")
        assert last is not None and last.type is EventType.REQUEST_COMPLETED

    async def test_no_heartbeat_without_subscriber(self, broadcaster: ProgressBroadcaster) -> None:
        broadcaster.open("r1")
        broadcaster.publish(_event(EventType.ATTEMPT_STARTED))
        await asyncio.sleep(0.12)
        last = broadcaster.last_event("r1")
        assert last is not None and last.type is EventType.ATTEMPT_STARTED
