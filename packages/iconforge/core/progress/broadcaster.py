"""Per-request progress channels.

Each request gets its own channel holding the last known event, so a late or
reconnecting subscriber still learns the outcome. A channel has at most one
live subscriber; attaching a new one ends the previous subscription.
Heartbeats flow only to an attached subscriber of an unresolved request and
are never recorded as state.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
import contextlib
import logging

from iconforge.core.config.models import ProgressConfig
from iconforge.core.progress.events import EventType, ProgressEvent

logger = logging.getLogger(__name__)


class Subscription:
    """Live event stream for one request.

    Async-iterable; iteration ends after the terminal event, when the
    subscription is replaced by a newer subscriber, or after :meth:`close`.
    Delivery is at-most-once: if the consumer falls more than the queue size
    behind, the oldest undelivered events are dropped.
    """

    def __init__(
        self,
        request_id: str,
        *,
        maxsize: int = 256,
        on_close: Callable[[Subscription], None] | None = None,
    ) -> None:
        self.request_id = request_id
        self._queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        if self._queue.full():
            dropped = self._queue.get_nowait()
            logger.warning(
                f"Subscriber for {self.request_id} is lagging; dropped "
                f"{dropped.type.value if dropped else 'event'}"
            )
        self._queue.put_nowait(event)

    def end(self) -> None:
        """End the stream from the producer side."""
        if self._closed:
            return
        self._closed = True
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def close(self) -> None:
        """Detach from the channel (consumer went away). Work is not affected."""
        was_open = not self._closed
        self.end()
        if was_open and self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class RequestChannel:
    """Topic for a single request."""

    def __init__(self, request_id: str, *, trial_mode: bool = False) -> None:
        self.request_id = request_id
        self.trial_mode = trial_mode
        self.last_event: ProgressEvent | None = None
        self.subscriber: Subscription | None = None
        self.heartbeat_task: asyncio.Task[None] | None = None

    @property
    def resolved(self) -> bool:
        return self.last_event is not None and self.last_event.is_terminal


class ProgressBroadcaster:
    """Registry of per-request channels.

    Channel lifetime is owned by the caller: ``open`` on submission,
    ``close`` once the terminal event has been out for the retention period.

    Args:
        config: Progress configuration (heartbeat interval, queue size)

    Example:
        >>> broadcaster = ProgressBroadcaster()
        >>> broadcaster.open("req-1")
        >>> subscription = broadcaster.subscribe("req-1")
        >>> async for event in subscription:
        ...     print(event.type)
    """

    def __init__(self, config: ProgressConfig | None = None) -> None:
        self.config = config or ProgressConfig()
        self._channels: dict[str, RequestChannel] = {}

    def open(self, request_id: str, *, trial_mode: bool = False) -> RequestChannel:
        """Create the channel for a request.

        Raises:
            ValueError: If a channel for ``request_id`` already exists
        """
        if request_id in self._channels:
            raise ValueError(f"Channel already open for {request_id}")
        channel = RequestChannel(request_id, trial_mode=trial_mode)
        self._channels[request_id] = channel
        return channel

    def has_channel(self, request_id: str) -> bool:
        return request_id in self._channels

    def last_event(self, request_id: str) -> ProgressEvent | None:
        channel = self._channels.get(request_id)
        return channel.last_event if channel else None

    def publish(self, event: ProgressEvent) -> None:
        """Record ``event`` as last known state and deliver it to the live subscriber.

        Raises:
            KeyError: If the request has no open channel
            ValueError: If the request already reached a terminal event
        """
        channel = self._channels[event.request_id]
        if channel.resolved:
            raise ValueError(f"Request {event.request_id} already resolved; got {event.type}")

        if not event.is_heartbeat:
            channel.last_event = event

        if channel.subscriber is not None:
            channel.subscriber.deliver(event)

        if event.is_terminal:
            if channel.subscriber is not None:
                channel.subscriber.end()
                channel.subscriber = None
            self._stop_heartbeat(channel)

    def subscribe(self, request_id: str) -> Subscription:
        """Attach a live subscriber, replacing any previous one.

        The new subscription first receives the last known event. For a
        resolved request that is the terminal event, after which it ends.

        Raises:
            KeyError: If the request has no open channel
        """
        channel = self._channels[request_id]

        if channel.subscriber is not None:
            logger.debug(f"Replacing subscriber for {request_id}")
            channel.subscriber.end()

        subscription = Subscription(
            request_id,
            maxsize=self.config.subscriber_queue_size,
            on_close=lambda sub: self._detach(request_id, sub),
        )
        if channel.last_event is not None:
            subscription.deliver(channel.last_event)

        if channel.resolved:
            subscription.end()
            channel.subscriber = None
            return subscription

        channel.subscriber = subscription
        self._start_heartbeat(channel)
        return subscription

    def close(self, request_id: str) -> None:
        """Tear down a channel, ending any live subscription."""
        channel = self._channels.pop(request_id, None)
        if channel is None:
            return
        if channel.subscriber is not None:
            channel.subscriber.end()
            channel.subscriber = None
        self._stop_heartbeat(channel)

    def _detach(self, request_id: str, subscription: Subscription) -> None:
        channel = self._channels.get(request_id)
        if channel is not None and channel.subscriber is subscription:
            channel.subscriber = None
            self._stop_heartbeat(channel)

    def _start_heartbeat(self, channel: RequestChannel) -> None:
        if channel.heartbeat_task is not None and not channel.heartbeat_task.done():
            return
        channel.heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(channel), name=f"heartbeat-{channel.request_id}"
        )

    @staticmethod
    def _stop_heartbeat(channel: RequestChannel) -> None:
        task = channel.heartbeat_task
        channel.heartbeat_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self, channel: RequestChannel) -> None:
        interval = self.config.heartbeat_interval_seconds
        with contextlib.suppress(asyncio.CancelledError):
            while True:
                await asyncio.sleep(interval)
                if channel.resolved or channel.subscriber is None:
                    return
                channel.subscriber.deliver(
                    ProgressEvent(
                        type=EventType.HEARTBEAT,
                        request_id=channel.request_id,
                        trial_mode=channel.trial_mode,
                    )
                )
