"""Live progress reporting."""

from iconforge.core.progress.broadcaster import ProgressBroadcaster, RequestChannel, Subscription
from iconforge.core.progress.events import EventType, ProgressEvent

__all__ = [
    "EventType",
    "ProgressBroadcaster",
    "ProgressEvent",
    "RequestChannel",
    "Subscription",
]
