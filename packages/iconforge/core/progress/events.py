"""Progress event model."""

from __future__ import annotations

import base64
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from iconforge.core.generation.models import ErrorCategory, Icon


class EventType(str, Enum):
    """Progress event tags."""

    ATTEMPT_STARTED = "attempt_started"
    ATTEMPT_UPSCALING = "attempt_upscaling"
    ATTEMPT_SUCCEEDED = "attempt_succeeded"
    ATTEMPT_FAILED = "attempt_failed"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_ERROR = "request_error"
    HEARTBEAT = "heartbeat"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.REQUEST_COMPLETED, EventType.REQUEST_ERROR)


# Wire status strings, as consumed by existing front ends
_WIRE_STATUS = {
    EventType.ATTEMPT_STARTED: "started",
    EventType.ATTEMPT_UPSCALING: "upscaling",
    EventType.ATTEMPT_SUCCEEDED: "success",
    EventType.ATTEMPT_FAILED: "error",
    EventType.REQUEST_COMPLETED: "complete",
    EventType.REQUEST_ERROR: "error",
    EventType.HEARTBEAT: "processing",
}


def _now() -> datetime:
    return datetime.now(UTC)


class ProgressEvent(BaseModel):
    """One lifecycle event for a request.

    Attempt events carry the attempt label, provider, and generation index.
    Terminal events carry every icon the request produced. Heartbeats carry
    nothing but the request id and a timestamp.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: EventType
    request_id: str
    attempt_label: str | None = None
    provider: str | None = None
    generation_index: int | None = None
    message: str | None = None
    icons: list[Icon] = Field(default_factory=list)
    composite_image: bytes | None = Field(default=None, repr=False)
    elapsed_ms: float | None = None
    error_category: ErrorCategory | None = None
    trial_mode: bool = False
    timestamp: datetime = Field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.type.is_terminal

    @property
    def is_heartbeat(self) -> bool:
        return self.type is EventType.HEARTBEAT

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict for a server-push transport."""
        if self.is_heartbeat:
            return {
                "eventType": "heartbeat",
                "requestId": self.request_id,
                "timestamp": int(self.timestamp.timestamp() * 1000),
                "status": _WIRE_STATUS[self.type],
            }

        wire: dict[str, Any] = {
            "eventType": "generation_complete" if self.is_terminal else "service_update",
            "requestId": self.request_id,
            "status": _WIRE_STATUS[self.type],
            "message": self.message,
            "trialMode": self.trial_mode,
            "icons": [
                {
                    "id": icon.id,
                    "base64Data": base64.b64encode(icon.image).decode(),
                    "gridPosition": icon.position,
                    "serviceSource": icon.provider,
                    "generationIndex": icon.generation_index,
                    "description": icon.description,
                }
                for icon in self.icons
            ],
        }
        if self.attempt_label is not None:
            wire["serviceName"] = self.attempt_label
            wire["generationIndex"] = self.generation_index
        if self.composite_image is not None:
            wire["originalGridImageBase64"] = base64.b64encode(self.composite_image).decode()
        if self.elapsed_ms is not None:
            wire["generationTimeMs"] = int(self.elapsed_ms)
        if self.error_category is not None:
            wire["errorCategory"] = self.error_category.value
        return wire
