"""Tests for progress event wire serialization."""

from __future__ import annotations

import base64

from iconforge.core.generation.models import ErrorCategory, Icon
from iconforge.core.progress.events import EventType, ProgressEvent


def _icon(position: int = 0) -> Icon:
    return Icon(
        position=position,
        image=b"png-bytes",
        provider="gpt",
        generation_index=1,
        attempt_label="gpt-gen1",
        description="rocket",
    )


class TestEventType:
    def test_terminal_types(self) -> None:
        assert EventType.REQUEST_COMPLETED.is_terminal
        assert EventType.REQUEST_ERROR.is_terminal
        assert not EventType.ATTEMPT_FAILED.is_terminal
        assert not EventType.HEARTBEAT.is_terminal


class TestToWire:
    def test_attempt_success(self) -> None:
        event = ProgressEvent(
            type=EventType.ATTEMPT_SUCCEEDED,
            request_id="r1",
            attempt_label="gpt-gen1",
            provider="gpt",
            generation_index=1,
            icons=[_icon()],
            composite_image=b"grid",
            elapsed_ms=1234.5,
        )

        wire = event.to_wire()

        assert wire["eventType"] == "service_update"
        assert wire["status"] == "success"
        assert wire["serviceName"] == "gpt-gen1"
        assert wire["generationTimeMs"] == 1234
        assert wire["originalGridImageBase64"] == base64.b64encode(b"grid").decode()
        assert wire["icons"][0]["base64Data"] == base64.b64encode(b"png-bytes").decode()
        assert wire["icons"][0]["gridPosition"] == 0
        assert wire["icons"][0]["description"] == "rocket"

    def test_request_error(self) -> None:
        wire = ProgressEvent(
            type=EventType.REQUEST_ERROR,
            request_id="r1",
            message="Request failed",
            error_category=ErrorCategory.UNKNOWN,
            trial_mode=True,
        ).to_wire()

        assert wire["eventType"] == "generation_complete"
        assert wire["status"] == "error"
        assert wire["errorCategory"] == "unknown"
        assert wire["trialMode"] is True
        assert "serviceName" not in wire

    def test_heartbeat_is_minimal(self) -> None:
        wire = ProgressEvent(type=EventType.HEARTBEAT, request_id="r1").to_wire()
        assert wire["eventType"] == "heartbeat"
        assert wire["status"] == "processing"
        assert set(wire) == {"eventType", "requestId", "timestamp", "status"}
