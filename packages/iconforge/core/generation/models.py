"""Data model for generation requests, attempts, and icons."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import time
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class AttemptStatus(str, Enum):
    """Attempt lifecycle. Values are ordered; transitions only move forward."""

    PENDING = "pending"
    STARTED = "started"
    UPSCALING = "upscaling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.SUCCEEDED, AttemptStatus.FAILED)


_STATUS_RANK = {
    AttemptStatus.PENDING: 0,
    AttemptStatus.STARTED: 1,
    AttemptStatus.UPSCALING: 2,
    AttemptStatus.SUCCEEDED: 3,
    AttemptStatus.FAILED: 3,
}


class ErrorCategory(str, Enum):
    """Sanitized failure categories surfaced to clients."""

    CONTENT_POLICY = "content_policy"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


class RequestStatus(str, Enum):
    """Request-level status as reported by ``poll_status``."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"
    NOT_FOUND = "not_found"


class GenerationRequest(BaseModel):
    """An accepted icon generation request. Immutable once constructed.

    Attributes:
        user_id: Authenticated user identity (from the auth collaborator)
        theme: General theme text
        reference_image: Raw bytes of a style reference image
        icon_count: Icons per grid (a perfect square)
        generations_per_provider: Rounds per enabled provider (1 = primary only)
        seed: Caller-supplied base seed
        icon_descriptions: Per-slot text overrides, row-major
        enhance_prompt: Rewrite the theme through the prompt enhancer first
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str = Field(min_length=1, description="Requesting user")
    theme: str | None = Field(default=None, description="General theme text")
    reference_image: bytes | None = Field(default=None, repr=False)
    icon_count: int = Field(default=9, ge=1, description="Icons per grid")
    generations_per_provider: int = Field(default=1, ge=1, le=2)
    seed: int | None = Field(default=None, ge=0)
    icon_descriptions: tuple[str, ...] = Field(default=())
    enhance_prompt: bool = False

    @property
    def has_theme(self) -> bool:
        return bool(self.theme and self.theme.strip())

    @property
    def has_reference_image(self) -> bool:
        return bool(self.reference_image)

    def slot_descriptions(self, generation_index: int = 1) -> list[str]:
        """Descriptions for one round's grid, padded with "" up to icon_count.

        Round N uses ``icon_descriptions[(N-1)*icon_count : N*icon_count]``.
        """
        start = (generation_index - 1) * self.icon_count
        slots = [d or "" for d in self.icon_descriptions[start : start + self.icon_count]]
        slots.extend("" for _ in range(self.icon_count - len(slots)))
        return slots


class MoreIconsRequest(BaseModel):
    """Follow-up request reusing a previous attempt's grid and seed for style continuity.

    ``original_image`` and ``seed`` may be omitted while the original request
    is still retained by the coordinator; they are looked up from the matching
    attempt in that case.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str = Field(min_length=1)
    original_request_id: str
    provider: str
    generation_index: int = Field(default=1, ge=1)
    theme: str | None = None
    icon_descriptions: tuple[str, ...] = Field(default=())
    original_image: bytes | None = Field(default=None, repr=False)
    seed: int | None = Field(default=None, ge=0)
    icon_count: int = Field(default=9, ge=1)


class Icon(BaseModel):
    """A single icon cut from a composite grid."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=lambda: uuid4().hex)
    position: int = Field(ge=0, description="Row-major position within the source grid")
    image: bytes = Field(repr=False, description="PNG payload")
    provider: str
    generation_index: int = Field(ge=1)
    attempt_label: str
    description: str = ""


@dataclass
class Attempt:
    """One provider call within a request. Owned exclusively by its request."""

    provider: str
    generation_index: int
    seed: int
    status: AttemptStatus = AttemptStatus.PENDING
    started_at: float | None = None
    elapsed_ms: float | None = None
    icons: list[Icon] = field(default_factory=list)
    composite_image: bytes | None = field(default=None, repr=False)
    error: str | None = None
    error_category: ErrorCategory | None = None

    @property
    def label(self) -> str:
        return f"{self.provider}-gen{self.generation_index}"

    @property
    def succeeded(self) -> bool:
        return self.status is AttemptStatus.SUCCEEDED

    def advance(self, status: AttemptStatus) -> None:
        """Move to ``status``.

        Raises:
            ValueError: If the transition would leave a terminal state or move backward
        """
        if self.status.is_terminal or _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            raise ValueError(f"Attempt {self.label}: illegal transition {self.status} -> {status}")
        if status is AttemptStatus.STARTED:
            self.started_at = time.perf_counter()
        if status.is_terminal and self.started_at is not None:
            self.elapsed_ms = (time.perf_counter() - self.started_at) * 1000
        self.status = status

    def restart_clock(self) -> None:
        """Measure elapsed time from now instead of from submission."""
        self.started_at = time.perf_counter()

    def summary(self, message: str | None = None) -> AttemptSummary:
        return AttemptSummary(
            label=self.label,
            provider=self.provider,
            generation_index=self.generation_index,
            seed=self.seed,
            status=self.status,
            elapsed_ms=self.elapsed_ms,
            icon_count=len(self.icons),
            message=message,
            error_category=self.error_category,
        )


class AttemptSummary(BaseModel):
    """Client-safe view of an attempt (no raw error text)."""

    model_config = ConfigDict(frozen=True)

    label: str
    provider: str
    generation_index: int
    seed: int
    status: AttemptStatus
    elapsed_ms: float | None = None
    icon_count: int = 0
    message: str | None = None
    error_category: ErrorCategory | None = None


class GenerationResult(BaseModel):
    """Last known state of a request, as returned by ``poll_status``."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    status: RequestStatus
    message: str | None = None
    icons: list[Icon] = Field(default_factory=list)
    attempts: list[AttemptSummary] = Field(default_factory=list)
    seed: int | None = None
    trial_mode: bool = False
    refunded: int = 0
    stored_paths: list[str] = Field(default_factory=list)

    @classmethod
    def not_found(cls, request_id: str) -> GenerationResult:
        return cls(request_id=request_id, status=RequestStatus.NOT_FOUND)
