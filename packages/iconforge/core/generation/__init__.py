"""Generation request model, prompts, and orchestration.

The coordinator is not re-exported here because it depends on the progress
and storage packages, which import this package's models.
Import it directly: ``from iconforge.core.generation.coordinator import RequestCoordinator``.
"""

from iconforge.core.generation.models import (
    Attempt,
    AttemptStatus,
    AttemptSummary,
    ErrorCategory,
    GenerationRequest,
    GenerationResult,
    Icon,
    MoreIconsRequest,
    RequestStatus,
)
from iconforge.core.generation.prompts import PromptBuilder
from iconforge.core.generation.seeds import SeedManager

__all__ = [
    "Attempt",
    "AttemptStatus",
    "AttemptSummary",
    "ErrorCategory",
    "GenerationRequest",
    "GenerationResult",
    "Icon",
    "MoreIconsRequest",
    "PromptBuilder",
    "RequestStatus",
    "SeedManager",
]
