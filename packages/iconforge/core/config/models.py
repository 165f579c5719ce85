"""Configuration models for iconforge."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConfigBase(BaseModel):
    """Base class for all iconforge configurations.

    Provides common functionality for loading from files with defaults.
    Subclasses must implement default_path() to specify their default location.
    """

    model_config = ConfigDict(extra="ignore")  # Forward compatibility

    @classmethod
    def default_path(cls) -> Path:
        """Return the default config file path for this config type.

        Returns:
            Path to the default config file
        """
        raise NotImplementedError(f"{cls.__name__} must implement default_path()")

    @classmethod
    def load_or_default(cls, path: Path | str | None = None) -> Self:
        """Load config from path or use default path.

        Args:
            path: Path to config file, or None to use default

        Returns:
            Loaded config instance

        Raises:
            ValidationError: If config is invalid
        """
        if cls.__name__ == "AppConfig":
            from iconforge.core.config.loader import load_app_config

            return load_app_config(path)  # type: ignore[return-value]

        from iconforge.core.config.loader import load_config

        if path is None:
            path = cls.default_path()
        raw = load_config(path)
        return cls.model_validate(raw)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    structured: bool = Field(default=False, description="Emit JSON log lines")
    filename: str | None = Field(default=None, description="Log file (stdout if None)")


class ProviderKind(str, Enum):
    """Wire protocol spoken by a provider."""

    OPENAI = "openai"
    FAL = "fal"


class ProviderConfig(BaseModel):
    """Per-provider configuration.

    The provider's label (used in progress events and attempt labels) is the
    key it is registered under in ``AppConfig.providers``.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Include provider in fan-out")
    kind: ProviderKind = Field(description="Wire protocol")
    model: str | None = Field(default=None, description="Model name (OpenAI only)")
    text_endpoint: str | None = Field(
        default=None, description="Text-to-image endpoint id (fal only)"
    )
    image_endpoint: str | None = Field(
        default=None, description="Image-to-image endpoint id (fal only)"
    )
    timeout_seconds: float = Field(default=120.0, gt=0, description="HTTP timeout per call")
    max_retries: int = Field(
        default=1, ge=0, le=5, description="Retries on temporary failure inside the adapter"
    )
    api_key: str | None = Field(default=None, description="API key (falls back to env)")

    @model_validator(mode="after")
    def _check_endpoints(self) -> ProviderConfig:
        if self.kind is ProviderKind.FAL and not self.text_endpoint:
            raise ValueError("fal providers require text_endpoint")
        return self


class SettlementPolicy(str, Enum):
    """How a request's reservation is settled when some attempts fail."""

    FULL_CHARGE_ON_ANY_SUCCESS = "full_charge_on_any_success"
    PROPORTIONAL_REFUND = "proportional_refund"


class GenerationConfig(BaseModel):
    """Fan-out and pricing configuration."""

    icon_count: int = Field(default=9, description="Default icons per grid")
    max_icon_count: int = Field(default=9, ge=1, le=25, description="Upper bound on icon_count")
    max_generations: int = Field(default=2, ge=1, le=2, description="Rounds per provider")
    attempt_timeout_seconds: float = Field(
        default=180.0, gt=0, description="Wall-clock budget per attempt"
    )
    max_concurrent_attempts: int | None = Field(
        default=None, ge=1, description="Global cap on in-flight provider calls"
    )
    settlement_policy: SettlementPolicy = SettlementPolicy.FULL_CHARGE_ON_ANY_SUCCESS
    second_generation_variation: bool = Field(
        default=True, description="Append the dimensional-style suffix on round 2"
    )
    enhance_prompts: bool = Field(default=False, description="Rewrite themes via chat model")
    enhancer_model: str = Field(default="gpt-4o-mini", description="Chat model for enhancement")
    more_icons_cost: int = Field(default=1, ge=0, description="Coins per generate-more call")


class ImagingConfig(BaseModel):
    """Grid decomposition configuration."""

    icon_target_size: int = Field(default=300, gt=0, description="Output icon edge (px)")
    remove_frame: bool = Field(default=True, description="Strip solid cell frames")
    margin_trim_px: int = Field(default=0, ge=0, description="Uniform per-cell trim")
    center_icons: bool = Field(default=True, description="Re-center content on a square canvas")
    content_ratio: float = Field(
        default=0.9, gt=0.0, le=1.0, description="Max content size relative to canvas"
    )


class ProgressConfig(BaseModel):
    """Progress channel configuration."""

    heartbeat_interval_seconds: float = Field(default=5.0, gt=0)
    retention_seconds: float = Field(
        default=600.0, ge=0, description="Grace period before a finished channel is dropped"
    )
    subscriber_queue_size: int = Field(default=256, ge=1)


class StorageConfig(BaseModel):
    """Icon persistence configuration."""

    root: str = "data/icons"


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "gpt": ProviderConfig(kind=ProviderKind.OPENAI, model="gpt-image-1"),
        "banana": ProviderConfig(
            kind=ProviderKind.FAL,
            text_endpoint="fal-ai/nano-banana",
            image_endpoint="fal-ai/nano-banana/edit",
        ),
    }


class AppConfig(ConfigBase):
    """Application-level configuration."""

    model_config = ConfigDict(extra="ignore")

    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    generation: GenerationConfig = GenerationConfig()
    imaging: ImagingConfig = ImagingConfig()
    progress: ProgressConfig = ProgressConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()
    openai_api_key: str | None = None

    @classmethod
    def default_path(cls) -> Path:
        """Default path for application config."""
        return Path("config.yaml")

    def enabled_providers(self) -> list[str]:
        """Return labels of enabled providers in declaration order."""
        return [name for name, cfg in self.providers.items() if cfg.enabled]
