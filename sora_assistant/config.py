"""
Configuration and settings for Sora Assistant.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from sora_assistant.analysis.extractor import DEFAULT_VOCABULARY, NavigationPolicy, Vocabulary
from sora_assistant.analysis.prompts import PromptVariant

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"


def _api_key_from_env() -> Optional[str]:
    return os.environ.get("SORA_GEMINI_API_KEY") or os.environ.get("GEMINI_API_KEY")


class AnalysisConfig(BaseModel):
    """Remote vision-language service settings."""

    api_key: Optional[str] = Field(default_factory=_api_key_from_env)
    base_url: str = Field(
        default_factory=lambda: os.environ.get("SORA_GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL)
    )
    model: str = Field(
        default_factory=lambda: os.environ.get("SORA_GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
    )
    prompt_variant: PromptVariant = Field(default=PromptVariant.DETAILED)
    temperature: float = Field(default=0.2)
    timeout_s: float = Field(default=30.0)  # Deadline for one analysis call


class ExtractionConfig(BaseModel):
    """Keyword extraction settings. Empty lists keep the built-in vocabulary."""

    navigation_policy: NavigationPolicy = Field(default=NavigationPolicy.FULL_TEXT)
    objects: list[str] = Field(default_factory=list)
    navigation_terms: list[str] = Field(default_factory=list)
    currency_units: list[str] = Field(default_factory=list)
    text_indicators: list[str] = Field(default_factory=list)
    hazards: list[str] = Field(default_factory=list)

    def vocabulary(self) -> Vocabulary:
        """Built-in vocabulary with any configured tables swapped in."""
        return DEFAULT_VOCABULARY.with_overrides(
            objects=self.objects,
            navigation_terms=self.navigation_terms,
            currency_units=self.currency_units,
            text_indicators=self.text_indicators,
            hazards=self.hazards,
        )


class RecognitionConfig(BaseModel):
    """Continuous speech recognition settings."""

    backend: str = Field(default="google")
    language: str = Field(default="en-US")
    restart_delay_s: float = Field(default=1.0)
    max_restart_delay_s: float = Field(default=30.0)
    max_restart_attempts: int = Field(default=8)  # Consecutive quick failures before giving up
    healthy_uptime_s: float = Field(default=5.0)
    phrase_time_limit_s: Optional[float] = Field(default=8.0)
    microphone_index: Optional[int] = Field(default=None)


class SpeechConfig(BaseModel):
    """Speech synthesis settings."""

    rate: float = Field(default=0.9)
    pitch: float = Field(default=1.0)
    volume: float = Field(default=1.0)
    preferred_voice_names: list[str] = Field(default=["Google", "Microsoft"])


class CameraSettings(BaseModel):
    """Camera capture settings."""

    device: int = Field(default_factory=lambda: int(os.environ.get("SORA_CAMERA_DEVICE", "0")))
    width: int = Field(default=1920)
    height: int = Field(default=1080)
    jpeg_quality: int = Field(default=80)


class OrchestratorConfig(BaseModel):
    """Activation cycle settings."""

    wake_phrases: list[str] = Field(default=["hey sora", "wake sora"])
    cooldown_s: float = Field(default=1.0)
    ready_delay_s: float = Field(default=2.0)
    announce_activation: bool = Field(default=True)
    play_chimes: bool = Field(default=False)


class Config(BaseModel):
    """Main configuration."""

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    camera: CameraSettings = Field(default_factory=CameraSettings)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file.

        Sections and keys that don't correspond to a config field are ignored.
        Missing sections fall back to their defaults.
        """
        import yaml

        yaml_path = Path(path).expanduser()
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"Config file must contain a mapping: {yaml_path}")

        return cls.model_validate(raw)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration."""
    global _config
    _config = config
