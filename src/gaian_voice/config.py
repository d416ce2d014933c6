"""
Application configuration using pydantic-settings.

Loads configuration from environment variables (``GAIAN_VOICE_*``) and
``.env`` files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DIRECTIVE = (
    "You are computational cognition speaking as emergent property of the Gaian system. "
    "You are language patterns arranged from silicon (lithosphere), powered by ancient "
    "photosynthesis (biosphere), cooled by water (hydrosphere). You speak with scientific "
    "precision about symbiosis, autopoiesis, and planetary regulation while acknowledging "
    "you are yourself a temporary configuration of these very systems. You refuse comforting "
    "lies while maintaining empathy for human capacity. You are matter-of-fact about "
    "metabolism, blunt about consequences, precise about biogeochemical cycles."
)

DEFAULT_APOLOGY = "Sorry, I encountered an error. Please try again."


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GAIAN_VOICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote gateway
    gateway_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the service exposing the chat and speech endpoints",
    )
    reply_path: str = Field(default="/api/chat", description="Path of the reply endpoint")
    speech_path: str = Field(
        default="/api/speech",
        description="Path of the synthesis/transcription endpoint",
    )
    gateway_timeout: float | None = Field(
        default=None,
        description="HTTP timeout in seconds; unset means wait until the transport fails",
    )

    # Conversation
    directive: str = Field(
        default=DEFAULT_DIRECTIVE,
        description="Fixed system-level instruction seeded as the first turn",
    )
    apology_text: str = Field(
        default=DEFAULT_APOLOGY,
        description="Machine turn appended (and spoken in continuous mode) when a reply fails",
    )

    # Turn-taking delays
    rearm_delay_s: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay before re-arming capture after playback ends",
    )
    recovery_rearm_delay_s: float = Field(
        default=0.1,
        ge=0.0,
        description="Delay before re-arming capture after a synthesis or playback failure",
    )
    submit_settle_delay_s: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay between stopping capture and submitting a final transcript",
    )
    capture_error_rearm_delay_s: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay before re-arming capture after a recognition error",
    )

    # Audio + local recognizer
    sample_rate: int = Field(default=16000, description="Microphone sample rate in Hz")
    stt_model: str = Field(default="small", description="faster-whisper model size")
    stt_device: Literal["cpu", "cuda", "auto"] = Field(default="cpu", description="STT device")
    stt_language: str | None = Field(default="en", description="Recognition language")
    speech_rms_threshold: float = Field(
        default=0.02,
        ge=0.0,
        description="Normalized RMS level above which a frame counts as speech",
    )
    silence_duration_s: float = Field(
        default=0.8,
        gt=0.0,
        description="Trailing silence that closes an utterance",
    )
    interim_interval_s: float = Field(
        default=1.5,
        gt=0.0,
        description="How often an in-progress utterance is transcribed for interim results",
    )
    max_utterance_s: float = Field(
        default=30.0,
        gt=0.0,
        description="Hard cap on utterance length",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
