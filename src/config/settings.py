"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database (call-status event log)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/relay.db",
        description="SQLAlchemy connection string.",
    )
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # OpenAI Realtime
    openai_api_key: str | None = Field(default=None)
    openai_realtime_model: str = Field(default="gpt-4o-realtime-preview-2025-06-03")
    openai_realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    openai_voice: str = Field(default="alloy")
    openai_temperature: float = Field(default=0.8, ge=0.6, le=1.2)
    openai_audio_format: Literal["g711_ulaw", "g711_alaw", "pcm16"] = Field(
        default="g711_ulaw",
        description="Must match the telephony media format; audio is relayed without transcoding.",
    )
    openai_turn_detection: Literal["server_vad", "semantic_vad"] = Field(default="server_vad")

    # Agent behaviour
    agent_instructions: str | None = Field(
        default=None,
        description="Overrides prompts/instructions.txt when set.",
    )
    agent_greeting: str | None = Field(
        default=None,
        description="Overrides prompts/greeting.txt when set.",
    )

    # Relay
    realtime_send_session_update: bool = Field(
        default=False,
        description="Send session.update once the realtime session is created instead of relying on negotiation only.",
    )
    realtime_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    bootstrap_timeout_seconds: float | None = Field(
        default=15.0,
        description="How long a call may wait for both sides to become ready. Unset to wait forever.",
    )
    clear_ai_buffer_on_barge_in: bool = Field(default=True)
    drop_stale_deltas: bool = Field(
        default=True,
        description="Drop audio deltas of a response that was interrupted by the caller.",
    )
    strict_sends: bool = Field(
        default=False,
        description="Raise instead of returning False when sending on a closed connection.",
    )
    max_concurrent_calls: int | None = Field(default=None, ge=1)

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +4144...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_outbound_api_key: str | None = Field(
        default=None,
        description="Optional API key required to place outbound calls.",
    )

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @field_validator("bootstrap_timeout_seconds")
    @classmethod
    def non_positive_timeout_disables(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            return None
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
