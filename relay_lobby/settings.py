"""
Broker settings loaded from environment variables.
Uses pydantic-settings so every knob can be set as ``LOBBY_<NAME>``.
"""
from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import AUTH_GRACE_MS, HEARTBEAT_IDLE_MS, MAX_EVENTS, SWEEP_INTERVAL_MS


class Settings(BaseSettings):
    """Runtime configuration with defaults suitable for development."""

    model_config = SettingsConfigDict(
        env_prefix="LOBBY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Liveness
    auth_grace_ms: int = AUTH_GRACE_MS
    heartbeat_idle_ms: int = HEARTBEAT_IDLE_MS
    sweep_interval_ms: int = SWEEP_INTERVAL_MS

    # Event board
    max_events: int = MAX_EVENTS

    # Number of unowned room slots created at startup for dedicated relay hosts
    server_slots: int = 0

    # Ban list persistence (Tortoise ORM connection string)
    db_url: str = "sqlite://lobby.db"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Comma-separated list of allowed origins for the HTTP endpoints
    cors_origins: str = "*"

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


__all__ = ["Settings"]
