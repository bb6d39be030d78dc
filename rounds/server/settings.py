"""Round feed service configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class RoundFeedSettings(BaseSettings):
    model_config = {"env_prefix": "ROUNDS_"}

    feed_url: str = Field(default="ws://localhost:8000/ws", pattern=r"^wss?://")
    history_url: str | None = Field(default=None, pattern=r"^https?://")
    log_dir: str = Field(default="logs/rounds", min_length=1)
    cors_origins: list[str] = ["http://localhost:5173"]

    readiness_timeout_seconds: float = Field(default=8.0, gt=0)
    reconnect_initial_delay_seconds: float = Field(default=0.5, gt=0)
    reconnect_max_delay_seconds: float = Field(default=30.0, gt=0)
    tick_seconds: float = Field(default=1.0, gt=0, le=60)
    history_limit: int = Field(default=20, ge=1, le=500)
    result_grace_seconds: float = Field(default=5.0, ge=0)
    history_timeout_seconds: float = Field(default=5.0, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @model_validator(mode="after")
    def validate_reconnect_delays(self) -> RoundFeedSettings:
        if self.reconnect_max_delay_seconds < self.reconnect_initial_delay_seconds:
            raise ValueError("reconnect_max_delay_seconds must be >= reconnect_initial_delay_seconds")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
