"""Client configuration via environment variables."""

import random
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def _default_player_name() -> str:
    return f"Player_{random.randint(0, 9999)}"  # noqa: S311


class ClientSettings(BaseSettings):
    model_config = {"env_prefix": "MULTIPLAYER_"}

    server_url: str = Field(default="http://localhost:3001", min_length=1)
    player_name: str = Field(default_factory=_default_player_name, min_length=1, max_length=50)
    log_dir: str | None = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_delay_seconds: float = Field(default=1.0, ge=0)
    directory_timeout_seconds: float = Field(default=5.0, gt=0)

    # Guard grace periods: how long a create/join (or any other guarded
    # operation) may stay in flight before the flag is released for retry.
    room_operation_grace_seconds: float = Field(default=15.0, gt=0)
    operation_grace_seconds: float = Field(default=5.0, gt=0)

    battle_log_limit: int = Field(default=20, ge=1)
    chat_history_limit: int = Field(default=50, ge=1)

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        stripped = v.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError("server_url must be an http(s) URL")
        return stripped

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @field_validator("log_format", mode="before")
    @classmethod
    def lower_log_format(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v
