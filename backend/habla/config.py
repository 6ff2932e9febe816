import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_LEGACY_STATE_PATH = Path(__file__).resolve().parent / "data" / "progress_state.json"


class Settings(BaseSettings):
    database_url: Optional[str] = Field("sqlite:///habla_progress.db", alias="HABLA_DATABASE_URL")
    database_pool_size: int = Field(10, alias="HABLA_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="HABLA_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="HABLA_DATABASE_ECHO")
    persistence_mode: Literal["database", "legacy"] = Field(
        "database",
        alias="HABLA_PERSISTENCE_MODE",
    )
    legacy_state_path: Path = Field(DEFAULT_LEGACY_STATE_PATH, alias="HABLA_LEGACY_STATE_PATH")
    learner_namespace: str = Field("default", alias="HABLA_LEARNER_NAMESPACE", min_length=1)
    level_policy: Literal["single_step", "converge"] = Field("single_step", alias="HABLA_LEVEL_POLICY")
    scoring_delay_min: float = Field(2.5, alias="HABLA_SCORING_DELAY_MIN", ge=0.0)
    scoring_delay_max: float = Field(3.5, alias="HABLA_SCORING_DELAY_MAX", ge=0.0)
    notifications_enabled: bool = Field(False, alias="HABLA_NOTIFICATIONS_ENABLED")
    default_daily_goal: int = Field(15, alias="HABLA_DEFAULT_DAILY_GOAL", gt=0)
    timezone: str = Field("UTC", alias="HABLA_TIMEZONE")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
    if settings.scoring_delay_max < settings.scoring_delay_min:
        raise RuntimeError(
            "Invalid backend configuration: HABLA_SCORING_DELAY_MAX must not be below HABLA_SCORING_DELAY_MIN"
        )
    return settings
