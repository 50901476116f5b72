"""Runtime configuration for Dragon Radar."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="DRAGON_RADAR_", env_file=".env", extra="ignore")

    app_name: str = "dragon-radar"
    log_level: str = "INFO"
    oracle_endpoint: str | None = Field(
        default=None,
        description="HTTP endpoint of the location oracle; fallback generation only when unset.",
    )
    oracle_api_key: str | None = None
    oracle_timeout_seconds: float = 20.0
    global_range_threshold_km: float = 10_000.0
    state_path: str = Field(
        default="~/.dragon_radar/state.json",
        description="JSON file holding the persisted session snapshot.",
    )
    default_range_km: float = 10.0


settings = Settings()
