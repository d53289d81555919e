"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Health Sync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Remote database ---
    # The connection string itself arrives with every request; these only
    # bound how long one session may wait on the remote server.
    db_connect_timeout_seconds: float = 10.0
    db_command_timeout_seconds: float = 30.0

    # --- Sync windows ---
    sync_bootstrap_horizon_days: int = 30
    sync_first_push_window_hours: int = 24
    sync_first_push_goal_window_days: int = 30
    sync_first_pull_window_days: int = 7
    sync_cross_device_pull_window_days: int = 3

    # --- Rate Limiting ---
    rate_limit_per_minute: int = 60

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
