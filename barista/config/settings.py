from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Server settings loaded from .env file."""

    # ── Application ──────────────────────────────────────────────
    app_name: str = "Barista Café Admin"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # ── Database ─────────────────────────────────────────────────
    mongodb_uri: Optional[str] = "mongodb://localhost:27017"
    database_name: str = "barista_cafe"

    # ── JWT / Security ───────────────────────────────────────────
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours

    # ── Notifications ────────────────────────────────────────────
    notification_count_timeout_seconds: float = 2.0

    # ── CORS ─────────────────────────────────────────────────────
    cors_allowed_origins: list[str] = [
        "http://localhost:5000",
        "http://localhost:3000",
        "http://127.0.0.1:5000",
    ]
    cors_allow_credentials: bool = True
    cors_allowed_methods: list[str] = ["*"]
    cors_allowed_headers: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env.local", extra="ignore")


class ClientSettings(BaseSettings):
    """Settings for the admin client core (`BARISTA_CLIENT_*` env vars)."""

    base_url: str = "http://localhost:5000"
    request_timeout_seconds: float = 5.0
    ws_path: str = "/ws"
    session_file: str = ".barista/session.json"

    # ── Notification snapshot ────────────────────────────────────
    snapshot_throttle_seconds: float = 1.0
    refresh_debounce_seconds: float = 0.3
    permission_sync_interval_seconds: float = 1.0

    # ── Reconnect policy ─────────────────────────────────────────
    reconnect_base_delay_seconds: float = 1.0
    reconnect_max_delay_seconds: float = 30.0
    reconnect_max_attempts: int = 5

    model_config = SettingsConfigDict(
        env_prefix="BARISTA_CLIENT_", env_file=".env.local", extra="ignore"
    )


# ── Module-level singletons ─────────────────────────────────────
settings = Settings()
client_settings = ClientSettings()
