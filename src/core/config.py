"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Rehearse client settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    Attributes:
        api_base_url: Base URL of the interview REST backend.
        token_store_path: JSON file holding the persisted auth token and user.
        max_recording_duration: Default answer length ceiling in seconds.
        upload_url_expiry_margin: Seconds shaved off a ticket's lifetime so
            an upload never starts on a URL about to expire.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Backend ---
    api_base_url: str = "http://localhost:8080"
    request_timeout: float = 30.0
    resume_upload_timeout: float = 60.0
    legacy_upload_timeout: float = 120.0  # multipart proxy through the backend

    # --- Credentials ---
    # Persistent client-side storage for the bearer token
    token_store_path: str = "data/auth.json"
    token_key: str = "auth_token"
    user_key: str = "auth_user"
    login_route: str = "/login"

    # --- Video capture ---
    video_width: int = 1280  # ideal, not exact
    video_height: int = 720
    facing_mode: str = "user"  # front camera
    video_bits_per_second: int = 2_500_000
    chunk_interval_ms: int = 1000  # encoder timeslice
    max_recording_duration: int = 180  # seconds
    max_video_size_mb: int = 50

    # --- Upload ---
    upload_url_expiry_margin: float = 5.0
    upload_max_attempts: int = 3  # transport retries per ticket
    upload_ticket_attempts: int = 2  # fresh tickets after expiry

    # --- Interview polling ---
    interview_poll_interval: float = 3.0
    interview_poll_timeout: float = 900.0  # backend falls back to text-only after 15 min

    # --- Application ---
    log_level: str = "INFO"  # Python logging level

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()


def configure_logging() -> None:
    """Configure root logging from ``settings.log_level``."""
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
