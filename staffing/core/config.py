"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Event Staffing"
    debug: bool = False
    log_dir: Path = Path.home() / ".logs" / "staffing"

    # Server
    host: str = "0.0.0.0"  # Bind to all interfaces for external access
    port: int = 4000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./staffing.db"
    database_timeout_seconds: float = 10.0

    # Session tokens
    jwt_secret: str = ""  # Auth routes answer 500 until this is set
    session_ttl_days: int = 7

    # Identity providers
    google_client_id_ios: str = ""
    google_client_id_android: str = ""
    google_client_id_web: str = ""
    apple_bundle_id: str = ""
    apple_keys_url: str = "https://appleid.apple.com/auth/keys"
    identity_timeout_seconds: float = 10.0

    # Staff responses
    respond_max_attempts: int = 3
    stats_reconcile_interval_minutes: int = 15

    @property
    def google_audiences(self) -> list[str]:
        """Configured Google OAuth client ids, blanks dropped."""
        return [
            client_id
            for client_id in (
                self.google_client_id_ios,
                self.google_client_id_android,
                self.google_client_id_web,
            )
            if client_id
        ]


settings = Settings()
