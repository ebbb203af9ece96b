"""Application configuration using environment variables."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

MEBIBYTE = 1024 * 1024


class CloudMode(str, Enum):
    """How the cloud backend obtains its credentials."""

    CONNECTION_CREDENTIAL = "connection-credential"
    AMBIENT_IDENTITY = "ambient-identity"
    LOCAL_ONLY = "local-only"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Look for .env in backend/ directory (parent of api/)
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Cloud storage identity
    storage_account: str = ""
    storage_connection_string: str = ""
    storage_container: str = "client-docs"

    # S3 client options
    aws_profile: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str = ""
    cloud_timeout_seconds: float = 10.0
    cloud_max_attempts: int = 2

    # Local fallback
    enable_local_fallback: bool = True
    local_upload_dir: str = "uploads"
    serve_local_uploads: bool = True

    # HTTP surface
    max_upload_bytes: int = 15 * MEBIBYTE
    api_prefix: str = "/api"
    log_level: str = "INFO"

    @property
    def cloud_mode(self) -> CloudMode:
        """Classify the configured credentials.

        An explicit connection string wins over an account identifier; with
        neither, the gateway runs on local storage only.
        """
        if self.storage_connection_string.strip():
            return CloudMode.CONNECTION_CREDENTIAL
        if self.storage_account.strip():
            return CloudMode.AMBIENT_IDENTITY
        return CloudMode.LOCAL_ONLY


# Global settings instance
settings = Settings()
