"""Storage backend factory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError

from .local import LocalFileStorage
from .s3 import S3FileStorage, parse_connection_string

if TYPE_CHECKING:
    from ...config import CloudMode, Settings

logger = logging.getLogger(__name__)


def build_cloud_storage(settings: Settings) -> tuple[S3FileStorage | None, CloudMode]:
    """Create the cloud backend the configuration asks for.

    Returns the backend (or ``None``) and the resolved mode. Construction
    problems such as a malformed connection string or an unknown profile are
    logged and degrade the mode to local-only instead of raising.
    """
    from ...config import CloudMode

    mode = settings.cloud_mode
    if mode == CloudMode.LOCAL_ONLY:
        logger.info("No cloud storage configured; using local storage only")
        return None, mode

    try:
        credentials = None
        if mode == CloudMode.CONNECTION_CREDENTIAL:
            credentials = parse_connection_string(settings.storage_connection_string)

        storage = S3FileStorage(
            bucket_name=settings.storage_container,
            region=settings.s3_region,
            aws_profile=settings.aws_profile,
            credentials=credentials,
            endpoint_url=settings.s3_endpoint_url,
            timeout=settings.cloud_timeout_seconds,
            max_attempts=settings.cloud_max_attempts,
        )
    except (ValueError, BotoCoreError) as exc:
        logger.warning(
            "Cloud storage initialisation failed in %s mode, degrading to local-only: %s",
            mode.value,
            exc,
        )
        return None, CloudMode.LOCAL_ONLY

    logger.info(
        "Cloud storage ready in %s mode (bucket %s)", mode.value, settings.storage_container
    )
    return storage, mode


def build_local_storage(settings: Settings) -> LocalFileStorage:
    """Create the local fallback backend; the directory is made on first write."""
    return LocalFileStorage(Path(settings.local_upload_dir).resolve())
