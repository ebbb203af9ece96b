"""Document gateway: cloud-first storage operations with local fallback."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .errors import (
    BackendFatalError,
    BackendTransientError,
    ConfigurationError,
    NotFoundError,
    ValidationError,
)
from .naming import build_key, build_local_name, doc_type_from_key, sanitize_segment
from .storage import StorageBackend, StorageKind, StoredObject
from .storage.factory import build_cloud_storage, build_local_storage

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    }
)
MAX_UPLOAD_BYTES = 15 * 1024 * 1024
DEFAULT_URL_EXPIRY_SECONDS = 3600
MAX_URL_EXPIRY_SECONDS = 7 * 24 * 3600

NOT_FOUND_MESSAGE = "File not found in any storage"
LOCAL_FALLBACK_NOTE = "Cloud upload failed, using local storage (dev only)"
LOCAL_LISTING_NOTE = "Local storage is flat; listing by client is not supported"


@dataclass(slots=True)
class Outcome(Generic[T]):
    """Result of an operation together with the backend that produced it."""

    value: T
    backend: StorageKind


def with_fallback(
    operation: Callable[[StorageBackend], T],
    primary: StorageBackend | None,
    secondary: StorageBackend,
    enabled: bool,
) -> Outcome[T]:
    """Run ``operation`` on the primary backend, then on the secondary if allowed.

    The secondary backend is tried when the primary is missing, raised
    BackendTransientError, or reported the key as not found. With fallback
    disabled, primary errors propagate unchanged and the secondary is never
    touched.
    """
    if primary is None:
        if not enabled:
            raise ConfigurationError("No storage backend configured")
        try:
            return Outcome(operation(secondary), secondary.kind)
        except NotFoundError as exc:
            raise NotFoundError(NOT_FOUND_MESSAGE) from exc
        except BackendTransientError as exc:
            raise BackendFatalError("Local storage failed", None, exc.message) from exc

    try:
        return Outcome(operation(primary), primary.kind)
    except NotFoundError as exc:
        if not enabled:
            raise NotFoundError(NOT_FOUND_MESSAGE) from exc
        primary_error = None
    except BackendTransientError as exc:
        if not enabled:
            raise
        logger.warning(
            "Cloud storage failed (%s), falling back to local storage: %s",
            exc.code or "unknown",
            exc.message,
        )
        primary_error = exc

    try:
        return Outcome(operation(secondary), secondary.kind)
    except NotFoundError as exc:
        raise NotFoundError(NOT_FOUND_MESSAGE) from exc
    except BackendTransientError as exc:
        raise BackendFatalError(
            "Both cloud and local storage failed",
            primary_error.message if primary_error else None,
            exc.message,
        ) from exc


class DocumentGateway:
    """Owns the storage backends and applies the cloud-first policy."""

    def __init__(
        self,
        cloud: StorageBackend | None,
        local: StorageBackend,
        fallback_enabled: bool = True,
        mode: str = "local-only",
        container: str = "",
        account: str = "",
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self.cloud = cloud
        self.local = local
        self.fallback_enabled = fallback_enabled
        self.mode = mode
        self.container = container
        self.account = account
        self.max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(cls, settings: Settings) -> DocumentGateway:
        cloud, mode = build_cloud_storage(settings)
        return cls(
            cloud=cloud,
            local=build_local_storage(settings),
            fallback_enabled=settings.enable_local_fallback,
            mode=mode.value,
            container=settings.storage_container,
            account=settings.storage_account,
            max_upload_bytes=settings.max_upload_bytes,
        )

    @property
    def cloud_enabled(self) -> bool:
        return self.cloud is not None

    def _run(self, operation: Callable[[StorageBackend], T]) -> Outcome[T]:
        return with_fallback(operation, self.cloud, self.local, self.fallback_enabled)

    # Upload ---------------------------------------------------------------

    def validate_upload(
        self,
        file_name: str | None,
        data: bytes | None,
        content_type: str | None,
        client_id: str | None,
        doc_type: str | None,
    ) -> None:
        """Reject malformed uploads before any backend is contacted."""
        if data is None or not file_name:
            raise ValidationError("No file uploaded", field="file")
        if not (client_id or "").strip() or not (doc_type or "").strip():
            field = "clientID" if not (client_id or "").strip() else "docType"
            raise ValidationError("clientID and docType are required", field=field)
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(f"File type not allowed: {content_type}", field="file")
        if len(data) > self.max_upload_bytes:
            raise ValidationError(
                f"File exceeds the {self.max_upload_bytes // (1024 * 1024)} MB limit",
                field="file",
            )

    def upload(
        self,
        file_name: str | None,
        data: bytes | None,
        content_type: str | None,
        client_id: str | None,
        doc_type: str | None,
    ) -> dict[str, Any]:
        """Store a new document and describe where it went."""
        self.validate_upload(file_name, data, content_type, client_id, doc_type)

        def store(backend: StorageBackend) -> tuple[str, str]:
            if backend.kind is StorageKind.CLOUD:
                key = build_key(client_id, doc_type, file_name)
            else:
                key = build_local_name(file_name)
            return key, backend.put(key, data, content_type, original_name=file_name)

        outcome = self._run(store)
        key, url = outcome.value
        response: dict[str, Any] = {
            "success": True,
            "storage": outcome.backend.value,
            "fileName": key.rsplit("/", 1)[-1],
            "originalName": file_name,
            "url": url,
            "size": len(data),
            "mimeType": content_type,
        }
        if outcome.backend is StorageKind.CLOUD:
            response["blobName"] = key
        elif self.cloud_enabled:
            response["note"] = LOCAL_FALLBACK_NOTE
        return response

    # Retrieve / delete ----------------------------------------------------

    def retrieve(self, key: str) -> dict[str, Any]:
        """Return metadata for ``key`` from whichever backend holds it."""
        self._require_key(key)
        outcome = self._run(lambda backend: backend.get_metadata(key))
        stored = outcome.value
        return {
            "blobName": stored.key,
            "fileName": stored.file_name,
            "url": stored.url,
            "size": stored.size,
            "mimeType": stored.content_type,
            "lastModified": _isoformat(stored.last_modified),
            "storage": outcome.backend.value,
        }

    def delete(self, key: str) -> dict[str, Any]:
        """Delete ``key`` from whichever backend holds it."""
        self._require_key(key)

        def remove(backend: StorageBackend) -> bool:
            if not backend.delete(key):
                raise NotFoundError(f"File not found in {backend.kind.value} storage")
            return True

        outcome = self._run(remove)
        return {
            "success": True,
            "message": "File deleted successfully",
            "blobName": key,
            "storage": outcome.backend.value,
        }

    def download_url(
        self, key: str, expires_in: int = DEFAULT_URL_EXPIRY_SECONDS
    ) -> dict[str, Any]:
        """Return a time-limited URL for a private cloud object.

        Local files are served statically, so their URL has no expiry.
        """
        self._require_key(key)
        if not 1 <= expires_in <= MAX_URL_EXPIRY_SECONDS:
            raise ValidationError(
                f"Expiry must be between 1 second and {MAX_URL_EXPIRY_SECONDS} seconds",
                field="expiryHours",
            )

        def sign(backend: StorageBackend) -> str:
            if not backend.exists(key):
                raise NotFoundError(f"File not found in {backend.kind.value} storage")
            return backend.presign(key, expires_in)

        issued = datetime.now(timezone.utc)
        outcome = self._run(sign)
        expires_on = None
        if outcome.backend is StorageKind.CLOUD:
            expires_on = _isoformat(issued + timedelta(seconds=expires_in))
        return {
            "blobName": key,
            "url": outcome.value,
            "expiresOn": expires_on,
            "storage": outcome.backend.value,
        }

    # Listing --------------------------------------------------------------

    def list_all(self) -> dict[str, Any]:
        """Enumerate every document on the authoritative backend."""
        outcome = self._run(
            lambda backend: [self._file_record(item) for item in backend.list_by_prefix("")]
        )
        files = outcome.value
        response: dict[str, Any] = {
            "files": files,
            "total": len(files),
            "storage": outcome.backend.value,
        }
        if outcome.backend is StorageKind.LOCAL:
            response["note"] = LOCAL_LISTING_NOTE
        return response

    def list_client(self, client_id: str) -> Outcome[list[dict[str, Any]]]:
        """List one client's documents; always empty when only local storage is usable."""
        prefix = f"{sanitize_segment(client_id)}/"

        def scoped(backend: StorageBackend) -> list[dict[str, Any]]:
            if backend.kind is StorageKind.LOCAL:
                logger.info("Client listing for %s skipped: %s", prefix, LOCAL_LISTING_NOTE)
                return []
            return [self._client_record(item) for item in backend.list_by_prefix(prefix)]

        return self._run(scoped)

    # Health ---------------------------------------------------------------

    def health(self) -> dict[str, Any]:
        """Check the active backend and report the resolved configuration.

        Raises the backend's error when the check fails.
        """
        if self.cloud is not None:
            self.cloud.ping()
        else:
            if not self.fallback_enabled:
                raise ConfigurationError("No storage backend configured")
            self.local.ping()
        return {
            "status": "ok",
            "azureBlobEnabled": self.cloud_enabled,
            "cloudStorageEnabled": self.cloud_enabled,
            "mode": self.mode,
            "container": self.container,
            "account": self.account,
            "fallbackEnabled": self.fallback_enabled,
            "timestamp": _isoformat(datetime.now(timezone.utc)),
        }

    # Internal helpers -----------------------------------------------------

    @staticmethod
    def _require_key(key: str) -> None:
        if not key or not key.strip():
            raise ValidationError("blobName required (query or param)", field="blobName")

    @staticmethod
    def _file_record(item: StoredObject) -> dict[str, Any]:
        return {
            "blobName": item.key,
            "fileName": item.file_name,
            "url": item.url,
            "size": item.size,
            "lastModified": _isoformat(item.last_modified),
            "mimeType": item.content_type,
            "storage": item.backend.value,
        }

    @staticmethod
    def _client_record(item: StoredObject) -> dict[str, Any]:
        return {
            "id": item.key,
            "blobName": item.key,
            "fileName": item.file_name,
            "blobUrl": item.url,
            "docType": doc_type_from_key(item.key),
            "uploadDate": _isoformat(item.last_modified),
            "fileSize": item.size,
            "contentType": item.content_type,
        }


def _isoformat(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    return moment.isoformat().replace("+00:00", "Z")
