"""Storage backend protocol definition."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol


class StorageKind(str, Enum):
    """Which medium holds the bytes of a document."""

    CLOUD = "cloud"
    LOCAL = "local"


@dataclass(slots=True)
class StoredObject:
    """Metadata for one stored document, independent of the backend."""

    key: str
    size: int
    content_type: str
    url: str
    backend: StorageKind
    last_modified: datetime | None = None
    original_name: str | None = None

    @property
    def file_name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


class StorageBackend(Protocol):
    """Protocol defining the storage interface for case documents.

    This protocol ensures all storage backends implement the same interface,
    making them interchangeable behind the gateway.
    """

    kind: StorageKind

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        original_name: str | None = None,
    ) -> str:
        """Store ``data`` under ``key`` and return its URL."""
        ...

    def exists(self, key: str) -> bool:
        """Return whether an object is stored under ``key``."""
        ...

    def get_metadata(self, key: str) -> StoredObject:
        """Return metadata for ``key``; raise NotFoundError if absent."""
        ...

    def delete(self, key: str) -> bool:
        """Remove ``key``. Return False if it was already gone."""
        ...

    def list_by_prefix(self, prefix: str = "") -> Iterator[StoredObject]:
        """Lazily enumerate objects whose key starts with ``prefix``."""
        ...

    def ping(self) -> None:
        """Raise if the backend is not reachable."""
        ...

    def presign(self, key: str, expires_in: int) -> str:
        """Return a URL a browser can use to fetch ``key``."""
        ...
