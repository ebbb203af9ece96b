"""Service exports for the case document gateway."""

from .errors import (
    BackendFatalError,
    BackendTransientError,
    ConfigurationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .gateway import DocumentGateway, with_fallback
from .storage import LocalFileStorage, S3FileStorage, StorageBackend, StorageKind

__all__ = [
    "DocumentGateway",
    "with_fallback",
    "LocalFileStorage",
    "S3FileStorage",
    "StorageBackend",
    "StorageKind",
    "StorageError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "BackendTransientError",
    "BackendFatalError",
]
