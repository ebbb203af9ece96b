"""Storage backends for case documents."""

from .factory import build_cloud_storage, build_local_storage
from .local import LocalFileStorage
from .protocol import StorageBackend, StorageKind, StoredObject
from .s3 import S3Credentials, S3FileStorage, parse_connection_string

__all__ = [
    "StorageBackend",
    "StorageKind",
    "StoredObject",
    "LocalFileStorage",
    "S3FileStorage",
    "S3Credentials",
    "parse_connection_string",
    "build_cloud_storage",
    "build_local_storage",
]
