"""Error taxonomy shared by the storage backends, the gateway and the API."""

from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """Base exception for gateway failures.

    Every subclass maps to one HTTP status; the API turns any of them into a
    ``{"success": false, "message": ..., "detail": ...}`` body.
    """

    status_code = 500

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class ConfigurationError(StorageError):
    """No storage backend is usable."""

    status_code = 503


class ValidationError(StorageError):
    """The upload request is malformed, too large, or of a forbidden type."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, detail={"field": field} if field else None)
        self.field = field


class NotFoundError(StorageError):
    """The key is absent from every backend that was consulted."""

    status_code = 404


class BackendTransientError(StorageError):
    """A backend call failed (network, auth, 5xx, missing bucket)."""

    status_code = 502

    def __init__(self, message: str, code: str = "", backend: str = "cloud") -> None:
        super().__init__(message, detail={"code": code, "backend": backend} if code else None)
        self.code = code
        self.backend = backend


class BackendFatalError(StorageError):
    """Both backends failed; carries the failure of each."""

    status_code = 500

    def __init__(self, message: str, cloud_error: str | None, local_error: str) -> None:
        super().__init__(message, detail={"cloud": cloud_error, "local": local_error})
