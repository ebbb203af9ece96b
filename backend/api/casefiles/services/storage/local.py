"""Local file storage used when the cloud backend is missing or failing.

Documents live flat under a single managed directory, one file per document.
The content type and original name captured at upload are kept in a JSON
sidecar under ``.meta/`` so they are not re-derived on read.
"""

from __future__ import annotations

import contextlib
import errno
import json
import logging
import mimetypes
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from ..errors import BackendTransientError, NotFoundError
from .protocol import StorageKind, StoredObject

logger = logging.getLogger(__name__)

DEFAULT_URL_PREFIX = "/uploads"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
META_DIR_NAME = ".meta"


@dataclass(slots=True)
class StoragePaths:
    """Resolved directories for documents and their metadata sidecars."""

    base_dir: Path
    meta: Path = field(init=False)

    def __post_init__(self) -> None:
        self.meta = self.base_dir / META_DIR_NAME

    def ensure_exists(self) -> None:
        """Create required directories if they don't exist."""
        for path in (self.base_dir, self.meta):
            path.mkdir(parents=True, exist_ok=True)


class LocalFileStorage:
    """Flat on-disk storage; client scoping is not supported."""

    kind = StorageKind.LOCAL

    def __init__(self, base_dir: Path | str, url_prefix: str = DEFAULT_URL_PREFIX):
        self.paths = StoragePaths(Path(base_dir))
        self.url_prefix = url_prefix.rstrip("/")

    @property
    def base_dir(self) -> Path:
        return self.paths.base_dir

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        original_name: str | None = None,
    ) -> str:
        """Write the document and its metadata sidecar; return its static URL."""
        if not self._is_local_name(key):
            raise ValueError(f"Invalid local file name: {key!r}")

        # The sidecar lands first and the data file is renamed into place last,
        # so a listed file always has its metadata and is never half written.
        target = self.base_dir / key
        staged = self.base_dir / f".{key}.tmp"
        meta_path = self._meta_path(key)
        sidecar = {"content_type": content_type, "original_name": original_name}
        try:
            self.paths.ensure_exists()
            meta_path.write_text(json.dumps(sidecar), encoding="utf-8")
            staged.write_bytes(data)
            os.replace(staged, target)
        except OSError as exc:
            for leftover in (staged, meta_path):
                with contextlib.suppress(OSError):
                    leftover.unlink()
            raise self._translate(exc, "write") from exc

        logger.info("Stored %s locally (%d bytes)", key, len(data))
        return self.url_for(key)

    def exists(self, key: str) -> bool:
        if not self._is_local_name(key):
            return False
        return (self.base_dir / key).is_file()

    def get_metadata(self, key: str) -> StoredObject:
        """Return metadata for a stored file, using mtime as the upload time."""
        if not self.exists(key):
            raise NotFoundError("File not found in local storage")
        try:
            return self._describe(self.base_dir / key)
        except OSError as exc:
            raise self._translate(exc, "stat") from exc

    def delete(self, key: str) -> bool:
        """Remove a file. Missing files are reported as already gone."""
        if not self._is_local_name(key):
            return False
        try:
            (self.base_dir / key).unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise self._translate(exc, "delete") from exc
        self._meta_path(key).unlink(missing_ok=True)
        logger.info("Deleted %s from local storage", key)
        return True

    def list_by_prefix(self, prefix: str = "") -> Iterator[StoredObject]:
        """Yield stored files whose flat name starts with ``prefix``.

        Local storage has no hierarchy, so a ``{clientId}/`` prefix matches
        nothing; an empty prefix enumerates every file.
        """
        if not self.base_dir.is_dir():
            return
        try:
            entries = sorted(self.base_dir.iterdir())
        except OSError as exc:
            raise self._translate(exc, "list") from exc
        for path in entries:
            if not path.is_file() or not self._is_local_name(path.name):
                continue
            if path.name.startswith(prefix):
                yield self._describe(path)

    def ping(self) -> None:
        """Ensure the upload directory exists and is writable."""
        try:
            self.paths.ensure_exists()
        except OSError as exc:
            raise self._translate(exc, "mkdir") from exc
        if not os.access(self.base_dir, os.W_OK):
            raise BackendTransientError(
                f"Local upload directory {self.base_dir} is not writable",
                code="EACCES",
                backend=self.kind.value,
            )

    def presign(self, key: str, expires_in: int) -> str:
        """Local files are served statically; the URL never expires."""
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"

    def path_for(self, key: str) -> Path:
        """Resolve a stored document on disk for static serving."""
        if not self.exists(key):
            raise NotFoundError("File not found in local storage")
        return self.base_dir / key

    # Internal helpers -----------------------------------------------------

    def _describe(self, path: Path) -> StoredObject:
        stat = path.stat()
        content_type, original_name = self._read_sidecar(path.name)
        return StoredObject(
            key=path.name,
            size=stat.st_size,
            content_type=content_type,
            url=self.url_for(path.name),
            backend=self.kind,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            original_name=original_name,
        )

    def _read_sidecar(self, name: str) -> tuple[str, str | None]:
        meta_path = self._meta_path(name)
        try:
            sidecar = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            guessed, _ = mimetypes.guess_type(name)
            return guessed or DEFAULT_CONTENT_TYPE, None
        return sidecar.get("content_type") or DEFAULT_CONTENT_TYPE, sidecar.get("original_name")

    def _meta_path(self, name: str) -> Path:
        return self.paths.meta / f"{name}.json"

    @staticmethod
    def _is_local_name(key: str) -> bool:
        """Local keys are bare file names: no separators, no dot-files."""
        if not key or key.startswith("."):
            return False
        return "/" not in key and "\\" not in key

    def _translate(self, exc: OSError, action: str) -> BackendTransientError:
        code = errno.errorcode.get(exc.errno or 0, type(exc).__name__)
        return BackendTransientError(
            f"Local storage {action} failed: {exc}", code=code, backend=self.kind.value
        )
