"""Logical key construction for stored case documents."""

from __future__ import annotations

import re
import threading
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath

UNSAFE_PATTERN = re.compile(r"[^\w\- ]+", re.ASCII)
WHITESPACE_PATTERN = re.compile(r"\s+")
EXTENSION_PATTERN = re.compile(r"[^A-Za-z0-9_-]+")

DEFAULT_CLIENT_ID = "unknown"
DEFAULT_DOC_TYPE = "General"
DEFAULT_FILE_STEM = "file"
UNKNOWN_DOC_TYPE = "Unknown"

_clock_lock = threading.Lock()
_last_issued: datetime | None = None


def sanitize_segment(value: object) -> str:
    """Reduce a value to characters that are safe in a path or object name.

    Anything outside ``[A-Za-z0-9_-]`` becomes ``_``; whitespace runs collapse
    to a single ``_``.
    """
    text = UNSAFE_PATTERN.sub("_", str(value or "")).strip()
    return WHITESPACE_PATTERN.sub("_", text)


def split_name(original_name: str | None) -> tuple[str, str]:
    """Return ``(sanitized_stem, sanitized_extension)`` for an upload name."""
    name = PurePosixPath((original_name or "").replace("\\", "/")).name
    path = PurePosixPath(name)
    stem = path.stem if path.suffix else name
    suffix = path.suffix
    safe_stem = sanitize_segment(stem) or DEFAULT_FILE_STEM
    safe_ext = EXTENSION_PATTERN.sub("_", suffix[1:]) if suffix else ""
    return safe_stem, f".{safe_ext}" if safe_ext else ""


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC instant with ``:`` and ``.`` replaced so it is key-safe."""
    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z").replace(":", "-").replace(".", "-")


def build_key(
    client_id: str | None,
    doc_type: str | None,
    original_name: str | None,
    now: datetime | None = None,
) -> str:
    """Build ``{clientId}/{docType}/{timestamp}-{name}{ext}`` for a cloud object."""
    safe_client = sanitize_segment(client_id or DEFAULT_CLIENT_ID) or DEFAULT_CLIENT_ID
    safe_doc = sanitize_segment(doc_type or DEFAULT_DOC_TYPE) or DEFAULT_DOC_TYPE
    stem, ext = split_name(original_name)
    stamp = format_timestamp(now or _next_instant())
    return f"{safe_client}/{safe_doc}/{stamp}-{stem}{ext}"


def build_local_name(original_name: str | None, now: datetime | None = None) -> str:
    """Build the flat ``{epochMillis}-{name}{ext}`` name used on local disk."""
    moment = now or _next_instant()
    millis = round(moment.timestamp() * 1000)
    stem, ext = split_name(original_name)
    return f"{millis}-{stem}{ext}"


def doc_type_from_key(key: str) -> str:
    """Infer the document category from a ``client/docType/...`` key."""
    parts = key.split("/")
    if len(parts) >= 3 and parts[1]:
        return parts[1]
    return UNKNOWN_DOC_TYPE


def _next_instant() -> datetime:
    # Millisecond resolution; never hand out the same instant twice.
    global _last_issued
    with _clock_lock:
        now = datetime.now(timezone.utc)
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        if _last_issued is not None and now <= _last_issued:
            now = _last_issued + timedelta(milliseconds=1)
        _last_issued = now
        return now
