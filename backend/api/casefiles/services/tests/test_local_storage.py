"""Tests for LocalFileStorage."""

from unittest.mock import patch

import pytest

from casefiles.services.errors import BackendTransientError, NotFoundError
from casefiles.services.storage import LocalFileStorage, StorageKind


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "uploads")


def test_directory_is_created_on_first_write(storage):
    assert not storage.base_dir.exists()

    url = storage.put("1700000000000-report.pdf", b"%PDF-1.7", "application/pdf", "report.pdf")

    assert storage.base_dir.is_dir()
    assert url == "/uploads/1700000000000-report.pdf"
    assert (storage.base_dir / "1700000000000-report.pdf").read_bytes() == b"%PDF-1.7"


def test_metadata_round_trip_keeps_upload_properties(storage):
    data = b"x" * 2048
    storage.put("1700000000000-scan.png", data, "image/png", "scan (1).png")

    stored = storage.get_metadata("1700000000000-scan.png")

    assert stored.size == len(data)
    assert stored.content_type == "image/png"
    assert stored.original_name == "scan (1).png"
    assert stored.backend is StorageKind.LOCAL
    assert stored.last_modified is not None


def test_missing_file_is_not_found(storage):
    assert storage.exists("nope.pdf") is False
    with pytest.raises(NotFoundError):
        storage.get_metadata("nope.pdf")


@pytest.mark.parametrize("key", ["123/General/a.pdf", "../etc/passwd", ".meta", ""])
def test_hierarchical_or_hidden_keys_are_never_local_files(storage, key):
    assert storage.exists(key) is False
    assert storage.delete(key) is False


def test_put_rejects_path_like_names(storage):
    with pytest.raises(ValueError):
        storage.put("../escape.pdf", b"x", "application/pdf")


def test_delete_is_idempotent(storage):
    storage.put("1-a.txt", b"hello", "text/plain")

    assert storage.delete("1-a.txt") is True
    assert storage.delete("1-a.txt") is False
    assert storage.delete("1-a.txt") is False


def test_listing_is_flat_and_skips_sidecars(storage):
    storage.put("1-a.txt", b"a", "text/plain")
    storage.put("2-b.pdf", b"bb", "application/pdf")

    names = [item.key for item in storage.list_by_prefix("")]

    assert names == ["1-a.txt", "2-b.pdf"]


def test_client_prefix_matches_nothing_locally(storage):
    storage.put("1-a.txt", b"a", "text/plain")

    assert list(storage.list_by_prefix("123/")) == []


def test_listing_before_first_write_is_empty(storage):
    assert list(storage.list_by_prefix("")) == []


def test_content_type_is_guessed_without_sidecar(storage):
    storage.base_dir.mkdir(parents=True)
    (storage.base_dir / "legacy.pdf").write_bytes(b"%PDF")

    assert storage.get_metadata("legacy.pdf").content_type == "application/pdf"


def test_ping_creates_directory(storage):
    storage.ping()

    assert storage.base_dir.is_dir()


def test_write_failure_is_reported_as_backend_error(tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory")
    storage = LocalFileStorage(blocker)

    with pytest.raises(BackendTransientError) as excinfo:
        storage.put("1-a.txt", b"a", "text/plain")

    assert excinfo.value.backend == "local"


def test_interrupted_write_leaves_nothing_behind(storage):
    with patch(
        "casefiles.services.storage.local.os.replace",
        side_effect=OSError(28, "No space left on device"),
    ):
        with pytest.raises(BackendTransientError):
            storage.put("1-a.txt", b"a", "text/plain")

    assert list(storage.list_by_prefix("")) == []
    assert not storage.exists("1-a.txt")
    assert [p.name for p in storage.base_dir.iterdir()] == [".meta"]
    assert list(storage.paths.meta.iterdir()) == []


def test_presign_returns_static_url(storage):
    assert storage.presign("1-a.txt", 60) == "/uploads/1-a.txt"
