"""Tests for S3FileStorage."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from casefiles.services.errors import BackendTransientError, NotFoundError
from casefiles.services.storage import S3FileStorage, StorageKind, parse_connection_string

UPLOADED_AT = datetime(2025, 10, 14, 9, 30, tzinfo=timezone.utc)


def client_error(code, operation="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def mock_s3_client():
    """Create a mock S3 client."""
    with patch("casefiles.services.storage.s3.boto3.client") as mock_boto:
        mock_client = MagicMock()
        mock_boto.return_value = mock_client
        # Mock head_bucket to succeed by default
        mock_client.head_bucket.return_value = {}
        yield mock_client


@pytest.fixture
def storage(mock_s3_client):
    return S3FileStorage(bucket_name="client-docs", region="eu-west-3")


def test_s3_storage_initialization_is_lazy(mock_s3_client):
    """The bucket is not checked until the first real operation."""
    storage = S3FileStorage(bucket_name="client-docs", region="eu-west-3")

    assert storage.bucket_name == "client-docs"
    assert storage.region == "eu-west-3"
    mock_s3_client.head_bucket.assert_not_called()


def test_s3_storage_requires_bucket_name(mock_s3_client):
    with pytest.raises(ValueError, match="bucket name is required"):
        S3FileStorage(bucket_name="")


def test_explicit_credentials_are_passed_to_client():
    credentials = parse_connection_string(
        "AccessKeyId=AKIA123;SecretAccessKey=s3cr3t;Region=eu-west-1"
    )
    with patch("casefiles.services.storage.s3.boto3.client") as mock_boto:
        storage = S3FileStorage(bucket_name="client-docs", credentials=credentials)

    kwargs = mock_boto.call_args.kwargs
    assert kwargs["aws_access_key_id"] == "AKIA123"
    assert kwargs["aws_secret_access_key"] == "s3cr3t"
    assert kwargs["region_name"] == "eu-west-1"
    assert storage.region == "eu-west-1"


def test_named_profile_uses_session():
    with patch("casefiles.services.storage.s3.boto3.Session") as mock_session:
        S3FileStorage(bucket_name="client-docs", aws_profile="casefiles-dev")

    mock_session.assert_called_once_with(profile_name="casefiles-dev")
    mock_session.return_value.client.assert_called_once()


def test_parse_connection_string_rejects_missing_secret():
    with pytest.raises(ValueError, match="SecretAccessKey"):
        parse_connection_string("AccessKeyId=AKIA123")


def test_parse_connection_string_rejects_unknown_field():
    with pytest.raises(ValueError, match="Unknown connection string field"):
        parse_connection_string("AccessKeyId=a;SecretAccessKey=b;AccountKey=c")


def test_put_uses_key_content_type_and_verifies_bucket_once(storage, mock_s3_client):
    url = storage.put("123/Lab_Results/2025-report.pdf", b"%PDF", "application/pdf", "report.pdf")
    storage.put("123/Lab_Results/2025-other.pdf", b"%PDF", "application/pdf", "other.pdf")

    mock_s3_client.head_bucket.assert_called_once_with(Bucket="client-docs")
    call_kwargs = mock_s3_client.put_object.call_args_list[0].kwargs
    assert call_kwargs["Bucket"] == "client-docs"
    assert call_kwargs["Key"] == "123/Lab_Results/2025-report.pdf"
    assert call_kwargs["Body"] == b"%PDF"
    assert call_kwargs["ContentType"] == "application/pdf"
    assert call_kwargs["Metadata"] == {"original_filename": "report.pdf"}
    assert url == (
        "https://client-docs.s3.eu-west-3.amazonaws.com/123/Lab_Results/2025-report.pdf"
    )


def test_missing_bucket_is_not_created(storage, mock_s3_client):
    mock_s3_client.head_bucket.side_effect = client_error("404", "HeadBucket")

    with pytest.raises(BackendTransientError) as excinfo:
        storage.put("a/b/c.pdf", b"x", "application/pdf")

    assert excinfo.value.code == "NoSuchBucket"
    assert "does not exist" in excinfo.value.message
    mock_s3_client.create_bucket.assert_not_called()
    mock_s3_client.put_object.assert_not_called()


def test_bucket_access_denied(storage, mock_s3_client):
    mock_s3_client.head_bucket.side_effect = client_error("403", "HeadBucket")

    with pytest.raises(BackendTransientError) as excinfo:
        storage.exists("a/b/c.pdf")

    assert excinfo.value.code == "AccessDenied"


def test_failed_bucket_check_is_retried(storage, mock_s3_client):
    mock_s3_client.head_bucket.side_effect = [client_error("503", "HeadBucket"), {}]

    with pytest.raises(BackendTransientError):
        storage.exists("a/b/c.pdf")
    assert storage.exists("a/b/c.pdf") is True
    assert mock_s3_client.head_bucket.call_count == 2


def test_exists_returns_false_for_missing_object(storage, mock_s3_client):
    mock_s3_client.head_object.side_effect = client_error("404")

    assert storage.exists("123/General/missing.pdf") is False


def test_network_errors_become_transient(storage, mock_s3_client):
    mock_s3_client.head_object.side_effect = EndpointConnectionError(
        endpoint_url="https://s3.eu-west-3.amazonaws.com"
    )

    with pytest.raises(BackendTransientError) as excinfo:
        storage.exists("123/General/a.pdf")

    assert excinfo.value.code == "EndpointConnectionError"


def test_get_metadata_reports_upload_properties(storage, mock_s3_client):
    mock_s3_client.head_object.return_value = {
        "ContentLength": 2048,
        "ContentType": "application/pdf",
        "LastModified": UPLOADED_AT,
        "Metadata": {"original_filename": "Lab%20report.pdf"},
    }

    stored = storage.get_metadata("123/Lab_Results/2025-Lab_report.pdf")

    assert stored.size == 2048
    assert stored.content_type == "application/pdf"
    assert stored.last_modified == UPLOADED_AT
    assert stored.original_name == "Lab report.pdf"
    assert stored.backend is StorageKind.CLOUD
    assert stored.file_name == "2025-Lab_report.pdf"


def test_get_metadata_not_found(storage, mock_s3_client):
    mock_s3_client.head_object.side_effect = client_error("NoSuchKey")

    with pytest.raises(NotFoundError):
        storage.get_metadata("123/General/missing.pdf")


def test_delete_missing_object_is_not_an_error(storage, mock_s3_client):
    mock_s3_client.head_object.side_effect = client_error("404")

    assert storage.delete("123/General/missing.pdf") is False
    assert storage.delete("123/General/missing.pdf") is False
    mock_s3_client.delete_object.assert_not_called()


def test_delete_existing_object(storage, mock_s3_client):
    mock_s3_client.head_object.return_value = {"ContentLength": 1}

    assert storage.delete("123/General/a.pdf") is True
    mock_s3_client.delete_object.assert_called_once_with(
        Bucket="client-docs", Key="123/General/a.pdf"
    )


def test_list_by_prefix_is_lazy_and_scoped(storage, mock_s3_client):
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "A/ID/1-a.pdf", "Size": 10, "LastModified": UPLOADED_AT}]},
        {"Contents": [{"Key": "AB/ID/2-b.pdf", "Size": 20, "LastModified": UPLOADED_AT}]},
    ]
    mock_s3_client.get_paginator.return_value = paginator
    mock_s3_client.head_object.side_effect = lambda Bucket, Key: {"ContentType": "application/pdf"}

    listing = storage.list_by_prefix("A/")
    paginator.paginate.assert_not_called()

    keys = [item.key for item in listing]

    assert keys == ["A/ID/1-a.pdf"]
    assert all(key.startswith("A/") for key in keys)
    paginator.paginate.assert_called_once_with(Bucket="client-docs", Prefix="A/")


def test_list_by_prefix_can_be_restarted(storage, mock_s3_client):
    paginator = MagicMock()
    paginator.paginate.side_effect = lambda **kwargs: iter(
        [{"Contents": [{"Key": "A/ID/1-a.pdf", "Size": 10}]}]
    )
    mock_s3_client.get_paginator.return_value = paginator
    mock_s3_client.head_object.side_effect = lambda Bucket, Key: {"ContentType": "text/plain"}

    first = [item.key for item in storage.list_by_prefix("")]
    second = [item.key for item in storage.list_by_prefix("")]

    assert first == second == ["A/ID/1-a.pdf"]


def test_list_skips_objects_deleted_mid_listing(storage, mock_s3_client):
    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": [{"Key": "A/ID/gone.pdf", "Size": 1}]}]
    mock_s3_client.get_paginator.return_value = paginator
    mock_s3_client.head_object.side_effect = client_error("404")

    assert list(storage.list_by_prefix("A/")) == []


def test_ping_reads_bucket_metadata(storage, mock_s3_client):
    storage.ping()
    storage.ping()

    assert mock_s3_client.head_bucket.call_count == 2


def test_presign_generates_get_url(storage, mock_s3_client):
    mock_s3_client.generate_presigned_url.return_value = "https://signed.example/a.pdf?sig=1"

    url = storage.presign("123/General/a.pdf", 3600)

    assert url == "https://signed.example/a.pdf?sig=1"
    mock_s3_client.generate_presigned_url.assert_called_once_with(
        ClientMethod="get_object",
        Params={"Bucket": "client-docs", "Key": "123/General/a.pdf"},
        ExpiresIn=3600,
    )
