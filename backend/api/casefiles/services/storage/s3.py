"""S3-based storage for client case documents.

Objects are organised in the bucket by logical key::

    {clientId}/{docType}/{timestamp}-{name}{ext}

The client handles AWS credentials in one of two ways:
    - Explicit credentials parsed from a connection string
    - The default credential chain (environment variables, a named AWS CLI
      profile, IAM roles for EC2/ECS deployments)

The bucket is never created here. It is verified with a HEAD request on first
use and a missing bucket fails every cloud operation until it is provisioned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import quote, unquote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import BackendTransientError, NotFoundError
from .protocol import StorageKind, StoredObject

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
MISSING_BUCKET_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})
ACCESS_DENIED_CODES = frozenset({"403", "AccessDenied", "Forbidden"})
DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Connection string field -> S3Credentials attribute
_CONNECTION_FIELDS = {
    "accesskeyid": "access_key_id",
    "secretaccesskey": "secret_access_key",
    "sessiontoken": "session_token",
    "region": "region",
    "endpointurl": "endpoint_url",
}


@dataclass(slots=True)
class S3Credentials:
    """Explicit credentials taken from a connection string."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    region: str | None = None
    endpoint_url: str | None = None


def parse_connection_string(value: str) -> S3Credentials:
    """Parse ``AccessKeyId=...;SecretAccessKey=...[;Region=...]`` into credentials.

    Raises:
        ValueError: If the string is malformed or lacks the key pair.
    """
    fields: dict[str, str] = {}
    for part in value.split(";"):
        part = part.strip()
        if not part:
            continue
        name, sep, item = part.partition("=")
        if not sep or not item.strip():
            raise ValueError(f"Malformed connection string segment: {name.strip()!r}")
        attr = _CONNECTION_FIELDS.get(name.strip().lower())
        if attr is None:
            raise ValueError(f"Unknown connection string field: {name.strip()!r}")
        fields[attr] = item.strip()

    if "access_key_id" not in fields or "secret_access_key" not in fields:
        raise ValueError("Connection string must contain AccessKeyId and SecretAccessKey")
    return S3Credentials(**fields)


class S3FileStorage:
    """S3-backed storage for uploaded case documents."""

    kind = StorageKind.CLOUD

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        aws_profile: str = "",
        credentials: S3Credentials | None = None,
        endpoint_url: str = "",
        timeout: float = 10.0,
        max_attempts: int = 2,
    ):
        """Build the S3 client. No network call happens here.

        Args:
            bucket_name: Name of the S3 bucket holding the documents
            region: AWS region where bucket is located
            aws_profile: AWS CLI profile name (optional). Ignored when explicit
                         credentials are given. If neither is provided, uses the
                         default credential chain.
            credentials: Explicit key pair parsed from a connection string
            endpoint_url: Custom endpoint for S3-compatible stores (optional)
            timeout: Connect and read timeout for every request, in seconds
            max_attempts: Total attempts botocore makes per request
        """
        if not bucket_name:
            raise ValueError("S3 bucket name is required")

        if credentials is not None:
            region = credentials.region or region
            endpoint_url = credentials.endpoint_url or endpoint_url

        self.bucket_name = bucket_name
        self.region = region
        self.endpoint_url = endpoint_url
        self._bucket_verified = False

        client_config = Config(
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        )
        client_kwargs = {"region_name": region, "config": client_config}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        if credentials is not None:
            self.s3_client = boto3.client(
                "s3",
                aws_access_key_id=credentials.access_key_id,
                aws_secret_access_key=credentials.secret_access_key,
                aws_session_token=credentials.session_token,
                **client_kwargs,
            )
        elif aws_profile:
            # Use named profile from ~/.aws/credentials
            session = boto3.Session(profile_name=aws_profile)
            self.s3_client = session.client("s3", **client_kwargs)
        else:
            # Use default credential chain (environment variables, AWS CLI, IAM roles)
            self.s3_client = boto3.client("s3", **client_kwargs)

    @property
    def base_url(self) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com"

    def url_for(self, key: str) -> str:
        """Private object URL; readers need a presigned URL to fetch it."""
        return f"{self.base_url}/{quote(key)}"

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        original_name: str | None = None,
    ) -> str:
        """Upload a document and return its private URL."""
        self._ensure_bucket()
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
                CacheControl="no-cache",
                # S3 user metadata must be ASCII
                Metadata={"original_filename": quote(original_name or "")},
            )
        except (ClientError, BotoCoreError) as exc:
            raise self._translate(exc, f"upload of {key}") from exc

        logger.info("Uploaded %s to bucket %s (%d bytes)", key, self.bucket_name, len(data))
        return self.url_for(key)

    def exists(self, key: str) -> bool:
        """Check for an object with a HEAD request; it doesn't download the body."""
        self._ensure_bucket()
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if self._error_code(exc) in MISSING_OBJECT_CODES:
                return False
            raise self._translate(exc, f"lookup of {key}") from exc
        except BotoCoreError as exc:
            raise self._translate(exc, f"lookup of {key}") from exc
        return True

    def get_metadata(self, key: str) -> StoredObject:
        """Return the properties recorded for ``key`` at upload time."""
        self._ensure_bucket()
        try:
            head = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if self._error_code(exc) in MISSING_OBJECT_CODES:
                raise NotFoundError("File not found in cloud storage") from exc
            raise self._translate(exc, f"lookup of {key}") from exc
        except BotoCoreError as exc:
            raise self._translate(exc, f"lookup of {key}") from exc
        return self._describe(key, head)

    def delete(self, key: str) -> bool:
        """Delete ``key``; an object that is already gone is not an error."""
        if not self.exists(key):
            return False
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if self._error_code(exc) in MISSING_OBJECT_CODES:
                return False
            raise self._translate(exc, f"delete of {key}") from exc
        except BotoCoreError as exc:
            raise self._translate(exc, f"delete of {key}") from exc

        logger.info("Deleted %s from bucket %s", key, self.bucket_name)
        return True

    def list_by_prefix(self, prefix: str = "") -> Iterator[StoredObject]:
        """Lazily page through objects under ``prefix``.

        Each call starts a fresh enumeration. Content types are read per object
        so listings report what was recorded at upload.
        """
        self._ensure_bucket()
        paginator = self.s3_client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if not key.startswith(prefix):
                        continue
                    item = self._describe_listed(key, obj)
                    if item is not None:
                        yield item
        except (ClientError, BotoCoreError) as exc:
            raise self._translate(exc, f"listing of '{prefix}'") from exc

    def ping(self) -> None:
        """Read the bucket's own metadata; raises if unreachable or missing."""
        self._bucket_verified = False
        self._ensure_bucket()

    def presign(self, key: str, expires_in: int) -> str:
        """Generate a time-limited GET URL for a private object."""
        try:
            return self.s3_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise self._translate(exc, f"presign of {key}") from exc

    # Internal helpers -----------------------------------------------------

    def _ensure_bucket(self) -> None:
        """Verify the bucket once; failures are retried on the next call."""
        if self._bucket_verified:
            return
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as exc:
            code = self._error_code(exc)
            if code in MISSING_BUCKET_CODES:
                raise BackendTransientError(
                    f"S3 bucket '{self.bucket_name}' does not exist", code="NoSuchBucket"
                ) from exc
            if code in ACCESS_DENIED_CODES:
                raise BackendTransientError(
                    f"Access denied to S3 bucket '{self.bucket_name}'", code="AccessDenied"
                ) from exc
            raise self._translate(exc, f"verification of bucket '{self.bucket_name}'") from exc
        except BotoCoreError as exc:
            raise self._translate(exc, f"verification of bucket '{self.bucket_name}'") from exc
        self._bucket_verified = True

    def _describe(self, key: str, head: dict) -> StoredObject:
        metadata = head.get("Metadata") or {}
        original = metadata.get("original_filename")
        return StoredObject(
            key=key,
            size=int(head.get("ContentLength", 0)),
            content_type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
            url=self.url_for(key),
            backend=self.kind,
            last_modified=head.get("LastModified"),
            original_name=unquote(original) if original else None,
        )

    def _describe_listed(self, key: str, obj: dict) -> StoredObject | None:
        try:
            head = self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if self._error_code(exc) in MISSING_OBJECT_CODES:
                # Deleted between the page fetch and the HEAD
                return None
            raise
        head.setdefault("ContentLength", obj.get("Size", 0))
        head.setdefault("LastModified", obj.get("LastModified"))
        return self._describe(key, head)

    @staticmethod
    def _error_code(exc: ClientError) -> str:
        return str(exc.response.get("Error", {}).get("Code", ""))

    def _translate(self, exc: Exception, action: str) -> BackendTransientError:
        if isinstance(exc, ClientError):
            code = self._error_code(exc) or "ClientError"
        else:
            code = type(exc).__name__
        return BackendTransientError(f"S3 {action} failed: {exc}", code=code)
