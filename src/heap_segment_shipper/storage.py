"""S3 access layer for Heap Connect exports.

This module contains the "E" (Extract) side of the pipeline. `S3ObjectStore`
wraps a boto3 S3 client and exposes the four operations the sync needs:
listing manifest keys, opening objects as streams, copying an object (used to
write completion markers) and checking whether an object exists.

Failures are not retried here. Any client or network error is raised as a
`StorageError` naming the bucket and key, which aborts the current batch and
leaves it unmarked for the next run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError

logger = logging.getLogger(__name__)

AWS_S3_DEFAULT_REGION = "us-east-1"
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

__all__ = ["S3Location", "S3ObjectStore", "create_s3_client", "parse_s3_uri"]


@dataclass(frozen=True)
class S3Location:
    bucket: str
    key: str


def parse_s3_uri(uri: str) -> S3Location:
    """Split `s3://bucket/key` into its parts.

    Raises:
        StorageError: If the value is not an s3:// URI with bucket and key.
    """
    if not uri.startswith("s3://"):
        raise StorageError(f"Expected an s3:// URI, got {uri!r}")
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise StorageError(f"S3 URI {uri!r} must include bucket and key")
    return S3Location(bucket=bucket, key=key)


def create_s3_client(
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
    region: Optional[str] = None,
) -> Any:
    """Create a boto3 S3 client.

    Explicit keys are optional; without them boto3's default credential chain
    (environment, profile, instance role) applies.
    """
    session_kwargs: dict[str, str] = {"region_name": region or AWS_S3_DEFAULT_REGION}
    if access_key_id and secret_access_key:
        session_kwargs["aws_access_key_id"] = access_key_id
        session_kwargs["aws_secret_access_key"] = secret_access_key
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")


class S3ObjectStore:
    """Object store bound to the export bucket."""

    def __init__(self, client: Any, bucket: str):
        self._client = client
        self._bucket = bucket

    def _location(self, key_or_uri: str) -> S3Location:
        if key_or_uri.startswith("s3://"):
            return parse_s3_uri(key_or_uri)
        if "://" in key_or_uri:
            raise StorageError(f"Unsupported object URI {key_or_uri!r}")
        return S3Location(bucket=self._bucket, key=key_or_uri)

    def list_keys(self, prefix: str, delimiter: Optional[str] = "/") -> List[str]:
        """Return every key under prefix, following continuation pages."""
        paginate_kwargs: dict[str, str] = {"Bucket": self._bucket, "Prefix": prefix}
        if delimiter:
            paginate_kwargs["Delimiter"] = delimiter
        keys: List[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**paginate_kwargs):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed listing s3://{self._bucket}/{prefix}: {e}"
            ) from e
        logger.debug("Listed %d key(s) under s3://%s/%s", len(keys), self._bucket, prefix)
        return keys

    def open(self, key_or_uri: str) -> Any:
        """Return a readable streaming body for the object."""
        location = self._location(key_or_uri)
        try:
            response = self._client.get_object(Bucket=location.bucket, Key=location.key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed reading s3://{location.bucket}/{location.key}: {e}"
            ) from e
        return response["Body"]

    def copy(self, source_key: str, dest_key: str) -> None:
        try:
            self._client.copy_object(
                CopySource={"Bucket": self._bucket, "Key": source_key},
                Bucket=self._bucket,
                Key=dest_key,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed copying s3://{self._bucket}/{source_key} to {dest_key}: {e}"
            ) from e

    def exists(self, key: str) -> bool:
        """True when the object exists; a not-found answer is not an error."""
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            raise StorageError(f"Failed checking s3://{self._bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed checking s3://{self._bucket}/{key}: {e}") from e
        return True
