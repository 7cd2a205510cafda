"""
S3-compatible object store (AWS S3 or Cloudflare R2)

Stores one JSON document per key. Reads return the object's ETag so writers
can make conditional puts (If-Match / If-None-Match) and detect lost races.
"""
import json
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import (
    S3_ACCESS_KEY_ID,
    S3_ENDPOINT_URL,
    S3_REGION,
    S3_REGISTRATIONS_BUCKET,
    S3_SECRET_ACCESS_KEY,
)
from .exceptions import StoreUnavailableError, WriteConflictError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
CONFLICT_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


def get_s3_client():
    """Create and return an S3 client with bounded timeouts and standard retries."""
    return boto3.client(
        "s3",
        endpoint_url=S3_ENDPOINT_URL or None,
        region_name=S3_REGION,
        aws_access_key_id=S3_ACCESS_KEY_ID,
        aws_secret_access_key=S3_SECRET_ACCESS_KEY,
        config=Config(
            signature_version="s3v4",
            connect_timeout=5,
            read_timeout=10,
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    )


def is_storage_configured() -> bool:
    return bool(S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY and S3_REGISTRATIONS_BUCKET)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class ObjectStore:
    """JSON document store on top of an S3 bucket"""

    def __init__(self, client=None, bucket: str = S3_REGISTRATIONS_BUCKET):
        self._client = client
        self.bucket = bucket

    @property
    def client(self):
        """Lazy load S3 client"""
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def get_json(self, key: str) -> tuple[Optional[dict], Optional[str]]:
        """
        Fetch a JSON document.

        Returns:
            (document, etag), or (None, None) if the key does not exist
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"].read().decode("utf-8")
            return json.loads(body), response.get("ETag")
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None, None
            logger.error(f"❌ Object store read failed for {key}: {e}")
            raise StoreUnavailableError(f"Failed to read {key}") from e
        except (BotoCoreError, ValueError) as e:
            logger.error(f"❌ Object store read failed for {key}: {e}")
            raise StoreUnavailableError(f"Failed to read {key}") from e

    def put_json(
        self,
        key: str,
        data: dict[str, Any],
        if_match: Optional[str] = None,
        if_none_match: bool = False,
        metadata: Optional[dict[str, str]] = None,
    ) -> Optional[str]:
        """
        Write a JSON document, optionally conditional on the current ETag.

        Args:
            if_match: only write if the stored object still has this ETag
            if_none_match: only write if no object exists under the key

        Returns:
            ETag of the written object

        Raises:
            WriteConflictError: the precondition failed (another writer won)
            StoreUnavailableError: any other failure
        """
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": json.dumps(data, indent=2, default=str).encode("utf-8"),
            "ContentType": "application/json",
        }
        if metadata:
            params["Metadata"] = metadata
        if if_match:
            params["IfMatch"] = if_match
        elif if_none_match:
            params["IfNoneMatch"] = "*"

        try:
            response = self.client.put_object(**params)
            return response.get("ETag")
        except ClientError as e:
            if _error_code(e) in CONFLICT_CODES:
                logger.warning(f"⚠️ Conditional write conflict on {key}")
                raise WriteConflictError(f"Concurrent update on {key}") from e
            logger.error(f"❌ Object store write failed for {key}: {e}")
            raise StoreUnavailableError(f"Failed to write {key}") from e
        except BotoCoreError as e:
            logger.error(f"❌ Object store write failed for {key}: {e}")
            raise StoreUnavailableError(f"Failed to write {key}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Object store delete failed for {key}: {e}")
            raise StoreUnavailableError(f"Failed to delete {key}") from e

    def list_keys(self, prefix: str) -> list[str]:
        """List every key under a prefix (follows pagination)"""
        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Object store list failed for prefix {prefix}: {e}")
            raise StoreUnavailableError(f"Failed to list {prefix}") from e
        return keys
