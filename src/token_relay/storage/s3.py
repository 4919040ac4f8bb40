"""S3-compatible BlobStore.

Works with AWS S3 and S3-compatible object stores (custom endpoint,
path-style addressing). Every call carries bounded connect/read timeouts.

Note: boto3 is imported lazily so that the decryptor can run with the local
fallback store without the optional ``s3`` extra installed.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from token_relay.storage.interfaces import BlobStore, StorageUnavailableError

logger = logging.getLogger(__name__)


class S3BlobStore(BlobStore):
    """BlobStore implementation over an S3 bucket.

    Example:
        >>> blobs = S3BlobStore(
        ...     bucket="push-tokens",
        ...     region="ch-gva-2",
        ...     endpoint_url="https://sos-ch-gva-2.exo.io",
        ...     access_key="...",
        ...     secret_key="...",
        ... )
    """

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        client: Any = None,
        ensure_bucket: bool = True,
    ):
        """Initialize the blob store.

        Args:
            bucket: Bucket name.
            region: Region or zone name.
            endpoint_url: Custom endpoint for S3-compatible services.
            access_key: Access key ID.
            secret_key: Secret access key.
            timeout_seconds: Connect and read timeout for each call.
            client: Pre-built S3 client (skips boto3 client creation).
            ensure_bucket: Create the bucket at startup if it does not exist.

        Raises:
            StorageUnavailableError: If the bucket cannot be reached or created.
        """
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._client = client or self._create_client(
            region, endpoint_url, access_key, secret_key, timeout_seconds
        )
        if ensure_bucket:
            self._ensure_bucket()
        logger.info(
            f"S3 blob store initialized: bucket={bucket}, region={region}, "
            f"endpoint={endpoint_url or 'default'}"
        )

    @staticmethod
    def _create_client(
        region: Optional[str],
        endpoint_url: Optional[str],
        access_key: Optional[str],
        secret_key: Optional[str],
        timeout_seconds: float,
    ) -> Any:
        import boto3
        from botocore.config import Config

        config = Config(
            connect_timeout=timeout_seconds,
            read_timeout=timeout_seconds,
            retries={"max_attempts": 3, "mode": "standard"},
            s3={"addressing_style": "path"},
        )
        return boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=config,
        )

    def _ensure_bucket(self) -> None:
        """Check the bucket exists and create it if necessary."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
            return
        except Exception as head_error:
            try:
                self._client.create_bucket(Bucket=self._bucket)
            except Exception as create_error:
                raise StorageUnavailableError(
                    f"Bucket {self._bucket} does not exist and cannot be created: "
                    f"{create_error} (original error: {head_error})"
                ) from create_error
        logger.info(f"Created new bucket: {self._bucket}")

    def put_object(self, key: str, data: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType="application/json",
            )
        except Exception as e:
            raise StorageUnavailableError(f"Failed to store object {key}: {e}") from e

    def get_object(self, key: str) -> Optional[bytes]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except self._client.exceptions.NoSuchKey:
            return None
        except Exception as e:
            raise StorageUnavailableError(f"Failed to get object {key}: {e}") from e

        body = response["Body"]
        try:
            return body.read()
        except Exception as e:
            raise StorageUnavailableError(f"Failed to read object {key}: {e}") from e
        finally:
            body.close()

    def list_keys(self, prefix: str) -> Iterator[str]:
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except Exception as e:
            raise StorageUnavailableError(f"Failed to list objects under {prefix}: {e}") from e

    def delete_object(self, key: str) -> bool:
        # S3 deletes are idempotent and do not report whether the key existed
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except Exception as e:
            if _is_not_found(e):
                return False
            raise StorageUnavailableError(f"Failed to check object {key}: {e}") from e
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception as e:
            raise StorageUnavailableError(f"Failed to delete object {key}: {e}") from e
        return True

    def describe(self) -> str:
        endpoint = self._endpoint_url or "aws"
        return f"s3://{self._bucket} ({endpoint})"


def _is_not_found(error: Exception) -> bool:
    """True for botocore ClientErrors carrying a 404 / NoSuchKey code."""
    response = getattr(error, "response", None) or {}
    code = str(response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")
