"""Factory for creating the durable store.

The backend is chosen once at startup from configuration: the remote store
when a bucket (or an injected BlobStore) is configured, the local fallback
file otherwise. Handlers only ever see the DurableStore interface.

Note: the S3 backend import is lazy-loaded so boto3 is only required when a
bucket is configured.
"""

import logging
from typing import TYPE_CHECKING, Optional

from token_relay.storage.interfaces import (
    BlobStore,
    DurableStore,
    StorageBackendType,
)
from token_relay.storage.local import LocalFallbackStore
from token_relay.storage.remote import RemoteStore

if TYPE_CHECKING:
    from token_relay.config import DecryptorConfig

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory for creating DurableStore implementations based on config.

    Example:
        >>> config = DecryptorConfig(storage_dir=Path("data"))
        >>> store = StorageFactory.create(config, key_identity)
    """

    @staticmethod
    def create(
        config: "DecryptorConfig",
        key_identity: str,
        blob_store: Optional[BlobStore] = None,
    ) -> DurableStore:
        """Create a DurableStore implementation based on config.

        Args:
            config: Decryptor configuration
            key_identity: Fingerprint of the active public key
            blob_store: Pre-built remote backend; forces the remote variant

        Returns:
            DurableStore implementation

        Raises:
            ValueError: If the configuration is incomplete
            StorageUnavailableError: If the backend cannot be reached
        """
        config.validate_for_backend()

        if blob_store is not None:
            logger.info(f"Using remote token storage: {blob_store.describe()}")
            return RemoteStore(blob_store, key_identity)

        if config.storage_backend() == StorageBackendType.REMOTE:
            # Lazy import: boto3 is an optional extra
            from token_relay.storage.s3 import S3BlobStore

            blobs = S3BlobStore(
                bucket=config.s3_bucket,
                region=config.s3_region,
                endpoint_url=config.s3_endpoint_url,
                access_key=config.s3_access_key,
                secret_key=config.s3_secret_key,
                timeout_seconds=config.storage_timeout_seconds,
            )
            logger.info(f"Using remote token storage: {blobs.describe()}")
            return RemoteStore(blobs, key_identity)

        logger.warning(
            f"Remote storage not configured; using local fallback file {config.storage_path}. "
            "Records survive a process restart but NOT the loss of this node."
        )
        return LocalFallbackStore(config.storage_path)
