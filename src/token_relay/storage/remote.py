"""Remote durable store backed by a key/value blob store.

Records are stored as JSON objects under ``<key_identity>/<opaque_id>`` so
deployments sharing a bucket neither collide nor enumerate each other's
records without already knowing the key identity.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Callable, Iterator, Optional

from token_relay.schemas.token_record import TokenRecord, short_id
from token_relay.storage.interfaces import (
    BlobStore,
    DurableStore,
    StorageBackendType,
    StorageError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


class RemoteStore(DurableStore):
    """DurableStore over a BlobStore, namespaced by key identity."""

    backend = StorageBackendType.REMOTE

    def __init__(self, blob_store: BlobStore, key_identity: str):
        """Initialize the remote store.

        Args:
            blob_store: Remote key/value backend.
            key_identity: Fingerprint of the active public key, used as the
                key prefix for every record.
        """
        if not key_identity:
            raise ValueError("key_identity is required for the remote store")
        self._blobs = blob_store
        self._key_identity = key_identity
        self._prefix = f"{key_identity}/"

    @property
    def key_identity(self) -> str:
        return self._key_identity

    def build_object_key(self, opaque_id: str) -> str:
        """Object key format: <key_identity>/<opaque_id>."""
        return f"{self._prefix}{opaque_id}"

    @staticmethod
    def _encode(record: TokenRecord) -> bytes:
        return json.dumps(record.to_dict()).encode("utf-8")

    @staticmethod
    def _decode(data: bytes) -> TokenRecord:
        return TokenRecord.from_dict(json.loads(data.decode("utf-8")))

    def put(self, record: TokenRecord) -> None:
        if not record.key_identity:
            record.key_identity = self._key_identity
        key = self.build_object_key(record.opaque_id)
        self._blobs.put_object(key, self._encode(record))
        logger.debug(f"Stored record {short_id(record.opaque_id)} in remote store")

    def get(self, opaque_id: str) -> Optional[TokenRecord]:
        data = self._blobs.get_object(self.build_object_key(opaque_id))
        if data is None:
            return None
        try:
            return self._decode(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to decode remote record {short_id(opaque_id)}: {e}")
            return None

    def delete(self, opaque_id: str) -> bool:
        removed = self._blobs.delete_object(self.build_object_key(opaque_id))
        if removed:
            logger.debug(f"Deleted record {short_id(opaque_id)} from remote store")
        return removed

    def list_all(
        self, on_error: Optional[Callable[[str, StorageError], None]] = None
    ) -> Iterator[TokenRecord]:
        """Stream records one object at a time.

        A failed fetch skips that object and the listing continues.
        """
        for key in self._blobs.list_keys(self._prefix):
            try:
                data = self._blobs.get_object(key)
            except StorageUnavailableError as e:
                opaque_id = key[len(self._prefix):]
                if on_error is not None:
                    on_error(opaque_id, e)
                else:
                    logger.warning(f"Failed to fetch object {key}: {e}")
                continue
            if data is None:
                # Deleted between listing and fetching
                continue
            try:
                yield self._decode(data)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Failed to decode object {key}: {e}")
                continue

    def touch_last_used(self, opaque_id: str, timestamp: datetime) -> bool:
        """Read-modify-write of last_used_at.

        Without compare-and-swap two races remain. A concurrent touch may
        win, which only loses a timestamp. A delete landing between the
        get and the put (an eviction) is undone: the record reappears with
        a fresh last_used_at and survives another retention window.
        """
        record = self.get(opaque_id)
        if record is None:
            return False
        record.last_used_at = timestamp
        self.put(record)
        return True

    def count(self) -> int:
        return sum(1 for _ in self._blobs.list_keys(self._prefix))

    def describe(self) -> str:
        return f"remote {self._blobs.describe()} (namespace {self._key_identity[:16]}...)"
