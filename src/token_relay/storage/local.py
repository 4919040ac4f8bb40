"""Local-file fallback store.

Used only when no remote backend is configured. All records live in one JSON
array file that is rewritten atomically (temp file + fsync + rename) on every
mutation. Records survive a process restart but not the loss of the node.

Writers are serialized through an in-process lock; the rename gives
last-writer-wins between processes but no mutual exclusion.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from token_relay.schemas.token_record import TokenRecord, short_id
from token_relay.storage.interfaces import (
    DurableStore,
    StorageBackendType,
    StorageError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


class LocalFallbackStore(DurableStore):
    """Single-file JSON store with an in-memory index.

    Example:
        >>> store = LocalFallbackStore(Path("data/tokens.json"))
        >>> store.put(record)
        >>> store.get(record.opaque_id)
    """

    backend = StorageBackendType.LOCAL

    def __init__(self, storage_path: Path):
        """Load existing records from storage_path.

        Args:
            storage_path: Path of the JSON array file.

        Raises:
            StorageUnavailableError: If the file exists but cannot be parsed.
        """
        self._path = Path(storage_path)
        self._lock = threading.Lock()
        self._records: Dict[str, TokenRecord] = {}
        self._ensure_parent_dir()
        self._load()

    @property
    def storage_path(self) -> Path:
        """Get the path to the storage file."""
        return self._path

    def _ensure_parent_dir(self) -> None:
        """Ensure parent directory exists."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> None:
        if not self._path.exists():
            logger.info(f"No existing token file at {self._path}, starting empty")
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageUnavailableError(
                f"Failed to load token file {self._path}: {e}"
            ) from e

        if not isinstance(data, list):
            raise StorageUnavailableError(
                f"Token file {self._path} must contain a JSON array"
            )

        for item in data:
            try:
                record = TokenRecord.from_dict(item)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable record in {self._path}: {e}")
                continue
            self._records[record.opaque_id] = record

        logger.info(f"Loaded {len(self._records)} records from {self._path}")

    def _write(self) -> None:
        """Rewrite the whole file atomically. Caller must hold the lock."""
        self._ensure_parent_dir()
        payload = [record.to_dict() for record in self._records.values()]

        tmp_file = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            tmp_file.replace(self._path)

        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink()
            raise StorageUnavailableError(f"Failed to write token file: {e}") from e

    def put(self, record: TokenRecord) -> None:
        with self._lock:
            previous = self._records.get(record.opaque_id)
            self._records[record.opaque_id] = record
            try:
                self._write()
            except StorageUnavailableError:
                # Keep memory consistent with what is on disk
                if previous is None:
                    self._records.pop(record.opaque_id, None)
                else:
                    self._records[record.opaque_id] = previous
                raise
        logger.debug(f"Stored record {short_id(record.opaque_id)} in {self._path}")

    def get(self, opaque_id: str) -> Optional[TokenRecord]:
        with self._lock:
            return self._records.get(opaque_id)

    def delete(self, opaque_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(opaque_id, None)
            if removed is None:
                return False
            try:
                self._write()
            except StorageUnavailableError:
                self._records[opaque_id] = removed
                raise
        logger.debug(f"Deleted record {short_id(opaque_id)} from {self._path}")
        return True

    def list_all(
        self, on_error: Optional[Callable[[str, StorageError], None]] = None
    ) -> Iterator[TokenRecord]:
        # Records are in memory; no per-record fetch can fail
        with self._lock:
            snapshot = list(self._records.values())
        return iter(snapshot)

    def touch_last_used(self, opaque_id: str, timestamp: datetime) -> bool:
        with self._lock:
            record = self._records.get(opaque_id)
            if record is None:
                return False
            previous = record.last_used_at
            record.last_used_at = timestamp
            try:
                self._write()
            except StorageUnavailableError:
                record.last_used_at = previous
                raise
        return True

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def describe(self) -> str:
        return f"local-fallback file {self._path}"
