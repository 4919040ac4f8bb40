"""Contract tests for DurableStore implementations.

These tests define the behavior that any DurableStore implementation must
satisfy. Subclasses must implement `create_storage()` to provide the
specific backend being tested.

The contract covers:
- Writes: put is visible to get, put replaces, delete reports existence
- Reads: get of unknown ids, list_all streaming, count
- Updates: touch_last_used changes only last_used_at
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from token_relay.schemas.token_record import TokenRecord, generate_opaque_id
from token_relay.storage.interfaces import DurableStore, StorageBackendType

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_test_record(
    platform: str = "android",
    envelope: bytes = b"\x07" * 300,
    last_used_at: datetime = T0,
) -> TokenRecord:
    """Create a test token record."""
    return TokenRecord(
        opaque_id=generate_opaque_id(),
        envelope=envelope,
        platform=platform,
        registered_at=T0,
        last_used_at=last_used_at,
        key_identity="ab" * 32,
    )


class DurableStoreContractTests(ABC):
    """Contract tests that any DurableStore implementation must pass.

    Example:
        class TestLocalStoreContract(DurableStoreContractTests):
            def create_storage(self, tmp_path: Path) -> DurableStore:
                return LocalFallbackStore(tmp_path / "tokens.json")
    """

    @abstractmethod
    def create_storage(self, tmp_path: Path) -> DurableStore:
        """Create a fresh storage instance for testing.

        Args:
            tmp_path: Temporary directory for storage files.

        Returns:
            A new DurableStore instance.
        """
        pass

    @pytest.fixture
    def storage(self, tmp_path: Path) -> DurableStore:
        """Fixture providing a fresh storage instance."""
        return self.create_storage(tmp_path)

    # =========================================================================
    # Protocol
    # =========================================================================

    def test_implements_protocol(self, storage: DurableStore):
        assert isinstance(storage, DurableStore)
        assert isinstance(storage.backend, StorageBackendType)
        assert storage.describe()

    # =========================================================================
    # Writes
    # =========================================================================

    def test_put_then_get(self, storage: DurableStore):
        """A stored record is returned with every field intact."""
        record = make_test_record()

        storage.put(record)
        loaded = storage.get(record.opaque_id)

        assert loaded is not None
        assert loaded.opaque_id == record.opaque_id
        assert loaded.envelope == record.envelope
        assert loaded.platform == "android"
        assert loaded.registered_at == T0
        assert loaded.last_used_at == T0

    def test_envelope_bytes_preserved(self, storage: DurableStore):
        """Arbitrary binary envelopes survive storage unchanged."""
        envelope = bytes(range(256)) * 2
        record = make_test_record(envelope=envelope)

        storage.put(record)

        assert storage.get(record.opaque_id).envelope == envelope

    def test_put_replaces(self, storage: DurableStore):
        """A second put with the same id is last-writer-wins."""
        record = make_test_record(platform="android")
        storage.put(record)

        replacement = make_test_record(platform="ios")
        replacement.opaque_id = record.opaque_id
        storage.put(replacement)

        assert storage.get(record.opaque_id).platform == "ios"
        assert storage.count() == 1

    def test_delete_existing(self, storage: DurableStore):
        record = make_test_record()
        storage.put(record)

        assert storage.delete(record.opaque_id) is True
        assert storage.get(record.opaque_id) is None

    def test_delete_missing(self, storage: DurableStore):
        assert storage.delete(generate_opaque_id()) is False

    # =========================================================================
    # Reads
    # =========================================================================

    def test_get_unknown_returns_none(self, storage: DurableStore):
        assert storage.get(generate_opaque_id()) is None

    def test_list_all_returns_every_record(self, storage: DurableStore):
        records = [make_test_record() for _ in range(5)]
        for record in records:
            storage.put(record)

        listed = {r.opaque_id for r in storage.list_all()}

        assert listed == {r.opaque_id for r in records}

    def test_list_all_empty(self, storage: DurableStore):
        assert list(storage.list_all()) == []

    def test_count(self, storage: DurableStore):
        assert storage.count() == 0
        storage.put(make_test_record())
        storage.put(make_test_record())
        assert storage.count() == 2

    # =========================================================================
    # Updates
    # =========================================================================

    def test_touch_last_used(self, storage: DurableStore):
        """touch_last_used updates last_used_at only."""
        record = make_test_record()
        storage.put(record)
        later = T0 + timedelta(days=5)

        assert storage.touch_last_used(record.opaque_id, later) is True

        loaded = storage.get(record.opaque_id)
        assert loaded.last_used_at == later
        assert loaded.registered_at == T0
        assert loaded.envelope == record.envelope

    def test_touch_missing(self, storage: DurableStore):
        assert storage.touch_last_used(generate_opaque_id(), T0) is False

    def test_delete_during_iteration(self, storage: DurableStore):
        """Deleting while iterating list_all is allowed (the evictor does this)."""
        for _ in range(4):
            storage.put(make_test_record())

        for record in storage.list_all():
            storage.delete(record.opaque_id)

        assert storage.count() == 0
