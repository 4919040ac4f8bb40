"""Contract tests for RemoteStore.

Applies the DurableStoreContractTests to the remote store over an
in-memory BlobStore, plus namespacing by key identity.
"""

from pathlib import Path

import pytest

from token_relay.storage import RemoteStore, StorageUnavailableError
from token_relay.storage.interfaces import DurableStore
from tests.contract.durable_store_contract import DurableStoreContractTests, make_test_record
from tests.fixtures.fakes import InMemoryBlobStore

KEY_IDENTITY = "ab" * 32


class TestRemoteStoreContract(DurableStoreContractTests):
    """Apply contract tests to RemoteStore."""

    def create_storage(self, tmp_path: Path) -> DurableStore:
        """Create a RemoteStore over a fresh in-memory blob store."""
        return RemoteStore(InMemoryBlobStore(), KEY_IDENTITY)


class TestRemoteStoreNamespacing:
    """Records are keyed <key_identity>/<opaque_id>."""

    def test_object_key(self):
        blobs = InMemoryBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        record = make_test_record()

        store.put(record)

        assert list(blobs.objects) == [f"{KEY_IDENTITY}/{record.opaque_id}"]

    def test_other_namespace_invisible(self):
        """Two key identities sharing a bucket never see each other's records."""
        blobs = InMemoryBlobStore()
        first = RemoteStore(blobs, KEY_IDENTITY)
        second = RemoteStore(blobs, "cd" * 32)
        record = make_test_record()

        first.put(record)

        assert second.get(record.opaque_id) is None
        assert list(second.list_all()) == []
        assert second.count() == 0
        assert first.count() == 1

    def test_corrupt_object_skipped(self):
        blobs = InMemoryBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        good = make_test_record()
        store.put(good)
        blobs.objects[f"{KEY_IDENTITY}/{'0' * 64}"] = b"not json"

        assert [r.opaque_id for r in store.list_all()] == [good.opaque_id]
        assert store.get("0" * 64) is None

    def test_backend_failure_propagates(self):
        blobs = InMemoryBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        blobs.fail_operations.add("get_object")

        with pytest.raises(StorageUnavailableError):
            store.get(make_test_record().opaque_id)

    def test_requires_key_identity(self):
        with pytest.raises(ValueError):
            RemoteStore(InMemoryBlobStore(), "")

    def test_unreadable_object_reported_and_skipped(self):
        blobs = InMemoryBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        good = make_test_record()
        bad = make_test_record()
        store.put(good)
        store.put(bad)
        blobs.fail_operations.add("get_object")
        blobs.fail_keys.add(store.build_object_key(bad.opaque_id))
        errors = []

        listed = [r.opaque_id for r in store.list_all(on_error=lambda i, e: errors.append(i))]

        assert listed == [good.opaque_id]
        assert errors == [bad.opaque_id]

    def test_unreadable_object_skipped_without_callback(self):
        blobs = InMemoryBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        store.put(make_test_record())
        blobs.fail_operations.add("get_object")

        assert list(store.list_all()) == []


class DeleteAfterGetBlobStore(InMemoryBlobStore):
    """Simulates an eviction landing between a touch's get and put."""

    def get_object(self, key):
        data = super().get_object(key)
        self.delete_object(key)
        return data


class TestRemoteStoreTouchRace:
    """Touch is read-modify-write without compare-and-swap."""

    def test_touch_racing_delete_recreates_record(self):
        blobs = DeleteAfterGetBlobStore()
        store = RemoteStore(blobs, KEY_IDENTITY)
        record = make_test_record()
        blobs.objects[store.build_object_key(record.opaque_id)] = RemoteStore._encode(record)

        assert store.touch_last_used(record.opaque_id, record.last_used_at) is True
        assert store.build_object_key(record.opaque_id) in blobs.objects
