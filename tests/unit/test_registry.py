"""Unit tests for TokenRegistry."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from token_relay.crypto import AuthenticationFailedError, InvalidTokenError, MalformedEnvelopeError
from token_relay.registry import RegistryError, TokenNotFoundError, TokenRegistry
from token_relay.schemas.token_record import TokenRecord, is_valid_opaque_id
from token_relay.storage import (
    LocalFallbackStore,
    NotFoundError,
    RemoteStore,
    StorageUnavailableError,
)
from tests.fixtures.samples import SAMPLE_TOKEN

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store(tmp_path: Path):
    return LocalFallbackStore(tmp_path / "tokens.json")


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def registry(store, rsa_key, key_identity, clock):
    return TokenRegistry(store, rsa_key, key_identity=key_identity, clock=clock)


class TestRegister:
    """Tests for TokenRegistry.register."""

    def test_returns_64_hex_id(self, registry, make_envelope):
        """Opaque ids are 256-bit lowercase hex."""
        token_id = registry.register(make_envelope(), "android")
        assert is_valid_opaque_id(token_id)
        assert len(token_id) == 64

    def test_persists_record_before_returning(self, registry, store, make_envelope):
        """The record is in the store once register returns."""
        envelope = make_envelope()
        token_id = registry.register(envelope, "android")

        record = store.get(token_id)
        assert record is not None
        assert record.envelope == envelope
        assert record.platform == "android"

    def test_stamps_times_and_key_identity(self, registry, store, make_envelope, key_identity):
        """registered_at and last_used_at come from the clock."""
        token_id = registry.register(make_envelope(), "ios")

        record = store.get(token_id)
        assert record.registered_at == T0
        assert record.last_used_at == T0
        assert record.key_identity == key_identity

    def test_n_envelopes_give_n_distinct_ids(self, registry, make_envelope):
        """Registering N envelopes yields N ids, each resolving to its own envelope."""
        envelopes = [make_envelope(f"token-{i}".encode()) for i in range(10)]
        ids = [registry.register(envelope, "android") for envelope in envelopes]

        assert len(set(ids)) == 10
        for token_id, envelope in zip(ids, envelopes):
            assert registry.resolve(token_id) == envelope

    def test_same_envelope_twice_gets_two_ids(self, registry, make_envelope):
        """Identifiers are never derived from the envelope."""
        envelope = make_envelope()
        assert registry.register(envelope, "a") != registry.register(envelope, "a")

    def test_rejects_undecryptable_envelope(self, registry, store, make_envelope, other_rsa_key):
        """Envelopes for another key are never stored."""
        with pytest.raises(AuthenticationFailedError):
            registry.register(make_envelope(key=other_rsa_key), "android")
        assert store.count() == 0

    def test_rejects_malformed_envelope(self, registry, store):
        """Garbage bytes are rejected without a write."""
        with pytest.raises(MalformedEnvelopeError):
            registry.register(b"\x00" * 50, "android")
        assert store.count() == 0

    def test_rejects_oversized_token(self, registry, store, make_envelope):
        """Decrypted tokens above the limit are rejected."""
        with pytest.raises(InvalidTokenError):
            registry.register(make_envelope(b"x" * 2001), "android")
        assert store.count() == 0

    def test_validation_can_be_disabled(self, store, rsa_key, other_rsa_key, make_envelope):
        """With validation off, the envelope is stored without decrypting."""
        registry = TokenRegistry(store, rsa_key, validate_on_register=False)
        token_id = registry.register(make_envelope(key=other_rsa_key), "android")
        assert store.get(token_id) is not None

    def test_collision_retries_with_new_id(self, store, rsa_key, make_envelope):
        """An id already in use is never reused."""
        existing = "a" * 64
        ids = iter([existing, existing, "b" * 64])
        registry = TokenRegistry(store, rsa_key, id_factory=lambda: next(ids))
        store.put(TokenRecord(opaque_id=existing, envelope=b"old"))

        token_id = registry.register(make_envelope(), "android")

        assert token_id == "b" * 64
        assert store.get(existing).envelope == b"old"

    def test_collision_exhaustion_raises(self, store, rsa_key, make_envelope):
        """Bounded retries end in RegistryError."""
        registry = TokenRegistry(store, rsa_key, id_factory=lambda: "c" * 64)
        registry.register(make_envelope(), "android")

        with pytest.raises(RegistryError):
            registry.register(make_envelope(), "android")

    def test_failed_write_returns_no_id(self, rsa_key, key_identity, blob_store, make_envelope):
        """A storage failure propagates; no id is handed out."""
        registry = TokenRegistry(RemoteStore(blob_store, key_identity), rsa_key)
        blob_store.fail_operations.add("put_object")

        with pytest.raises(StorageUnavailableError):
            registry.register(make_envelope(), "android")
        assert blob_store.objects == {}


class TestResolve:
    """Tests for TokenRegistry.resolve."""

    def test_returns_ciphertext_unchanged(self, registry, make_envelope):
        """resolve hands back the stored envelope, never plaintext."""
        envelope = make_envelope()
        token_id = registry.register(envelope, "android")

        resolved = registry.resolve(token_id)

        assert resolved == envelope
        assert SAMPLE_TOKEN not in resolved

    def test_touches_last_used(self, registry, store, clock, make_envelope):
        """Each resolve refreshes last_used_at."""
        token_id = registry.register(make_envelope(), "android")
        clock.now = T0 + timedelta(days=3)

        registry.resolve(token_id)

        assert store.get(token_id).last_used_at == T0 + timedelta(days=3)
        assert store.get(token_id).registered_at == T0

    def test_unknown_id_is_not_found(self, registry):
        """Unknown ids raise TokenNotFoundError, a NotFoundError."""
        with pytest.raises(TokenNotFoundError) as exc_info:
            registry.resolve("0" * 64)
        assert isinstance(exc_info.value, NotFoundError)

    @pytest.mark.parametrize("bad_id", ["", "abc", "../etc/passwd", "A" * 64, "0" * 63 + "g"])
    def test_malformed_id_is_not_found(self, registry, bad_id):
        """Ids that are not 64 lowercase hex chars never reach the store."""
        with pytest.raises(TokenNotFoundError):
            registry.resolve(bad_id)

    def test_touch_failure_is_not_fatal(self, rsa_key, key_identity, blob_store, make_envelope):
        """A failed last-used update still returns the envelope."""
        registry = TokenRegistry(RemoteStore(blob_store, key_identity), rsa_key)
        envelope = make_envelope()
        token_id = registry.register(envelope, "android")

        blob_store.fail_operations.add("put_object")

        assert registry.resolve(token_id) == envelope


class TestRemove:
    """Tests for administrative delete."""

    def test_remove_then_resolve_is_not_found(self, registry, make_envelope):
        """Removed records are gone."""
        token_id = registry.register(make_envelope(), "android")

        assert registry.remove(token_id) is True
        with pytest.raises(TokenNotFoundError):
            registry.resolve(token_id)

    def test_remove_unknown_returns_false(self, registry):
        assert registry.remove("f" * 64) is False

    def test_remove_malformed_returns_false(self, registry):
        assert registry.remove("not-an-id") is False

    def test_count(self, registry, make_envelope):
        registry.register(make_envelope(), "android")
        registry.register(make_envelope(), "ios")
        assert registry.count() == 2
