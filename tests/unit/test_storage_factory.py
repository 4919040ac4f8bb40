"""Unit tests for StorageFactory backend selection."""

import logging

import pytest

from token_relay.config import DecryptorConfig
from token_relay.storage import (
    LocalFallbackStore,
    RemoteStore,
    StorageBackendType,
    StorageFactory,
)
from token_relay.storage import s3 as s3_module


class TestStorageFactory:
    """Tests for StorageFactory.create."""

    def test_local_fallback_when_unconfigured(self, tmp_path, key_identity, caplog):
        """No bucket selects the local file, with a durability warning."""
        config = DecryptorConfig(storage_dir=tmp_path)

        with caplog.at_level(logging.WARNING, logger="token_relay.storage.factory"):
            store = StorageFactory.create(config, key_identity)

        assert isinstance(store, LocalFallbackStore)
        assert store.backend == StorageBackendType.LOCAL
        assert store.storage_path == tmp_path / "tokens.json"
        assert "NOT the loss of this node" in caplog.text

    def test_injected_blob_store_selects_remote(self, tmp_path, key_identity, blob_store):
        config = DecryptorConfig(storage_dir=tmp_path)

        store = StorageFactory.create(config, key_identity, blob_store=blob_store)

        assert isinstance(store, RemoteStore)
        assert store.key_identity == key_identity
        assert not (tmp_path / "tokens.json").exists()

    def test_bucket_selects_s3(self, monkeypatch, key_identity, blob_store):
        """A configured bucket builds an S3 blob store from config values."""
        created = {}

        def fake_s3(**kwargs):
            created.update(kwargs)
            return blob_store

        monkeypatch.setattr(s3_module, "S3BlobStore", fake_s3)
        config = DecryptorConfig(
            s3_bucket="push-tokens",
            s3_region="ch-gva-2",
            s3_endpoint_url="https://sos-ch-gva-2.exo.io",
            s3_access_key="key",
            s3_secret_key="secret",
            storage_timeout_seconds=3,
        )

        store = StorageFactory.create(config, key_identity)

        assert isinstance(store, RemoteStore)
        assert created == {
            "bucket": "push-tokens",
            "region": "ch-gva-2",
            "endpoint_url": "https://sos-ch-gva-2.exo.io",
            "access_key": "key",
            "secret_key": "secret",
            "timeout_seconds": 3,
        }

    def test_partial_credentials_rejected(self, key_identity):
        config = DecryptorConfig(s3_bucket="push-tokens", s3_secret_key="secret")

        with pytest.raises(ValueError):
            StorageFactory.create(config, key_identity)

    def test_remote_requires_key_identity(self, tmp_path, blob_store):
        with pytest.raises(ValueError, match="key_identity"):
            StorageFactory.create(DecryptorConfig(storage_dir=tmp_path), "", blob_store=blob_store)
