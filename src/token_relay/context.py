"""Explicit service contexts built once at startup.

Each hop gets one context object holding everything its handlers need. The
FastAPI apps keep it on ``app.state``; tests build contexts directly with
fake stores and providers. Nothing here is a module-level singleton.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from token_relay.config import DecryptorConfig, RelayConfig
from token_relay.crypto import compute_key_identity, load_private_key, load_public_key
from token_relay.decryptor import Decryptor
from token_relay.delivery import DeliveryProvider, build_delivery_provider
from token_relay.evictor import Evictor
from token_relay.registry import TokenRegistry
from token_relay.relay import DecryptorClient, HttpDecryptorClient, Relay, RelayIndex
from token_relay.storage import BlobStore, DurableStore, StorageFactory

logger = logging.getLogger(__name__)


@dataclass
class DecryptorContext:
    """Everything the trusted hop needs, wired together."""

    config: DecryptorConfig
    private_key: rsa.RSAPrivateKey
    key_identity: str
    store: DurableStore
    registry: TokenRegistry
    provider: DeliveryProvider
    decryptor: Decryptor
    evictor: Evictor


@dataclass
class RelayContext:
    """Everything the untrusted hop needs. Holds no key material."""

    config: RelayConfig
    relay: Relay


def build_decryptor_context(
    config: DecryptorConfig,
    private_key: Optional[rsa.RSAPrivateKey] = None,
    store: Optional[DurableStore] = None,
    blob_store: Optional[BlobStore] = None,
    provider: Optional[DeliveryProvider] = None,
) -> DecryptorContext:
    """Load the key, select the store and wire the decryptor.

    Args:
        config: Decryptor configuration.
        private_key: Pre-loaded key (otherwise read from config.private_key_path).
        store: Pre-built durable store (skips backend selection).
        blob_store: Remote blob backend passed to the storage factory.
        provider: Delivery provider (otherwise built from config).

    Raises:
        KeyLoadError: If the private key cannot be loaded.
        StorageUnavailableError: If the store cannot be opened.
    """
    if private_key is None:
        private_key = load_private_key(config.private_key_path)
    key_identity = compute_key_identity(private_key)
    logger.info(f"Active key identity: {key_identity[:16]}... ({private_key.key_size} bits)")

    if store is None:
        store = StorageFactory.create(config, key_identity, blob_store=blob_store)
    if provider is None:
        provider = build_delivery_provider(
            config.fcm_server_key,
            url=config.fcm_url,
            timeout_seconds=config.delivery_timeout_seconds,
        )

    registry = TokenRegistry(
        store,
        private_key,
        key_identity=key_identity,
        validate_on_register=config.validate_on_register,
        wrap_padding=config.wrap_padding,
    )
    decryptor = Decryptor(
        registry,
        private_key,
        provider,
        key_identity=key_identity,
        wrap_padding=config.wrap_padding,
    )
    evictor = Evictor(
        store,
        retention=config.retention,
        interval=config.eviction_interval,
        initial_delay=config.eviction_initial_delay,
    )
    return DecryptorContext(
        config=config,
        private_key=private_key,
        key_identity=key_identity,
        store=store,
        registry=registry,
        provider=provider,
        decryptor=decryptor,
        evictor=evictor,
    )


def build_relay_context(
    config: RelayConfig,
    client: Optional[DecryptorClient] = None,
    http_client: Optional[httpx.Client] = None,
) -> RelayContext:
    """Wire the relay to its decryptor client and index.

    Args:
        config: Relay configuration.
        client: Pre-built decryptor client.
        http_client: httpx client for the default HttpDecryptorClient.
    """
    if client is None:
        client = HttpDecryptorClient(
            config.decryptor_url,
            timeout_seconds=config.request_timeout_seconds,
            client=http_client,
        )

    if config.public_key_path:
        public_key = load_public_key(config.public_key_path)
        logger.info(f"Decryptor key identity: {compute_key_identity(public_key)}")

    index = RelayIndex(config.index_path)
    if config.index_path is None:
        logger.warning("Relay index is in memory only; registered ids are lost on restart")

    return RelayContext(config=config, relay=Relay(client, index))
