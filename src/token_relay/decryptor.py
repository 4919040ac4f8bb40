"""Trusted hop: the only component that ever produces plaintext tokens.

The decryptor owns the private key. Plaintext exists only inside
``handle_deliver``, in a single ``bytearray`` that is zeroed on every exit
path, whether the provider call succeeds, fails or times out.
"""

import logging
from dataclasses import dataclass
from typing import Dict

from cryptography.hazmat.primitives.asymmetric import rsa

from token_relay.crypto import (
    EnvelopeError,
    HybridCipher,
    WrapPadding,
    check_transport_length,
    decode_transport,
    validate_token,
    wipe,
)
from token_relay.delivery import DeliveryProvider, DeliveryProviderError
from token_relay.registry import TokenRegistry
from token_relay.schemas.token_record import short_id

logger = logging.getLogger(__name__)


class DecryptorError(Exception):
    """Base exception for decryptor request failures."""

    pass


class InvalidEnvelopeError(DecryptorError):
    """Registration payload is not a decryptable envelope. Never retried."""

    pass


class DecryptionFailedError(DecryptorError):
    """A stored envelope no longer decrypts under the active key."""

    pass


class DeliveryFailedError(DecryptorError):
    """The push provider failed; the client may retry with the same id."""

    def __init__(self, message: str, provider_error: DeliveryProviderError):
        super().__init__(message)
        self.provider_error = provider_error


@dataclass(frozen=True)
class DeliveryReceipt:
    """Result of a successful delivery."""

    token_id: str
    message_id: str


class Decryptor:
    """Request handlers for the trusted hop.

    Example:
        >>> decryptor = Decryptor(registry, private_key, provider, key_identity)
        >>> token_id = decryptor.handle_register(payload_b64, "android")
        >>> receipt = decryptor.handle_deliver(token_id, "Hello", "World")
    """

    def __init__(
        self,
        registry: TokenRegistry,
        private_key: rsa.RSAPrivateKey,
        provider: DeliveryProvider,
        key_identity: str = "",
        wrap_padding: WrapPadding = WrapPadding.OAEP,
    ):
        self._registry = registry
        self._private_key = private_key
        self._wrap_padding = wrap_padding
        self._provider = provider
        self._key_identity = key_identity

    @property
    def registry(self) -> TokenRegistry:
        return self._registry

    @property
    def key_identity(self) -> str:
        return self._key_identity

    def handle_register(self, payload: str, platform: str) -> str:
        """Register a base64 envelope and return its opaque identifier.

        Raises:
            InvalidEnvelopeError: If the payload fails any envelope check.
            RegistryError: If no unique identifier could be allocated.
            StorageUnavailableError: If the record could not be persisted.
        """
        try:
            check_transport_length(payload)
            envelope = decode_transport(payload)
            return self._registry.register(envelope, platform)
        except EnvelopeError as e:
            logger.warning(f"Rejected registration: {type(e).__name__}: {e}")
            raise InvalidEnvelopeError(str(e)) from e

    def handle_deliver(self, opaque_id: str, title: str, body: str) -> DeliveryReceipt:
        """Decrypt a stored envelope and hand the token to the provider.

        Raises:
            TokenNotFoundError: If the identifier is unknown or evicted.
            DecryptionFailedError: If the stored envelope does not decrypt.
            DeliveryFailedError: If the provider rejected the send.
            StorageUnavailableError: If the lookup failed.
        """
        envelope = self._registry.resolve(opaque_id)

        try:
            token = HybridCipher.decode(envelope, self._private_key, self._wrap_padding)
        except EnvelopeError as e:
            logger.error(f"Stored envelope for {short_id(opaque_id)} failed to decrypt: {e}")
            raise DecryptionFailedError(
                f"Stored envelope for token {short_id(opaque_id)} could not be decrypted"
            ) from e

        try:
            validate_token(token)
            message_id = self._provider.send(token, title, body)
        except EnvelopeError as e:
            raise DecryptionFailedError(str(e)) from e
        except DeliveryProviderError as e:
            logger.warning(f"Delivery to {short_id(opaque_id)} failed: {e}")
            raise DeliveryFailedError(f"Delivery failed: {e}", e) from e
        finally:
            wipe(token)

        logger.info(f"Delivered notification to {short_id(opaque_id)}")
        return DeliveryReceipt(token_id=opaque_id, message_id=message_id)

    def delete(self, opaque_id: str) -> bool:
        return self._registry.remove(opaque_id)

    def status(self) -> Dict:
        store = self._registry.store
        return {
            "registered_tokens": store.count(),
            "storage_backend": store.backend.value,
            "storage_description": store.describe(),
            "key_identity": self._key_identity,
            "delivery_configured": self._provider.configured,
        }
