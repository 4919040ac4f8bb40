"""Opaque-token registry.

Turns a validated envelope into a routable handle. The registry owns
identifier generation and uniqueness; the DurableStore owns the records.
The registry never hands plaintext to a caller: ``resolve`` always returns
the stored ciphertext.
"""

import logging
from datetime import datetime
from typing import Callable

from cryptography.hazmat.primitives.asymmetric import rsa

from token_relay.crypto import HybridCipher, WrapPadding, validate_token
from token_relay.schemas.token_record import (
    TokenRecord,
    generate_opaque_id,
    is_valid_opaque_id,
    short_id,
    utcnow,
)
from token_relay.storage.interfaces import (
    DurableStore,
    NotFoundError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5


class TokenNotFoundError(NotFoundError):
    """Opaque identifier unknown or already evicted."""

    def __init__(self, opaque_id: str):
        self.opaque_id = opaque_id
        super().__init__(f"Token not found: {short_id(opaque_id)}")


class RegistryError(Exception):
    """Registry could not allocate a unique identifier."""

    pass


class TokenRegistry:
    """Maps opaque identifiers to stored envelopes.

    Example:
        >>> registry = TokenRegistry(store, private_key, key_identity)
        >>> token_id = registry.register(envelope_bytes, "android")
        >>> registry.resolve(token_id) == envelope_bytes
        True
    """

    def __init__(
        self,
        store: DurableStore,
        private_key: rsa.RSAPrivateKey,
        key_identity: str = "",
        validate_on_register: bool = True,
        wrap_padding: WrapPadding = WrapPadding.OAEP,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_opaque_id,
    ):
        """Initialize the registry.

        Args:
            store: Durable backend holding the records.
            private_key: Active private key, used only to validate envelopes.
            key_identity: Fingerprint stamped on each new record.
            validate_on_register: Decrypt once at registration to reject
                envelopes that will never decrypt.
            wrap_padding: RSA padding the deployment's clients use.
            clock: Source of the current time (UTC).
            id_factory: Source of new opaque identifiers.
        """
        self._store = store
        self._private_key = private_key
        self._key_identity = key_identity
        self._validate_on_register = validate_on_register
        self._wrap_padding = wrap_padding
        self._clock = clock
        self._id_factory = id_factory

    @property
    def store(self) -> DurableStore:
        return self._store

    def register(self, envelope: bytes, platform: str) -> str:
        """Validate and persist an envelope, returning its opaque identifier.

        The identifier is returned only after the store write has completed.

        Raises:
            EnvelopeError: If validation is enabled and the envelope does not
                decrypt to a plausible token.
            RegistryError: If no unused identifier could be generated.
            StorageUnavailableError: If the store write failed.
        """
        if self._validate_on_register:
            # Plaintext is wiped as soon as the length check is done
            with HybridCipher.revealed(envelope, self._private_key, self._wrap_padding) as token:
                validate_token(token)

        opaque_id = self._allocate_id()
        now = self._clock()
        record = TokenRecord(
            opaque_id=opaque_id,
            envelope=bytes(envelope),
            platform=platform,
            registered_at=now,
            last_used_at=now,
            key_identity=self._key_identity,
        )
        self._store.put(record)

        logger.info(f"Registered token {short_id(opaque_id)} (platform={platform or '-'})")
        return opaque_id

    def _allocate_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if self._store.get(candidate) is None:
                return candidate
            logger.warning(f"Opaque id collision on {short_id(candidate)}, retrying")
        raise RegistryError(
            f"Could not generate a unique token id after {MAX_ID_ATTEMPTS} attempts"
        )

    def resolve(self, opaque_id: str) -> bytes:
        """Return the stored envelope and refresh its last-used time.

        Raises:
            TokenNotFoundError: If the identifier is unknown or evicted.
            StorageUnavailableError: If the lookup itself failed.
        """
        record = self._lookup(opaque_id)

        try:
            self._store.touch_last_used(opaque_id, self._clock())
        except StorageUnavailableError as e:
            logger.warning(f"Failed to update last-used time for {short_id(opaque_id)}: {e}")

        return record.envelope

    def _lookup(self, opaque_id: str) -> TokenRecord:
        # Malformed ids never reach the store (they would become object keys)
        if not is_valid_opaque_id(opaque_id):
            raise TokenNotFoundError(opaque_id)
        record = self._store.get(opaque_id)
        if record is None:
            raise TokenNotFoundError(opaque_id)
        return record

    def remove(self, opaque_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        if not is_valid_opaque_id(opaque_id):
            return False
        removed = self._store.delete(opaque_id)
        if removed:
            logger.info(f"Removed token {short_id(opaque_id)}")
        return removed

    def count(self) -> int:
        return self._store.count()
