"""Hybrid encryption for push device tokens.

Each token is sealed on the client with a fresh AES-256-GCM key, and that
key is wrapped with the decryptor's RSA public key. The key
exchange cost is paid once per envelope; no key or nonce is ever reused.

Wire format (then base64 for transport):
    [nonce (12 bytes)] [wrapped_key_length (4 bytes, big-endian)]
    [wrapped_key (wrapped_key_length bytes)] [ciphertext + GCM tag (16 bytes)]

Where:
- nonce: AES-GCM nonce, random per envelope
- wrapped_key_length: must equal the RSA modulus size in bytes of the
  deployed key (256 for RSA-2048, 512 for RSA-4096)
- wrapped_key: RSA encryption of the 32-byte AES key, OAEP (SHA-256) by
  default or PKCS#1 v1.5 for legacy clients; one padding per deployment
- ciphertext: AES-GCM output with no associated data

Decryption writes plaintext into a caller-owned bytearray so it can be
zeroed once used. Python cannot erase copies made elsewhere, so the goal is
to keep the plaintext in exactly one mutable buffer for as short as possible.
"""

import base64
import binascii
import hashlib
import os
import secrets
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


# Constants
NONCE_SIZE = 12  # 96 bits (standard for GCM)
LENGTH_FIELD_SIZE = 4  # big-endian unsigned int
AES_KEY_SIZE = 32  # 256 bits
AUTH_TAG_SIZE = 16  # 128 bits (standard for GCM)
MIN_RSA_KEY_BITS = 2048
DEFAULT_RSA_KEY_BITS = 4096

MIN_WRAPPED_KEY_SIZE = MIN_RSA_KEY_BITS // 8  # 256 bytes
MIN_CIPHERTEXT_SIZE = 1
MIN_ENVELOPE_SIZE = (
    NONCE_SIZE + LENGTH_FIELD_SIZE + MIN_WRAPPED_KEY_SIZE + MIN_CIPHERTEXT_SIZE + AUTH_TAG_SIZE
)  # 289 bytes
MAX_ENVELOPE_SIZE = 7500

# Bounds on the base64 transport string
MIN_TRANSPORT_LENGTH = 100
MAX_TRANSPORT_LENGTH = 10000

# Bounds on the decrypted device token
MIN_TOKEN_LENGTH = 1
MAX_TOKEN_LENGTH = 2000

_AUTH_FAILED_MESSAGE = "Envelope authentication failed"


class CryptoError(Exception):
    """Base exception for cryptographic errors."""

    pass


class KeyLoadError(CryptoError):
    """Error loading or validating an RSA key."""

    pass


class EnvelopeError(CryptoError):
    """Base class for envelopes that cannot be turned into a token."""

    pass


class MalformedEnvelopeError(EnvelopeError):
    """The fixed envelope fields cannot be parsed (bad size, truncated, bad base64)."""

    pass


class KeySizeMismatchError(EnvelopeError):
    """The wrapped-key length field disagrees with the active private key."""

    pass


class AuthenticationFailedError(EnvelopeError):
    """Unwrapping or tag verification failed.

    Corruption and wrong-key attempts raise this same error with the same
    message so callers cannot be used as a decryption oracle.
    """

    def __init__(self, message: str = _AUTH_FAILED_MESSAGE):
        super().__init__(message)


class InvalidTokenError(EnvelopeError):
    """The envelope decrypted but the token it carries is out of bounds."""

    pass


class WrapPadding(str, Enum):
    """RSA padding used to wrap the AES key.

    A deployment accepts exactly one, so a wrong padding fails the same way
    as a wrong key.
    """

    OAEP = "oaep"
    PKCS1V15 = "pkcs1v15"


_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def _rsa_padding(wrap: WrapPadding) -> padding.AsymmetricPadding:
    if WrapPadding(wrap) is WrapPadding.PKCS1V15:
        return padding.PKCS1v15()
    return _OAEP


def wipe(buffer: Optional[bytearray]) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if buffer is None:
        return
    for i in range(len(buffer)):
        buffer[i] = 0


def expected_wrapped_key_size(key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey]) -> int:
    """Return the RSA output size in bytes for a key's modulus."""
    return (key.key_size + 7) // 8


def check_envelope_size(size: int) -> None:
    """Reject envelopes outside the plausible size range before decoding.

    Raises:
        MalformedEnvelopeError: If size is below MIN_ENVELOPE_SIZE or above
            MAX_ENVELOPE_SIZE.
    """
    if size < MIN_ENVELOPE_SIZE:
        raise MalformedEnvelopeError(
            f"Envelope too short: {size} bytes, minimum {MIN_ENVELOPE_SIZE} bytes required"
        )
    if size > MAX_ENVELOPE_SIZE:
        raise MalformedEnvelopeError(
            f"Envelope too long: {size} bytes, maximum {MAX_ENVELOPE_SIZE} bytes allowed"
        )


def check_transport_length(payload: str) -> None:
    """Reject base64 transport strings outside the accepted length range."""
    if len(payload) < MIN_TRANSPORT_LENGTH:
        raise MalformedEnvelopeError(
            f"Encrypted payload too short: {len(payload)} characters, "
            f"minimum {MIN_TRANSPORT_LENGTH}"
        )
    if len(payload) > MAX_TRANSPORT_LENGTH:
        raise MalformedEnvelopeError(
            f"Encrypted payload too long: {len(payload)} characters, "
            f"maximum {MAX_TRANSPORT_LENGTH}"
        )


@dataclass(frozen=True)
class EncryptedEnvelope:
    """Parsed view of the fixed-order envelope fields."""

    nonce: bytes
    wrapped_key: bytes
    ciphertext: bytes

    HEADER_SIZE = NONCE_SIZE + LENGTH_FIELD_SIZE

    def to_bytes(self) -> bytes:
        """Serialize fields in wire order."""
        return (
            self.nonce
            + struct.pack(">I", len(self.wrapped_key))
            + self.wrapped_key
            + self.ciphertext
        )

    def to_base64(self) -> str:
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, data: bytes, expected_wrapped_key_size: int) -> "EncryptedEnvelope":
        """Parse a raw envelope.

        The length field is compared to ``expected_wrapped_key_size`` before
        any slicing that depends on it.

        Raises:
            MalformedEnvelopeError: If the envelope is truncated.
            KeySizeMismatchError: If the length field does not match the key.
        """
        if len(data) < cls.HEADER_SIZE:
            raise MalformedEnvelopeError(
                f"Envelope too short for header: {len(data)} bytes"
            )

        nonce = data[:NONCE_SIZE]
        (wrapped_len,) = struct.unpack(">I", data[NONCE_SIZE : cls.HEADER_SIZE])

        if wrapped_len != expected_wrapped_key_size:
            raise KeySizeMismatchError(
                f"Invalid encrypted AES key size: {wrapped_len} bytes, "
                f"expected {expected_wrapped_key_size} bytes for the active key"
            )

        body_start = cls.HEADER_SIZE + wrapped_len
        if len(data) < body_start + MIN_CIPHERTEXT_SIZE + AUTH_TAG_SIZE:
            raise MalformedEnvelopeError(
                f"Envelope truncated: {len(data)} bytes, "
                f"need at least {body_start + MIN_CIPHERTEXT_SIZE + AUTH_TAG_SIZE}"
            )

        return cls(
            nonce=bytes(nonce),
            wrapped_key=bytes(data[cls.HEADER_SIZE : body_start]),
            ciphertext=bytes(data[body_start:]),
        )

    @classmethod
    def from_base64(cls, payload: str, expected_wrapped_key_size: int) -> "EncryptedEnvelope":
        return cls.from_bytes(decode_transport(payload), expected_wrapped_key_size)


def decode_transport(payload: str) -> bytes:
    """Decode a base64 transport string to raw envelope bytes.

    Raises:
        MalformedEnvelopeError: If the string is not valid base64.
    """
    try:
        return base64.b64decode(payload.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid base64 encoding: {e}")


class HybridCipher:
    """Encode and decode EncryptedEnvelopes.

    Stateless: keys are passed to each call. Safe to share between threads.

    Example:
        >>> private_key = generate_private_key(2048)
        >>> envelope = HybridCipher.encode(b"device-token", private_key.public_key())
        >>> with HybridCipher.revealed(envelope, private_key) as token:
        ...     assert bytes(token) == b"device-token"
    """

    @staticmethod
    def encode(
        plaintext: bytes,
        recipient_public_key: rsa.RSAPublicKey,
        wrap: WrapPadding = WrapPadding.OAEP,
    ) -> bytes:
        """Seal plaintext for the holder of the matching private key.

        Args:
            plaintext: Token bytes to encrypt.
            recipient_public_key: RSA public key of the decryptor.
            wrap: RSA padding for the AES key.

        Returns:
            Raw envelope bytes (base64-encode for transport).
        """
        key = AESGCM.generate_key(bit_length=256)
        nonce = secrets.token_bytes(NONCE_SIZE)

        ciphertext = AESGCM(key).encrypt(nonce, bytes(plaintext), None)
        wrapped_key = recipient_public_key.encrypt(key, _rsa_padding(wrap))

        return EncryptedEnvelope(
            nonce=nonce, wrapped_key=wrapped_key, ciphertext=ciphertext
        ).to_bytes()

    @staticmethod
    def decode(
        envelope: bytes,
        private_key: rsa.RSAPrivateKey,
        wrap: WrapPadding = WrapPadding.OAEP,
    ) -> bytearray:
        """Open an envelope into a new plaintext buffer.

        The caller owns the returned bytearray and must wipe() it when done;
        prefer revealed(), which does that automatically.

        Raises:
            MalformedEnvelopeError: Size out of bounds or truncated fields.
            KeySizeMismatchError: Length field disagrees with private_key.
            AuthenticationFailedError: Unwrap or GCM tag check failed.
        """
        check_envelope_size(len(envelope))
        parsed = EncryptedEnvelope.from_bytes(envelope, expected_wrapped_key_size(private_key))

        aes_key = bytearray(AES_KEY_SIZE)
        try:
            try:
                unwrapped = private_key.decrypt(parsed.wrapped_key, _rsa_padding(wrap))
            except ValueError:
                raise AuthenticationFailedError() from None

            if len(unwrapped) != AES_KEY_SIZE:
                del unwrapped
                raise AuthenticationFailedError()

            aes_key[:] = unwrapped
            del unwrapped

            return _gcm_open(aes_key, parsed.nonce, parsed.ciphertext)
        finally:
            wipe(aes_key)

    @staticmethod
    @contextmanager
    def revealed(
        envelope: bytes,
        private_key: rsa.RSAPrivateKey,
        wrap: WrapPadding = WrapPadding.OAEP,
    ) -> Iterator[bytearray]:
        """Context manager yielding plaintext, zeroed on every exit path."""
        plaintext = HybridCipher.decode(envelope, private_key, wrap)
        try:
            yield plaintext
        finally:
            wipe(plaintext)


def _gcm_open(key: bytearray, nonce: bytes, sealed: bytes) -> bytearray:
    """AES-GCM decrypt into a fresh bytearray; wipe and raise on tag failure."""
    ciphertext = sealed[:-AUTH_TAG_SIZE]
    tag = sealed[-AUTH_TAG_SIZE:]

    decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
    # update_into needs room for one extra block minus a byte
    out = bytearray(len(ciphertext) + algorithms.AES.block_size // 8 - 1)
    try:
        written = decryptor.update_into(ciphertext, out)
        decryptor.finalize()
    except InvalidTag:
        wipe(out)
        raise AuthenticationFailedError() from None
    except Exception:
        wipe(out)
        raise

    # Zero the unused tail, then shrink the same buffer in place
    for i in range(written, len(out)):
        out[i] = 0
    del out[written:]
    return out


def validate_token(token: bytearray) -> None:
    """Check a decrypted token is within accepted length bounds.

    Raises:
        InvalidTokenError: If the token is empty or too long.
    """
    if len(token) < MIN_TOKEN_LENGTH:
        raise InvalidTokenError("Decrypted token too short")
    if len(token) > MAX_TOKEN_LENGTH:
        raise InvalidTokenError(
            f"Decrypted token too long: {len(token)} bytes, maximum {MAX_TOKEN_LENGTH}"
        )


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------


def generate_private_key(bits: int = DEFAULT_RSA_KEY_BITS) -> rsa.RSAPrivateKey:
    """Generate an RSA private key for the decryptor."""
    if bits < MIN_RSA_KEY_BITS:
        raise KeyLoadError(f"RSA key must be at least {MIN_RSA_KEY_BITS} bits, got {bits}")
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def public_key_pem(key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey]) -> bytes:
    """Return the PEM SubjectPublicKeyInfo encoding of a key's public half."""
    public = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
    return public.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def compute_key_identity(key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey]) -> str:
    """Compute the KeyIdentity: SHA-256 hex digest of the public key PEM."""
    return hashlib.sha256(public_key_pem(key)).hexdigest()


def load_private_key(path: Path, password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Load an RSA private key from a PEM file.

    Raises:
        KeyLoadError: If the file is missing, unreadable, not RSA, or too small.
    """
    path = Path(path)
    if not path.exists():
        raise KeyLoadError(f"Private key file not found: {path}")

    try:
        key = serialization.load_pem_private_key(path.read_bytes(), password=password)
    except OSError as e:
        raise KeyLoadError(f"Failed to read private key file: {e}")
    except (ValueError, TypeError) as e:
        raise KeyLoadError(f"Invalid private key file {path}: {e}")

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyLoadError(f"Private key must be RSA, got {type(key).__name__}")
    if key.key_size < MIN_RSA_KEY_BITS:
        raise KeyLoadError(
            f"RSA key must be at least {MIN_RSA_KEY_BITS} bits, got {key.key_size}"
        )
    return key


def load_public_key(path: Path) -> rsa.RSAPublicKey:
    """Load an RSA public key from a PEM file.

    Raises:
        KeyLoadError: If the file is missing, unreadable, or not RSA.
    """
    path = Path(path)
    if not path.exists():
        raise KeyLoadError(f"Public key file not found: {path}")

    try:
        key = serialization.load_pem_public_key(path.read_bytes())
    except OSError as e:
        raise KeyLoadError(f"Failed to read public key file: {e}")
    except ValueError as e:
        raise KeyLoadError(f"Invalid public key file {path}: {e}")

    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyLoadError(f"Public key must be RSA, got {type(key).__name__}")
    return key


def write_keypair(
    directory: Path,
    bits: int = DEFAULT_RSA_KEY_BITS,
    private_name: str = "private_key.pem",
    public_name: str = "public_key.pem",
) -> Tuple[Path, Path]:
    """Generate a keypair and write both halves as PEM files.

    The private key file is created with mode 0600.

    Returns:
        Tuple of (private_key_path, public_key_path).

    Raises:
        FileExistsError: If the private key file already exists.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    private_path = directory / private_name
    public_path = directory / public_name
    if private_path.exists():
        raise FileExistsError(private_path)

    key = generate_private_key(bits)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )

    fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_pem)
    public_path.write_bytes(public_key_pem(key))

    return private_path, public_path
