"""Schema for persisted token records.

A TokenRecord pairs an opaque identifier with the client's encrypted
envelope. The identifier doubles as a capability: whoever holds it can ask
the decryptor to deliver to the device, but it reveals nothing about the
token itself.

Persisted JSON layout (shared by every storage backend):
    {
        "opaque_id": "<64 hex chars>",
        "encrypted_data": "<base64 envelope>",
        "platform": "android",
        "registered_at": "2026-01-01T00:00:00+00:00",
        "last_used_at": "2026-01-01T00:00:00+00:00",
        "public_key_hash": "<key identity>"
    }
"""

import base64
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

# 32 random bytes = 256 bits = 64 hex characters
OPAQUE_ID_BYTES = 32
OPAQUE_ID_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def generate_opaque_id() -> str:
    """Generate a fresh 256-bit opaque identifier as lowercase hex."""
    return secrets.token_hex(OPAQUE_ID_BYTES)


def is_valid_opaque_id(value: str) -> bool:
    """Check an identifier has the exact opaque-id shape."""
    return isinstance(value, str) and bool(OPAQUE_ID_PATTERN.match(value))


def short_id(opaque_id: str) -> str:
    """Shorten an identifier for log lines: first 8 and last 8 characters."""
    if len(opaque_id) <= 16:
        return opaque_id
    return f"{opaque_id[:8]}...{opaque_id[-8:]}"


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class TokenRecord:
    """A registered device token, stored as ciphertext only.

    Attributes:
        opaque_id: Random identifier, storage key and capability token
        envelope: Raw EncryptedEnvelope bytes, stored verbatim
        platform: Free-form client-supplied platform tag
        registered_at: When the record was created
        last_used_at: Refreshed on each successful delivery lookup
        key_identity: Fingerprint of the public key the envelope targets
    """

    opaque_id: str
    envelope: bytes
    platform: str = ""
    registered_at: datetime = field(default_factory=utcnow)
    last_used_at: datetime = field(default_factory=utcnow)
    key_identity: str = ""

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "opaque_id": self.opaque_id,
            "encrypted_data": base64.b64encode(self.envelope).decode("ascii"),
            "platform": self.platform,
            "registered_at": self.registered_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat(),
            "public_key_hash": self.key_identity,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "TokenRecord":
        """Create from dictionary.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field cannot be decoded.
        """
        return cls(
            opaque_id=data["opaque_id"],
            envelope=base64.b64decode(data["encrypted_data"]),
            platform=data.get("platform", ""),
            registered_at=parse_timestamp(data["registered_at"]),
            last_used_at=parse_timestamp(data["last_used_at"]),
            key_identity=data.get("public_key_hash", ""),
        )
