"""Data structures shared by the registry, storage backends and API."""

from token_relay.schemas.token_record import (
    OPAQUE_ID_BYTES,
    OPAQUE_ID_PATTERN,
    TokenRecord,
    generate_opaque_id,
    is_valid_opaque_id,
    short_id,
    utcnow,
)

__all__ = [
    "OPAQUE_ID_BYTES",
    "OPAQUE_ID_PATTERN",
    "TokenRecord",
    "generate_opaque_id",
    "is_valid_opaque_id",
    "short_id",
    "utcnow",
]
