"""HTTP surface for the decryptor and relay services."""

from token_relay.api.main import create_decryptor_app, create_relay_app

__all__ = ["create_decryptor_app", "create_relay_app"]
