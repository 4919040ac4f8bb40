"""FastAPI dependencies.

Handlers never reach for module-level state: the service context built at
startup lives on ``app.state.context`` and is read per request.
"""

from fastapi import Request

from token_relay.context import DecryptorContext, RelayContext
from token_relay.decryptor import Decryptor
from token_relay.relay import Relay


def get_decryptor_context(request: Request) -> DecryptorContext:
    return request.app.state.context


def get_decryptor(request: Request) -> Decryptor:
    """Get the Decryptor for the current app."""
    return get_decryptor_context(request).decryptor


def get_relay_context(request: Request) -> RelayContext:
    return request.app.state.context


def get_relay(request: Request) -> Relay:
    """Get the Relay for the current app."""
    return get_relay_context(request).relay
