"""FastAPI applications for the two hops.

The decryptor (trusted hop) and the relay (untrusted hop) are separate apps
built by factories from an explicit context. Run them with uvicorn via
``token-relay serve decryptor`` / ``token-relay serve relay``, or use the
``*_from_env`` factories directly:

    uvicorn --factory token_relay.api.main:decryptor_app_from_env
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from token_relay import __version__
from token_relay.api.errors import validation_error_handler
from token_relay.api.routers import decryptor as decryptor_router
from token_relay.api.routers import relay as relay_router
from token_relay.api.routers import system as system_router
from token_relay.config import DecryptorConfig, RelayConfig
from token_relay.context import (
    DecryptorContext,
    RelayContext,
    build_decryptor_context,
    build_relay_context,
)
from token_relay.startup import ensure_initialized

logger = logging.getLogger(__name__)


def create_decryptor_app(context: DecryptorContext, start_evictor: bool = True) -> FastAPI:
    """Build the trusted-hop app.

    Args:
        context: Wired decryptor context.
        start_evictor: Run the background evictor for the app's lifetime.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_evictor:
            context.evictor.start()
        logger.info(
            f"Decryptor ready: {context.store.describe()}, "
            f"delivery configured: {context.provider.configured}"
        )
        try:
            yield
        finally:
            if start_evictor:
                context.evictor.stop()

    app = FastAPI(
        title="Token Relay Decryptor",
        description="Trusted hop: stores encrypted push tokens and decrypts them just in time",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(system_router.router)
    app.include_router(decryptor_router.router)
    return app


def create_relay_app(context: RelayContext) -> FastAPI:
    """Build the untrusted-hop app."""
    app = FastAPI(
        title="Token Relay",
        description="Untrusted hop: forwards encrypted push tokens, keeps only opaque ids",
        version=__version__,
    )
    app.state.context = context
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(system_router.router)
    app.include_router(relay_router.router)
    return app


def decryptor_app_from_env() -> FastAPI:
    """uvicorn factory: configure the decryptor from the environment."""
    ensure_initialized()
    return create_decryptor_app(build_decryptor_context(DecryptorConfig.from_env()))


def relay_app_from_env() -> FastAPI:
    """uvicorn factory: configure the relay from the environment."""
    ensure_initialized()
    return create_relay_app(build_relay_context(RelayConfig.from_env()))
