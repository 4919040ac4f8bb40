"""Relay endpoints. Payloads pass through; only opaque ids are kept."""

import logging

from fastapi import APIRouter, Depends

from token_relay.api.dependencies import get_relay
from token_relay.api.errors import (
    DECRYPTOR_UNAVAILABLE,
    NO_TOKENS,
    STORAGE_UNAVAILABLE,
    api_error,
)
from token_relay.api.models import (
    BroadcastRequest,
    BroadcastResponse,
    RegisterRequest,
    RegisterResponse,
    RelayStatus,
)
from token_relay.relay import (
    DecryptorRejectedError,
    DecryptorTokenNotFound,
    DecryptorUnavailableError,
    EmptyIndexError,
    Relay,
    RelayError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


@router.post("/register", response_model=RegisterResponse)
def register_token(
    request: RegisterRequest,
    relay: Relay = Depends(get_relay),
) -> RegisterResponse:
    """Forward an encrypted token to the decryptor and keep only its id."""
    try:
        token_id = relay.register(request.payload, request.platform)
    except DecryptorRejectedError as e:
        raise api_error(e.status_code, e.reason, str(e))
    except (DecryptorUnavailableError, DecryptorTokenNotFound) as e:
        logger.error(f"Failed to register token with decryptor: {e}")
        raise api_error(502, DECRYPTOR_UNAVAILABLE, "Failed to register token with decryptor")
    except RelayError as e:
        logger.error(f"Failed to record token id: {e}")
        raise api_error(503, STORAGE_UNAVAILABLE, "Failed to record token id")

    return RegisterResponse(token_id=token_id, platform=request.platform)


@router.post("/broadcast", response_model=BroadcastResponse)
def broadcast(
    request: BroadcastRequest,
    relay: Relay = Depends(get_relay),
) -> BroadcastResponse:
    """Send a notification to every registered id via the decryptor."""
    try:
        result = relay.broadcast(request.title, request.body)
    except EmptyIndexError as e:
        raise api_error(400, NO_TOKENS, str(e))

    return BroadcastResponse(
        success=result.failed == 0,
        sent_count=result.sent,
        error_count=result.failed,
        stale_count=result.stale,
        total_tokens=result.total,
    )


@router.get("/status", response_model=RelayStatus)
def relay_status(relay: Relay = Depends(get_relay)) -> RelayStatus:
    return RelayStatus(registered_tokens=relay.count(), decryptor_url=relay.decryptor_url)
