"""Decryptor endpoints: registration, per-token delivery, admin delete, status."""

import logging

from fastapi import APIRouter, Depends

from token_relay.api.dependencies import get_decryptor
from token_relay.api.errors import (
    DECRYPTION_FAILED,
    DELIVERY_FAILED,
    INVALID_ENVELOPE,
    REGISTRY_ERROR,
    STORAGE_UNAVAILABLE,
    TOKEN_NOT_FOUND,
    api_error,
)
from token_relay.api.models import (
    DecryptorStatus,
    DeleteResponse,
    NotifyRequest,
    NotifyResponse,
    RegisterRequest,
    RegisterResponse,
)
from token_relay.decryptor import (
    DecryptionFailedError,
    Decryptor,
    DeliveryFailedError,
    InvalidEnvelopeError,
)
from token_relay.registry import RegistryError, TokenNotFoundError
from token_relay.storage.interfaces import StorageUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["decryptor"])


@router.post("/register", response_model=RegisterResponse)
def register_token(
    request: RegisterRequest,
    decryptor: Decryptor = Depends(get_decryptor),
) -> RegisterResponse:
    """Validate an encrypted token and store it under a new opaque id.

    The id is only returned once the record has been durably written.
    """
    try:
        token_id = decryptor.handle_register(request.payload, request.platform)
    except InvalidEnvelopeError as e:
        raise api_error(400, INVALID_ENVELOPE, str(e))
    except StorageUnavailableError as e:
        logger.error(f"Registration failed, storage unavailable: {e}")
        raise api_error(503, STORAGE_UNAVAILABLE, "Token storage is unavailable")
    except RegistryError as e:
        logger.error(f"Registration failed: {e}")
        raise api_error(500, REGISTRY_ERROR, str(e))

    return RegisterResponse(token_id=token_id, platform=request.platform)


@router.post("/notify", response_model=NotifyResponse)
def notify_token(
    request: NotifyRequest,
    decryptor: Decryptor = Depends(get_decryptor),
) -> NotifyResponse:
    """Decrypt one stored token just in time and send a notification to it."""
    try:
        receipt = decryptor.handle_deliver(request.token_id, request.title, request.body)
    except TokenNotFoundError as e:
        raise api_error(404, TOKEN_NOT_FOUND, str(e))
    except DecryptionFailedError as e:
        raise api_error(422, DECRYPTION_FAILED, str(e))
    except DeliveryFailedError as e:
        raise api_error(502, DELIVERY_FAILED, str(e))
    except StorageUnavailableError as e:
        logger.error(f"Delivery lookup failed, storage unavailable: {e}")
        raise api_error(503, STORAGE_UNAVAILABLE, "Token storage is unavailable")

    return NotifyResponse(message_id=receipt.message_id)


@router.delete("/tokens/{token_id}", response_model=DeleteResponse)
def delete_token(
    token_id: str,
    decryptor: Decryptor = Depends(get_decryptor),
) -> DeleteResponse:
    """Remove a stored token (administrative delete)."""
    try:
        removed = decryptor.delete(token_id)
    except StorageUnavailableError as e:
        logger.error(f"Delete failed, storage unavailable: {e}")
        raise api_error(503, STORAGE_UNAVAILABLE, "Token storage is unavailable")

    if not removed:
        raise api_error(404, TOKEN_NOT_FOUND, "Token not found")
    return DeleteResponse()


@router.get("/status", response_model=DecryptorStatus)
def decryptor_status(decryptor: Decryptor = Depends(get_decryptor)) -> DecryptorStatus:
    """Record count and storage backend description."""
    try:
        return DecryptorStatus(**decryptor.status())
    except StorageUnavailableError as e:
        raise api_error(503, STORAGE_UNAVAILABLE, str(e))
