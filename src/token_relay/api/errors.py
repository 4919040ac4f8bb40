"""Error responses with machine-readable reason codes.

Every error body has the shape
``{"detail": {"success": false, "reason": <code>, "message": <text>}}``.
"""

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from token_relay.api.models import ErrorDetail

INVALID_ENVELOPE = "invalid_envelope"
INVALID_REQUEST = "invalid_request"
TOKEN_NOT_FOUND = "token_not_found"
DECRYPTION_FAILED = "decryption_failed"
STORAGE_UNAVAILABLE = "storage_unavailable"
DELIVERY_FAILED = "delivery_failed"
DECRYPTOR_UNAVAILABLE = "decryptor_unavailable"
NO_TOKENS = "no_tokens"
REGISTRY_ERROR = "registry_error"


def api_error(status_code: int, reason: str, message: str) -> HTTPException:
    """Build an HTTPException carrying an ErrorDetail body."""
    detail = ErrorDetail(reason=reason, message=message)
    return HTTPException(
        status_code=status_code,
        detail=detail.model_dump(),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 invalid_request."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "invalid request"
    detail = ErrorDetail(reason=INVALID_REQUEST, message=message)
    return JSONResponse(
        status_code=400,
        content={"detail": detail.model_dump()},
    )
