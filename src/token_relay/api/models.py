"""Pydantic request/response models for both HTTP APIs."""

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Registration body, identical for relay and decryptor."""

    payload: str = Field(..., min_length=1, description="Base64 EncryptedEnvelope")
    platform: str = Field("", max_length=64)


class RegisterResponse(BaseModel):
    success: bool = True
    token_id: str
    platform: str


class NotifyRequest(BaseModel):
    """Per-identifier delivery request (relay to decryptor)."""

    token_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    body: str = ""


class NotifyResponse(BaseModel):
    success: bool = True
    message_id: str


class DeleteResponse(BaseModel):
    success: bool = True


class BroadcastRequest(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = ""


class BroadcastResponse(BaseModel):
    success: bool
    sent_count: int
    error_count: int
    stale_count: int
    total_tokens: int


class DecryptorStatus(BaseModel):
    """Observational status of the trusted hop."""

    registered_tokens: int
    storage_backend: str
    storage_description: str
    key_identity: str
    delivery_configured: bool


class RelayStatus(BaseModel):
    registered_tokens: int
    decryptor_url: str


class ErrorDetail(BaseModel):
    """Body of every error response, under the ``detail`` key."""

    success: bool = False
    reason: str
    message: str
