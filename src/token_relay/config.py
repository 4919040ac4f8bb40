"""Configuration for the decryptor and relay services.

This module provides configuration models for both hops. Values come from
keyword arguments or from environment variables via ``from_env``; a ``.env``
file is loaded by ``token_relay.startup`` before either is read.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, field_validator

from token_relay.crypto import WrapPadding
from token_relay.storage.interfaces import StorageBackendType

ENV_PREFIX = "TOKEN_RELAY_"

DEFAULT_FCM_URL = "https://fcm.googleapis.com/fcm/send"


def _convert_path(v):
    """Convert string paths to Path objects."""
    if isinstance(v, str):
        return Path(v)
    return v


class DecryptorConfig(BaseModel):
    """Configuration for the trusted decryptor service.

    Attributes:
        private_key_path: PEM file holding the RSA private key
        storage_dir: Directory for the local fallback token file
        storage_filename: Name of the local fallback token file
        s3_bucket: Bucket name; selects the remote backend when set
        s3_endpoint_url: Endpoint for S3-compatible services
        s3_region: Region or zone
        s3_access_key: Access key ID
        s3_secret_key: Secret access key
        storage_timeout_seconds: Timeout for each storage call
        fcm_server_key: Push provider server key (delivery disabled if unset)
        fcm_url: Push provider send endpoint
        delivery_timeout_seconds: Timeout for each delivery call
        retention_days: Records unused for longer than this are evicted
        eviction_interval_hours: Time between eviction passes
        eviction_initial_delay_seconds: Delay before the first pass
        validate_on_register: Decrypt once at registration to reject garbage
        wrap_padding: RSA padding clients use for the AES key (oaep or
            pkcs1v15); exactly one is accepted per deployment

    Example:
        >>> config = DecryptorConfig(private_key_path=Path("keys/private_key.pem"))
        >>> config.storage_backend()
        <StorageBackendType.LOCAL: 'local'>
    """

    private_key_path: Path = Path("private_key.pem")
    storage_dir: Path = Path("data")
    storage_filename: str = "tokens.json"

    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    storage_timeout_seconds: float = 10.0

    fcm_server_key: Optional[str] = None
    fcm_url: str = DEFAULT_FCM_URL
    delivery_timeout_seconds: float = 10.0

    retention_days: float = 30.0
    eviction_interval_hours: float = 24.0
    eviction_initial_delay_seconds: float = 60.0

    validate_on_register: bool = True
    wrap_padding: WrapPadding = WrapPadding.OAEP

    model_config = {"extra": "forbid"}

    @field_validator("private_key_path", "storage_dir", mode="before")
    @classmethod
    def convert_paths(cls, v):
        return _convert_path(v)

    @field_validator("wrap_padding", mode="before")
    @classmethod
    def normalize_padding(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator(
        "storage_timeout_seconds",
        "delivery_timeout_seconds",
        "retention_days",
        "eviction_interval_hours",
    )
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("eviction_initial_delay_seconds")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @property
    def storage_path(self) -> Path:
        return self.storage_dir / self.storage_filename

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @property
    def eviction_interval(self) -> timedelta:
        return timedelta(hours=self.eviction_interval_hours)

    @property
    def eviction_initial_delay(self) -> timedelta:
        return timedelta(seconds=self.eviction_initial_delay_seconds)

    def storage_backend(self) -> StorageBackendType:
        """Remote when a bucket is configured, local fallback otherwise."""
        if self.s3_bucket:
            return StorageBackendType.REMOTE
        return StorageBackendType.LOCAL

    def validate_for_backend(self) -> None:
        """Validate that required options are set for the selected backend.

        Raises:
            ValueError: If credentials are only partially configured.
        """
        if self.storage_backend() == StorageBackendType.REMOTE:
            if bool(self.s3_access_key) != bool(self.s3_secret_key):
                raise ValueError(
                    "s3_access_key and s3_secret_key must be set together"
                )

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "DecryptorConfig":
        """Create config from environment variables.

        Environment variables:
            {prefix}PRIVATE_KEY_PATH, {prefix}STORAGE_DIR, {prefix}STORAGE_FILENAME,
            {prefix}S3_BUCKET, {prefix}S3_ENDPOINT_URL, {prefix}S3_REGION,
            {prefix}S3_ACCESS_KEY, {prefix}S3_SECRET_KEY,
            {prefix}STORAGE_TIMEOUT_SECONDS, {prefix}FCM_SERVER_KEY,
            {prefix}FCM_URL, {prefix}DELIVERY_TIMEOUT_SECONDS,
            {prefix}RETENTION_DAYS, {prefix}EVICTION_INTERVAL_HOURS,
            {prefix}EVICTION_INITIAL_DELAY_SECONDS, {prefix}VALIDATE_ON_REGISTER,
            {prefix}WRAP_PADDING

        Args:
            prefix: Environment variable prefix (default: TOKEN_RELAY_)

        Returns:
            DecryptorConfig with values from environment
        """
        return cls(**_collect_env(cls, prefix))


class RelayConfig(BaseModel):
    """Configuration for the untrusted relay service.

    Attributes:
        decryptor_url: Base URL of the decryptor service
        request_timeout_seconds: Timeout for each call to the decryptor
        index_path: Optional file persisting the opaque-id index
        public_key_path: Optional public key, only used to log its identity
    """

    decryptor_url: str = "http://localhost:8080"
    request_timeout_seconds: float = 10.0
    index_path: Optional[Path] = None
    public_key_path: Optional[Path] = None

    model_config = {"extra": "forbid"}

    @field_validator("index_path", "public_key_path", mode="before")
    @classmethod
    def convert_paths(cls, v):
        return _convert_path(v)

    @field_validator("request_timeout_seconds")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("decryptor_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> "RelayConfig":
        """Create config from environment variables.

        Environment variables:
            {prefix}DECRYPTOR_URL, {prefix}REQUEST_TIMEOUT_SECONDS,
            {prefix}INDEX_PATH, {prefix}PUBLIC_KEY_PATH
        """
        return cls(**_collect_env(cls, prefix))


def _collect_env(model: type, prefix: str) -> dict:
    """Read one env var per model field; pydantic coerces the strings."""
    kwargs = {}
    for name in model.model_fields:
        value = os.getenv(f"{prefix}{name.upper()}")
        if value:
            kwargs[name] = value
    return kwargs
