"""Push delivery providers.

The decryptor hands each provider the plaintext token as a ``bytearray``
that it zeroes as soon as ``send`` returns. Providers must not keep a
reference to it.

Providers:
- FcmDeliveryProvider: Firebase Cloud Messaging HTTP endpoint, server key auth
- UnconfiguredDeliveryProvider: used when no server key is set; every send fails
"""

import json
import logging
import re
from typing import Optional, Protocol, runtime_checkable

import httpx

from token_relay.crypto import wipe

logger = logging.getLogger(__name__)

# FCM registration tokens are URL-safe base64 plus ':'; anything else could
# break out of the JSON string the token is spliced into
_FCM_TOKEN_CHARSET = re.compile(rb"^[A-Za-z0-9_\-:.]+$")

# Provider error codes meaning the device token itself is dead
STALE_TOKEN_ERRORS = frozenset({"NotRegistered", "InvalidRegistration"})


class DeliveryProviderError(Exception):
    """The push provider rejected or failed a send."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

    @property
    def token_is_stale(self) -> bool:
        return self.code in STALE_TOKEN_ERRORS


@runtime_checkable
class DeliveryProvider(Protocol):
    """Protocol for push delivery backends."""

    def send(self, token: bytearray, title: str, body: str) -> str:
        """Deliver a notification to one device.

        Args:
            token: Plaintext device token; zeroed by the caller afterwards.
            title: Notification title.
            body: Notification body.

        Returns:
            Provider message identifier.

        Raises:
            DeliveryProviderError: If the provider did not accept the message.
        """
        ...

    @property
    def configured(self) -> bool:
        ...


class UnconfiguredDeliveryProvider(DeliveryProvider):
    """Stand-in used when no provider credentials are configured."""

    def send(self, token: bytearray, title: str, body: str) -> str:
        raise DeliveryProviderError("Push provider server key not configured")

    @property
    def configured(self) -> bool:
        return False


class FcmDeliveryProvider(DeliveryProvider):
    """Firebase Cloud Messaging sender.

    Example:
        >>> provider = FcmDeliveryProvider(server_key="AAAA...")
        >>> message_id = provider.send(token_buffer, "Hello", "World")
    """

    FCM_URL = "https://fcm.googleapis.com/fcm/send"

    def __init__(
        self,
        server_key: str,
        url: str = FCM_URL,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the provider.

        Args:
            server_key: FCM server key.
            url: Send endpoint.
            timeout_seconds: Bound on each send request.
            client: Pre-built httpx client (tests inject a MockTransport).
        """
        if not server_key:
            raise ValueError("server_key is required")
        self._server_key = server_key
        self._url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return True

    def close(self) -> None:
        self._client.close()

    def _build_body(self, token: bytearray, title: str, body: str) -> bytearray:
        if not _FCM_TOKEN_CHARSET.match(token):
            raise DeliveryProviderError(
                "Device token contains characters not valid for FCM",
                code="InvalidRegistration",
            )
        notification = json.dumps({"title": title, "body": body})
        message = bytearray(b'{"to": "')
        message += token
        message += b'", "notification": '
        message += notification.encode("utf-8")
        message += b"}"
        return message

    def send(self, token: bytearray, title: str, body: str) -> str:
        message = self._build_body(token, title, body)
        try:
            response = self._client.post(
                self._url,
                content=bytes(message),
                headers={
                    "Authorization": f"key={self._server_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            raise DeliveryProviderError(f"FCM request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DeliveryProviderError(f"FCM request failed: {e}") from e
        finally:
            wipe(message)

        if response.status_code != 200:
            raise DeliveryProviderError(
                f"FCM request failed with status {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DeliveryProviderError(f"FCM returned invalid JSON: {e}") from e

        results = data.get("results") or [{}]
        result = results[0]
        if data.get("success") == 1 and result.get("message_id"):
            return str(result["message_id"])

        error = result.get("error", "Unknown error")
        raise DeliveryProviderError(f"FCM rejected message: {error}", code=error)


def build_delivery_provider(
    server_key: Optional[str],
    url: str = FcmDeliveryProvider.FCM_URL,
    timeout_seconds: float = 10.0,
) -> DeliveryProvider:
    """Return an FCM provider, or the unconfigured stand-in if no key is set."""
    if not server_key:
        logger.warning(
            "Push provider server key not configured; deliveries will fail. "
            "Set TOKEN_RELAY_FCM_SERVER_KEY."
        )
        return UnconfiguredDeliveryProvider()
    return FcmDeliveryProvider(server_key, url=url, timeout_seconds=timeout_seconds)
