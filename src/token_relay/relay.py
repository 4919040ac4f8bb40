"""Untrusted hop: forwards envelopes and deals only in opaque identifiers.

The relay has no key material. It forwards a registration payload verbatim
to the decryptor, keeps the returned opaque identifier, and drops the
payload. Its index (in memory and on disk) holds identifiers and
registration times only.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import httpx

from token_relay.schemas.token_record import (
    is_valid_opaque_id,
    parse_timestamp,
    short_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class RelayError(Exception):
    """Base exception for relay failures."""

    pass


class DecryptorRejectedError(RelayError):
    """The decryptor refused the request (4xx). Not retryable as-is."""

    def __init__(self, reason: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code


class DecryptorTokenNotFound(RelayError):
    """The decryptor no longer knows this identifier."""

    pass


class DecryptorUnavailableError(RelayError):
    """The decryptor could not be reached or failed (5xx, timeout)."""

    def __init__(self, message: str, reason: str = "decryptor_unavailable"):
        super().__init__(message)
        self.reason = reason


class EmptyIndexError(RelayError):
    """Broadcast requested with no registered identifiers."""

    pass


class RelayIndex:
    """Thread-safe set of opaque identifiers with registration times.

    When ``path`` is given, the index is persisted as a JSON array of
    ``{"token_id", "registered_at"}`` objects, rewritten atomically.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._lock = threading.Lock()
        self._entries: Dict[str, datetime] = {}
        if self._path:
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RelayError(f"Failed to load relay index {self._path}: {e}") from e

        for item in data:
            try:
                token_id = item.get("token_id", "")
                if not is_valid_opaque_id(token_id):
                    raise ValueError("invalid token id")
                registered_at = parse_timestamp(item["registered_at"])
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed entry in {self._path}")
                continue
            self._entries[token_id] = registered_at
        logger.info(f"Loaded {len(self._entries)} token ids from {self._path}")

    def _write(self) -> None:
        """Persist the index atomically. Caller must hold the lock."""
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [
            {"token_id": token_id, "registered_at": registered_at.isoformat()}
            for token_id, registered_at in self._entries.items()
        ]
        tmp_file = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(self._path)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink()
            raise RelayError(f"Failed to write relay index: {e}") from e

    def add(self, token_id: str) -> None:
        with self._lock:
            previous = self._entries.get(token_id)
            self._entries[token_id] = utcnow()
            try:
                self._write()
            except RelayError:
                if previous is None:
                    del self._entries[token_id]
                else:
                    self._entries[token_id] = previous
                raise
        logger.info(f"Stored token id {short_id(token_id)} (total: {len(self)})")

    def remove(self, token_id: str) -> bool:
        with self._lock:
            registered_at = self._entries.pop(token_id, None)
            if registered_at is None:
                return False
            try:
                self._write()
            except RelayError:
                self._entries[token_id] = registered_at
                raise
        return True

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, token_id: str) -> bool:
        with self._lock:
            return token_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@runtime_checkable
class DecryptorClient(Protocol):
    """Protocol for calling the decryptor's registration and delivery endpoints."""

    def register(self, payload: str, platform: str) -> str:
        """Forward a payload; return the opaque identifier."""
        ...

    def notify(self, token_id: str, title: str, body: str) -> str:
        """Request delivery for one identifier; return the message id."""
        ...

    def describe(self) -> str:
        ...


class HttpDecryptorClient(DecryptorClient):
    """httpx client for the decryptor HTTP API.

    Example:
        >>> client = HttpDecryptorClient("http://decryptor:8080", timeout_seconds=10)
        >>> token_id = client.register(payload_b64, "android")
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Decryptor base URL.
            timeout_seconds: Bound on each request.
            client: Pre-built httpx client; requests use paths relative to its
                base_url (tests pass a FastAPI TestClient).
        """
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self._base_url, timeout=timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def describe(self) -> str:
        return self._base_url

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._client.post(path, json=body)
        except httpx.TimeoutException as e:
            raise DecryptorUnavailableError(f"Decryptor request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DecryptorUnavailableError(f"Decryptor request failed: {e}") from e

        if response.status_code == 200:
            try:
                return response.json()
            except ValueError as e:
                raise DecryptorUnavailableError(f"Decryptor returned invalid JSON: {e}") from e

        reason, message = _error_detail(response)
        if response.status_code == 404:
            raise DecryptorTokenNotFound(message)
        if 400 <= response.status_code < 500:
            raise DecryptorRejectedError(reason, message, response.status_code)
        raise DecryptorUnavailableError(
            f"Decryptor returned {response.status_code}: {message}", reason=reason
        )

    def register(self, payload: str, platform: str) -> str:
        data = self._post("/register", {"payload": payload, "platform": platform})
        token_id = data.get("token_id", "")
        if not data.get("success") or not is_valid_opaque_id(token_id):
            raise DecryptorUnavailableError("Decryptor returned a malformed registration response")
        return token_id

    def notify(self, token_id: str, title: str, body: str) -> str:
        data = self._post("/notify", {"token_id": token_id, "title": title, "body": body})
        return str(data.get("message_id", ""))


def _error_detail(response: httpx.Response) -> Tuple[str, str]:
    """Extract (reason, message) from an error body, tolerating non-JSON."""
    try:
        data = response.json()
    except ValueError:
        data = None
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        return (
            str(detail.get("reason", "decryptor_error")),
            str(detail.get("message", "")),
        )
    if isinstance(detail, str):
        return "decryptor_error", detail
    return "decryptor_error", response.text[:200]


@dataclass(frozen=True)
class BroadcastResult:
    """Aggregated outcome of a broadcast."""

    sent: int
    failed: int
    stale: int
    total: int


class Relay:
    """Request handlers for the untrusted hop.

    Example:
        >>> relay = Relay(HttpDecryptorClient("http://decryptor:8080"), RelayIndex())
        >>> token_id = relay.register(payload_b64, "android")
        >>> relay.broadcast("Hello", "World")
        BroadcastResult(sent=1, failed=0, stale=0, total=1)
    """

    def __init__(self, client: DecryptorClient, index: RelayIndex):
        self._client = client
        self._index = index

    @property
    def index(self) -> RelayIndex:
        return self._index

    @property
    def decryptor_url(self) -> str:
        return self._client.describe()

    def register(self, payload: str, platform: str) -> str:
        """Forward a payload to the decryptor; keep only the returned id.

        Raises:
            DecryptorRejectedError: If the decryptor refused the payload.
            DecryptorUnavailableError: If the decryptor failed or timed out.
        """
        token_id = self._client.register(payload, platform)
        self._index.add(token_id)
        return token_id

    def broadcast(self, title: str, body: str) -> BroadcastResult:
        """Request delivery to every indexed id; failures never abort the batch.

        Raises:
            EmptyIndexError: If no ids are registered.
        """
        token_ids = self._index.ids()
        if not token_ids:
            raise EmptyIndexError("No tokens registered")

        sent = failed = stale = 0
        for token_id in token_ids:
            try:
                self._client.notify(token_id, title, body)
                sent += 1
            except DecryptorTokenNotFound:
                try:
                    self._index.remove(token_id)
                except RelayError as e:
                    failed += 1
                    logger.warning(f"Failed to prune stale token id {short_id(token_id)}: {e}")
                    continue
                stale += 1
                logger.info(f"Pruned stale token id {short_id(token_id)}")
            except RelayError as e:
                failed += 1
                logger.warning(f"Failed to send to token {short_id(token_id)}: {e}")

        logger.info(
            f"Broadcast complete: sent={sent}, failed={failed}, stale={stale}, total={len(token_ids)}"
        )
        return BroadcastResult(sent=sent, failed=failed, stale=stale, total=len(token_ids))

    def count(self) -> int:
        return len(self._index)
