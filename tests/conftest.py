"""
Pytest fixtures and configuration for token_relay tests.
Provides RSA keys, envelope builders and fake collaborators.
"""

import base64

import pytest

from token_relay.crypto import HybridCipher, compute_key_identity, generate_private_key
from tests.fixtures.fakes import FakeDeliveryProvider, InMemoryBlobStore
from tests.fixtures.samples import SAMPLE_TOKEN


@pytest.fixture(scope="session")
def rsa_key():
    """2048-bit key shared across the session (generation is slow)."""
    return generate_private_key(2048)


@pytest.fixture(scope="session")
def rsa_key_4096():
    """4096-bit key, the default deployed size."""
    return generate_private_key(4096)


@pytest.fixture(scope="session")
def other_rsa_key():
    """Unrelated 2048-bit key for wrong-key tests."""
    return generate_private_key(2048)


@pytest.fixture
def key_identity(rsa_key):
    return compute_key_identity(rsa_key)


@pytest.fixture
def make_envelope(rsa_key):
    """Build raw envelope bytes for the session key."""

    def _make(token: bytes = SAMPLE_TOKEN, key=None) -> bytes:
        target = key or rsa_key
        return HybridCipher.encode(token, target.public_key())

    return _make


@pytest.fixture
def make_payload(make_envelope):
    """Build a base64 transport payload for the session key."""

    def _make(token: bytes = SAMPLE_TOKEN, key=None) -> str:
        return base64.b64encode(make_envelope(token, key)).decode("ascii")

    return _make


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def provider():
    return FakeDeliveryProvider()
