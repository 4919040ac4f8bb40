"""Test fixtures module."""

from .fakes import (
    FakeDecryptorClient,
    FakeDeliveryProvider,
    InMemoryBlobStore,
)
from .samples import SAMPLE_TOKEN

__all__ = [
    "SAMPLE_TOKEN",
    "FakeDecryptorClient",
    "FakeDeliveryProvider",
    "InMemoryBlobStore",
]
