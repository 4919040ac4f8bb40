"""Contract tests for durable token storage backends.

Contract tests define the behavior that all implementations of a protocol
must satisfy. They are abstract test classes that are inherited by
concrete test classes for each backend implementation.

Usage:
    from tests.contract import DurableStoreContractTests

    class TestLocalStoreContract(DurableStoreContractTests):
        def create_storage(self, tmp_path):
            return LocalFallbackStore(tmp_path / "tokens.json")

Each subclass must implement the `create_storage` method to provide
the specific backend being tested.
"""

from tests.contract.durable_store_contract import DurableStoreContractTests

__all__ = [
    "DurableStoreContractTests",
]
