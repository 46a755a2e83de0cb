"""
Communication Package

Async persistence boundary between the configurator and the quote store.

Modules:
    store_base: Abstract store interface and errors
    memory_store: In-memory store used by the CLI and tests

Example usage:
    from chassis_configurator.communication import InMemoryStore

    store = InMemoryStore.from_json_file("catalog.json")
    record = await store.get_chassis("ltx")
"""

from .store_base import QuoteStore, StoreError, RecordNotFoundError
from .memory_store import InMemoryStore

__all__ = [
    "QuoteStore",
    "StoreError",
    "RecordNotFoundError",
    "InMemoryStore",
]
