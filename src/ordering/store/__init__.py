"""Order store factory.

Provides get_store() / set_store() so a hosted document store can replace the
in-process one without touching lifecycle or dispatch code.
"""

from ordering.store.memory import InMemoryOrderStore
from ordering.store.port import OrderStore, Subscription

_current_store: OrderStore | None = None


def get_store() -> OrderStore:
    global _current_store
    if _current_store is None:
        _current_store = InMemoryOrderStore()
    return _current_store


def set_store(store: OrderStore) -> None:
    """Override the active order store (useful for tests)."""
    global _current_store
    _current_store = store


def reset_store() -> None:
    global _current_store
    _current_store = None


__all__ = ["InMemoryOrderStore", "OrderStore", "Subscription", "get_store", "set_store", "reset_store"]
