"""Order store abstraction: pluggable persistence backend.

The backend is picked by the ``ORDER_STORE_ADAPTER`` environment variable:

- ``document`` (default): Protean repositories under a Unit of Work
- ``relational``: SQLAlchemy at ``SETTLEMENT_DATABASE_URI``

``SETTLEMENT_STORE_TIMEOUT`` is the per-operation time budget in seconds
that services apply when the caller gives none.
"""

import os

from settlement.store.port import NO_DEADLINE, Deadline, OrderStore

DEFAULT_DATABASE_URI = "sqlite:///settlement.db"
DEFAULT_TIMEOUT = 10.0

_store_instance: OrderStore | None = None


def get_store() -> OrderStore:
    """Return the configured order store (singleton)."""
    global _store_instance
    if _store_instance is None:
        adapter = os.environ.get("ORDER_STORE_ADAPTER", "document")
        if adapter == "document":
            from settlement.store.document import DocumentOrderStore

            _store_instance = DocumentOrderStore()
        elif adapter == "relational":
            from settlement.store.relational import RelationalOrderStore

            store = RelationalOrderStore.from_url(os.environ.get("SETTLEMENT_DATABASE_URI", DEFAULT_DATABASE_URI))
            store.create_schema()
            _store_instance = store
        else:
            raise ValueError(f"Unknown order store adapter: {adapter}")
    return _store_instance


def set_store(store: OrderStore) -> None:
    """Override the active order store (useful for tests)."""
    global _store_instance
    _store_instance = store


def reset_store() -> None:
    """Reset the store singleton (useful for testing)."""
    global _store_instance
    _store_instance = None


def default_timeout() -> float | None:
    """Seconds allowed per store operation; ``0`` disables the budget."""
    value = float(os.environ.get("SETTLEMENT_STORE_TIMEOUT", DEFAULT_TIMEOUT))
    return value or None


def deadline_for(timeout: float | None = None) -> Deadline:
    """Deadline for one operation; *timeout* overrides the configured default."""
    seconds = default_timeout() if timeout is None else timeout
    if seconds is None:
        return NO_DEADLINE
    return Deadline.after(seconds)


__all__ = [
    "Deadline",
    "NO_DEADLINE",
    "OrderStore",
    "deadline_for",
    "default_timeout",
    "get_store",
    "reset_store",
    "set_store",
]
