"""Catalog lookup factory.

Provides get_catalog() / set_catalog() to swap implementations. The
in-memory catalog is the default; the platform's catalog service client is
installed with set_catalog() at application start-up.
"""

from settlement.catalog.memory_adapter import InMemoryCatalog
from settlement.catalog.port import Catalog

_current_catalog: Catalog | None = None


def get_catalog() -> Catalog:
    """Return the current catalog. Defaults to InMemoryCatalog."""
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryCatalog()
    return _current_catalog


def set_catalog(catalog: Catalog) -> None:
    """Override the active catalog (useful for tests)."""
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    """Reset to default catalog."""
    global _current_catalog
    _current_catalog = None
