"""Catalog lookup port (abstract interface).

The catalog is owned by another part of the platform. At checkout the
settlement engine only needs to resolve a product or variant id to the
price, sale price, name and primary image in effect right now.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CatalogEntry:
    """A product or variant as priced at lookup time."""

    id: str
    name: str
    price: Decimal
    sale_price: Decimal | None = None
    image_url: str | None = None


class Catalog(ABC):
    """Abstract catalog interface."""

    @abstractmethod
    def find_product(self, product_id: str) -> CatalogEntry | None:
        """Return the base product with this id, or None."""
        ...

    @abstractmethod
    def find_variant(self, variant_id: str) -> CatalogEntry | None:
        """Return the product variant with this id, or None."""
        ...
