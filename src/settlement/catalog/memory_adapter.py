"""In-memory catalog for development and testing.

Holds products and variants in dictionaries. Entries can be added or
repriced at runtime, which is how tests show that historical orders keep
the snapshot taken at checkout.
"""

from settlement.catalog.port import Catalog, CatalogEntry
from settlement.money import to_money


class InMemoryCatalog(Catalog):
    """Dictionary-backed catalog."""

    def __init__(self) -> None:
        self.products: dict[str, CatalogEntry] = {}
        self.variants: dict[str, CatalogEntry] = {}

    def add_product(self, product_id, name, price, sale_price=None, image_url=None) -> CatalogEntry:
        entry = _entry(product_id, name, price, sale_price, image_url)
        self.products[entry.id] = entry
        return entry

    def add_variant(self, variant_id, name, price, sale_price=None, image_url=None) -> CatalogEntry:
        entry = _entry(variant_id, name, price, sale_price, image_url)
        self.variants[entry.id] = entry
        return entry

    def find_product(self, product_id: str) -> CatalogEntry | None:
        return self.products.get(str(product_id))

    def find_variant(self, variant_id: str) -> CatalogEntry | None:
        return self.variants.get(str(variant_id))


def _entry(entry_id, name, price, sale_price, image_url) -> CatalogEntry:
    return CatalogEntry(
        id=str(entry_id),
        name=name,
        price=to_money(price),
        sale_price=None if sale_price is None else to_money(sale_price),
        image_url=image_url,
    )
