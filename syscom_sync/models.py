from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class NormalizedProduct:
    """Storefront-ready product built from one Syscom record."""

    sku: str
    title: str
    description_html: str
    vendor: str
    product_type: str
    cost: float  # settlement currency, before margin/IVA
    price: float
    available: int
    weight_kg: float
    barcode: Optional[str] = None
    images: List[str] = field(default_factory=list)
    price_source: str = ""  # precios key (or top-level field) the cost came from
    source_currency: str = ""


@dataclass
class ExistingVariant:
    """Minimal fields needed from a Shopify variant lookup by SKU."""

    variant_id: str
    product_id: str
    inventory_item_id: str
    sku: str = ""
    status: Optional[str] = None


@dataclass
class CreatedProduct:
    """IDs returned by productCreate."""

    product_id: str
    variant_id: str
    inventory_item_id: str
    created_with_media: bool = True


@dataclass
class Location:
    gid: str
    id: str


@dataclass
class SyncSummary:
    """Aggregated results from a sync run."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    pages: int = 0

    def line(self) -> str:
        return (
            f"Summary => created: {self.created}, updated: {self.updated}, "
            f"skipped: {self.skipped}, errors: {self.errors}"
        )
