from __future__ import annotations

import time
from typing import Dict, List, Optional

from slugify import slugify

from sync_logging import get_logger
from syscom_sync.clients.shopify import ShopifyClient, ShopifyError
from syscom_sync.exporters.base import CREATED, UPDATED, Exporter
from syscom_sync.models import Location, NormalizedProduct, SyncSummary

logger = get_logger(__name__)

# productCreate accepts at most this many media entries per call.
SHOPIFY_MEDIA_LIMIT = 10


class ShopifyAPIExporter(Exporter):
    """
    Upserts normalized products into Shopify, keyed by variant SKU.

    - Existing SKU: price (optional), weight, sku/barcode, cost, inventory,
      publish, then append images the product is missing.
    - New SKU: productCreate (with media when Shopify accepts it), then the
      same variant/inventory updates and a REST image upload if media failed.
    """

    def __init__(
        self,
        client: ShopifyClient,
        max_images: int = 8,
        set_price: bool = True,
        image_sleep: float = 0.4,
    ) -> None:
        self.client = client
        self.max_images = max_images
        self.set_price = set_price
        self.image_sleep = image_sleep
        self.publication_id: Optional[str] = None
        self.location: Optional[Location] = None
        self.created_ids: List[str] = []
        self.updated_ids: List[str] = []

    def prepare(self) -> None:
        self.publication_id = self.client.get_publication_id()
        self.location = self.client.get_location()
        logger.info(
            "Shopify publication=%s location=%s",
            self.publication_id,
            self.location.gid,
        )

    def _build_product_input(self, product: NormalizedProduct) -> Dict[str, str]:
        return {
            "title": product.title,
            "handle": slugify(f"{product.vendor} {product.sku}", lowercase=True),
            "descriptionHtml": product.description_html or "",
            "vendor": product.vendor or "",
            "productType": product.product_type or "",
            "status": "ACTIVE",
        }

    def _upload_images(self, product_id: str, sources: List[str]) -> int:
        uploaded = 0
        for src in sources:
            try:
                logger.debug("Uploading image %s to %s", src, product_id)
                self.client.add_image(product_id, src)
                uploaded += 1
            except ShopifyError as exc:
                logger.warning("Add image failed for %s: %s", src, exc.payload or exc)
            time.sleep(self.image_sleep)
        return uploaded

    def _sync_variant(self, product: NormalizedProduct, product_id: str, variant_id: str, inventory_item_id: str) -> None:
        if self.set_price:
            self.client.update_variant_price(product_id, variant_id, product.price)
        self.client.update_variant_weight(variant_id, product.weight_kg)
        self.client.set_inventory_sku(inventory_item_id, product.sku, product.barcode)
        self.client.update_inventory_cost(inventory_item_id, product.cost)
        self.client.adjust_inventory(inventory_item_id, self.location, product.available)
        self.client.publish_product(product_id, self.publication_id)

    def write_product(self, product: NormalizedProduct) -> str:
        if self.location is None or self.publication_id is None:
            raise RuntimeError("ShopifyAPIExporter.prepare() must run before write_product()")

        images = product.images[: self.max_images]
        existing = self.client.find_variant_by_sku(product.sku)
        if existing:
            self._sync_variant(product, existing.product_id, existing.variant_id, existing.inventory_item_id)
            if images:
                have = self.client.product_image_count(existing.product_id)
                if have < min(self.max_images, len(images)):
                    self._upload_images(existing.product_id, images[have:])
            self.updated_ids.append(existing.product_id)
            logger.info("Updated SKU %s (product %s)", product.sku, existing.product_id)
            return UPDATED

        created = self.client.create_product(
            self._build_product_input(product),
            images[: min(self.max_images, SHOPIFY_MEDIA_LIMIT)],
        )
        self._sync_variant(product, created.product_id, created.variant_id, created.inventory_item_id)
        if not created.created_with_media and images:
            self._upload_images(created.product_id, images)
        self.created_ids.append(created.product_id)
        logger.info("Created SKU %s (product %s)", product.sku, created.product_id)
        return CREATED

    def finalize(self, summary: SyncSummary) -> None:
        logger.info(
            "Shopify export done: %d created, %d updated",
            len(self.created_ids),
            len(self.updated_ids),
        )
