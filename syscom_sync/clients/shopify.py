from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from syscom_sync.config import DEFAULT_SHOPIFY_API_VERSION
from syscom_sync.models import CreatedProduct, ExistingVariant, Location

logger = logging.getLogger(__name__)


class ShopifyError(RuntimeError):
    """HTTP failure or top-level GraphQL errors from the Admin API."""

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class ShopifyUserError(ShopifyError):
    """Field-level validation errors (userErrors) returned by a mutation."""


def numeric_id(gid: Any) -> str:
    """gid://shopify/ProductVariant/123 -> '123'"""
    return re.sub(r"\D", "", str(gid))


def _details(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ShopifyClient:
    """Minimal Shopify Admin API client (GraphQL plus a few REST endpoints)."""

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        api_version: str = DEFAULT_SHOPIFY_API_VERSION,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.store_domain = store_domain
        self.access_token = access_token
        self.api_version = api_version
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"https://{self.store_domain}/admin/api/{self.api_version}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        resp = self.session.post(
            self._url("graphql.json"),
            headers=self._headers(),
            json={"query": query, "variables": variables or {}},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            details = _details(resp)
            raise ShopifyError(f"Shopify GraphQL failed HTTP {resp.status_code}: {details}", details)
        data = resp.json()
        errors = data.get("errors")
        if errors:
            raise ShopifyError(f"Shopify GraphQL errors: {errors}", errors)
        return data.get("data") or {}

    def _mutate(self, query: str, variables: Dict[str, Any], root: str) -> Dict[str, Any]:
        payload = self.graphql(query, variables).get(root) or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            raise ShopifyUserError(f"Shopify {root} userErrors: {user_errors}", user_errors)
        return payload

    def rest(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        resp = self.session.request(
            method,
            self._url(path),
            headers=self._headers(),
            json=payload,
            timeout=self.timeout,
        )
        if resp.status_code not in (200, 201):
            details = _details(resp)
            raise ShopifyError(f"Shopify {method} {path} failed: {resp.status_code} {details}", details)
        return resp.json() if resp.content else {}

    # ------------------------------------------------------------------
    # store setup
    # ------------------------------------------------------------------

    def get_publication_id(self) -> str:
        data = self.graphql(
            "query { publications(first: 10) { edges { node { id catalog { title } } } } }"
        )
        edges = (data.get("publications") or {}).get("edges") or []
        if not edges:
            raise ShopifyError("Shopify store has no publications")
        return edges[0]["node"]["id"]

    def get_location(self) -> Location:
        data = self.rest("GET", "locations.json")
        active = [loc for loc in data.get("locations") or [] if loc.get("active", True)]
        if not active:
            raise ShopifyError("Shopify store has no active locations")
        loc_id = str(active[0]["id"])
        return Location(gid=f"gid://shopify/Location/{loc_id}", id=loc_id)

    # ------------------------------------------------------------------
    # products / variants
    # ------------------------------------------------------------------

    def find_variant_by_sku(self, sku: str) -> Optional[ExistingVariant]:
        query = """
        query ($q: String!) {
          productVariants(first: 1, query: $q) {
            edges { node { id sku product { id status } inventoryItem { id } } }
          }
        }
        """
        data = self.graphql(query, {"q": f"sku:{sku}"})
        edges = (data.get("productVariants") or {}).get("edges") or []
        if not edges:
            return None
        node = edges[0]["node"]
        return ExistingVariant(
            variant_id=node["id"],
            product_id=node["product"]["id"],
            inventory_item_id=node["inventoryItem"]["id"],
            sku=node.get("sku") or "",
            status=node["product"].get("status"),
        )

    def create_product(self, product: Dict[str, Any], images: List[str]) -> CreatedProduct:
        """
        productCreate with media attached. If that fails (Shopify rejects
        unreachable media URLs), retry once without media; the caller then
        uploads images through REST.
        """
        mutation = """
        mutation CreateProduct($product: ProductCreateInput!, $media: [CreateMediaInput!]) {
          productCreate(product: $product, media: $media) {
            product { id variants(first: 1) { nodes { id inventoryItem { id } } } }
            userErrors { field message }
          }
        }
        """
        media = [{"originalSource": u, "mediaContentType": "IMAGE"} for u in images if u]
        try:
            payload = self._mutate(mutation, {"product": product, "media": media}, "productCreate")
            with_media = True
        except ShopifyError as exc:
            if not media:
                raise
            logger.debug("productCreate with media failed, retrying without media: %s", exc)
            payload = self._mutate(mutation, {"product": product, "media": []}, "productCreate")
            with_media = False

        node = payload["product"]
        variant = node["variants"]["nodes"][0]
        return CreatedProduct(
            product_id=node["id"],
            variant_id=variant["id"],
            inventory_item_id=variant["inventoryItem"]["id"],
            created_with_media=with_media,
        )

    def update_variant_price(self, product_id: str, variant_id: str, price: float) -> None:
        if not (price > 0):
            return
        mutation = """
        mutation UpdateVariants($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
          productVariantsBulkUpdate(productId: $productId, variants: $variants) {
            userErrors { field message }
          }
        }
        """
        self._mutate(
            mutation,
            {"productId": product_id, "variants": [{"id": variant_id, "price": f"{price:.2f}"}]},
            "productVariantsBulkUpdate",
        )

    def update_variant_weight(self, variant_id: str, weight_kg: float) -> None:
        if not (weight_kg > 0):
            return
        vid = int(numeric_id(variant_id))
        grams = max(0, round(weight_kg * 1000))
        self.rest("PUT", f"variants/{vid}.json", {"variant": {"id": vid, "grams": grams}})

    def set_inventory_sku(self, inventory_item_id: str, sku: str, barcode: Optional[str] = None) -> None:
        mutation = """
        mutation InvItemUpdate($id: ID!, $input: InventoryItemInput!) {
          inventoryItemUpdate(id: $id, input: $input) { userErrors { field message } }
        }
        """
        item_input: Dict[str, Any] = {"sku": str(sku), "tracked": True}
        if barcode:
            item_input["barcode"] = str(barcode)
        self._mutate(mutation, {"id": inventory_item_id, "input": item_input}, "inventoryItemUpdate")

    def update_inventory_cost(self, inventory_item_id: str, cost: float) -> None:
        if not (cost > 0):
            return
        mutation = """
        mutation InvItemUpdate($id: ID!, $input: InventoryItemInput!) {
          inventoryItemUpdate(id: $id, input: $input) { userErrors { field message } }
        }
        """
        self._mutate(mutation, {"id": inventory_item_id, "input": {"cost": f"{cost:.2f}"}}, "inventoryItemUpdate")

    def get_available(self, inventory_item_id: str, location: Location) -> int:
        data = self.rest(
            "GET",
            f"inventory_levels.json?inventory_item_ids={numeric_id(inventory_item_id)}&location_ids={location.id}",
        )
        levels = data.get("inventory_levels") or []
        if not levels:
            return 0
        return int(levels[0].get("available") or 0)

    def adjust_inventory(self, inventory_item_id: str, location: Location, target: int) -> int:
        """Adjust 'available' at the location to ``target``; returns the delta applied."""
        delta = int(target) - self.get_available(inventory_item_id, location)
        if not delta:
            return 0
        mutation = """
        mutation Adjust($input: InventoryAdjustQuantitiesInput!) {
          inventoryAdjustQuantities(input: $input) { userErrors { field message } }
        }
        """
        adjust_input = {
            "name": "available",
            "reason": "correction",
            "changes": [{"inventoryItemId": inventory_item_id, "locationId": location.gid, "delta": delta}],
        }
        self._mutate(mutation, {"input": adjust_input}, "inventoryAdjustQuantities")
        return delta

    def publish_product(self, product_id: str, publication_id: str) -> None:
        mutation = """
        mutation Pub($id: ID!, $input: [PublicationInput!]!) {
          publishablePublish(id: $id, input: $input) { userErrors { field message } }
        }
        """
        self._mutate(mutation, {"id": product_id, "input": [{"publicationId": publication_id}]}, "publishablePublish")

    def product_image_count(self, product_id: str) -> int:
        data = self.rest("GET", f"products/{numeric_id(product_id)}.json")
        return len((data.get("product") or {}).get("images") or [])

    def add_image(self, product_id: str, src: str) -> Dict[str, Any]:
        data = self.rest("POST", f"products/{numeric_id(product_id)}/images.json", {"image": {"src": src}})
        return data.get("image") or {}
