"""Shopify upsert exporter and the dry-run CSV report."""

from unittest.mock import MagicMock

import pandas as pd
import pytest

from syscom_sync.exporters.base import CREATED, UPDATED
from syscom_sync.exporters.csv_exporter import REPORT_COLUMNS, CsvReportExporter
from syscom_sync.exporters.shopify_api_exporter import ShopifyAPIExporter
from syscom_sync.clients.shopify import ShopifyError
from syscom_sync.models import CreatedProduct, ExistingVariant, Location, NormalizedProduct, SyncSummary


def product(**overrides):
    values = dict(
        sku="DS-2CD1043",
        title="Camara bala 4MP",
        description_html="<p>IP67</p>",
        vendor="Hikvision",
        product_type="CCTV",
        cost=1000.0,
        price=1392.0,
        available=5,
        weight_kg=1.5,
        barcode="750100",
        images=["https://h/1.jpg", "https://h/2.jpg", "https://h/3.jpg"],
        price_source="precio_descuentos",
        source_currency="mxn",
    )
    values.update(overrides)
    return NormalizedProduct(**values)


@pytest.fixture
def client():
    client = MagicMock()
    client.get_publication_id.return_value = "gid://shopify/Publication/1"
    client.get_location.return_value = Location(gid="gid://shopify/Location/9", id="9")
    return client


@pytest.fixture
def exporter(client):
    exp = ShopifyAPIExporter(client, max_images=8, set_price=True, image_sleep=0)
    exp.prepare()
    return exp


class TestShopifyAPIExporter:
    def test_write_before_prepare(self, client):
        with pytest.raises(RuntimeError):
            ShopifyAPIExporter(client, image_sleep=0).write_product(product())

    def test_update_path(self, client, exporter):
        client.find_variant_by_sku.return_value = ExistingVariant(
            variant_id="gid://shopify/ProductVariant/2",
            product_id="gid://shopify/Product/1",
            inventory_item_id="gid://shopify/InventoryItem/3",
        )
        client.product_image_count.return_value = 1

        assert exporter.write_product(product()) == UPDATED

        client.create_product.assert_not_called()
        client.update_variant_price.assert_called_once_with(
            "gid://shopify/Product/1", "gid://shopify/ProductVariant/2", 1392.0
        )
        client.update_variant_weight.assert_called_once_with("gid://shopify/ProductVariant/2", 1.5)
        client.set_inventory_sku.assert_called_once_with("gid://shopify/InventoryItem/3", "DS-2CD1043", "750100")
        client.update_inventory_cost.assert_called_once_with("gid://shopify/InventoryItem/3", 1000.0)
        client.adjust_inventory.assert_called_once_with("gid://shopify/InventoryItem/3", exporter.location, 5)
        client.publish_product.assert_called_once_with("gid://shopify/Product/1", "gid://shopify/Publication/1")
        assert [c.args[1] for c in client.add_image.call_args_list] == ["https://h/2.jpg", "https://h/3.jpg"]

    def test_update_skips_images_when_complete(self, client, exporter):
        client.find_variant_by_sku.return_value = ExistingVariant("v", "p", "i")
        client.product_image_count.return_value = 3
        exporter.write_product(product())
        client.add_image.assert_not_called()

    def test_price_untouched_when_disabled(self, client):
        exp = ShopifyAPIExporter(client, set_price=False, image_sleep=0)
        exp.prepare()
        client.find_variant_by_sku.return_value = ExistingVariant("v", "p", "i")
        client.product_image_count.return_value = 3
        exp.write_product(product())
        client.update_variant_price.assert_not_called()
        client.update_inventory_cost.assert_called_once()

    def test_create_path_with_media(self, client, exporter):
        client.find_variant_by_sku.return_value = None
        client.create_product.return_value = CreatedProduct("gid://shopify/Product/7", "v7", "i7")

        assert exporter.write_product(product()) == CREATED

        product_input, images = client.create_product.call_args.args
        assert product_input["handle"] == "hikvision-ds-2cd1043"
        assert product_input["status"] == "ACTIVE"
        assert product_input["vendor"] == "Hikvision"
        assert images == ["https://h/1.jpg", "https://h/2.jpg", "https://h/3.jpg"]
        client.publish_product.assert_called_once_with("gid://shopify/Product/7", "gid://shopify/Publication/1")
        client.add_image.assert_not_called()

    def test_create_path_uploads_when_media_rejected(self, client, exporter):
        client.find_variant_by_sku.return_value = None
        client.create_product.return_value = CreatedProduct("p7", "v7", "i7", created_with_media=False)
        client.add_image.side_effect = [{}, ShopifyError("bad image", {"errors": "src"}), {}]

        exporter.write_product(product())

        assert client.add_image.call_count == 3

    def test_max_images_caps_uploads(self, client):
        exp = ShopifyAPIExporter(client, max_images=2, image_sleep=0)
        exp.prepare()
        client.find_variant_by_sku.return_value = None
        client.create_product.return_value = CreatedProduct("p", "v", "i")
        exp.write_product(product())
        assert client.create_product.call_args.args[1] == ["https://h/1.jpg", "https://h/2.jpg"]

    def test_failure_propagates(self, client, exporter):
        client.find_variant_by_sku.return_value = None
        client.create_product.side_effect = ShopifyError("productCreate failed")
        with pytest.raises(ShopifyError):
            exporter.write_product(product())


class TestCsvReportExporter:
    def test_writes_report(self, tmp_path):
        path = tmp_path / "reports" / "dry.csv"
        exp = CsvReportExporter(path)
        exp.prepare()
        assert exp.write_product(product()) == CREATED
        exp.write_product(product(sku="B2", images=[], barcode=None))
        exp.finalize(SyncSummary(created=2))

        df = pd.read_csv(path, dtype={"sku": str, "barcode": str})
        assert list(df.columns) == REPORT_COLUMNS
        assert list(df["sku"]) == ["DS-2CD1043", "B2"]
        assert list(df["image_count"]) == [3, 0]
        assert df.loc[0, "images"] == "https://h/1.jpg | https://h/2.jpg | https://h/3.jpg"
        assert df.loc[0, "price"] == 1392.0

    def test_empty_report_has_header(self, tmp_path):
        path = tmp_path / "empty.csv"
        exp = CsvReportExporter(path)
        exp.prepare()
        exp.finalize(SyncSummary())
        assert path.read_text(encoding="utf-8").strip() == ",".join(REPORT_COLUMNS)
