"""Processor run loop with fake Syscom, image and exporter collaborators."""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest

from syscom_sync.clients.syscom import SyscomError
from syscom_sync.exporters.base import CREATED, UPDATED
from syscom_sync.processing import Processor

PRICED = {"sku": "A1", "nombre": "Cam 1", "precios": {"oferta": "1000"}, "existencia": 2}
UNPRICED = {"sku": "B2", "nombre": "Cam 2", "precios": {"lista": "40"}}


def build(settings, pages, details, write_results=None, rate=18.5):
    syscom = MagicMock()
    syscom.get_exchange_rate.return_value = rate
    syscom.list_products.side_effect = lambda query, page, stock_only, mode: pages.get(page, [])

    def detail(pid):
        value = details[pid]
        if isinstance(value, Exception):
            raise value
        return value

    syscom.get_product_detail.side_effect = detail

    images = MagicMock()
    images.collect.return_value = ["https://h/a.jpg"]

    exporter = MagicMock()
    exporter.write_product.side_effect = list(write_results or [])

    sleep = MagicMock()
    proc = Processor(settings, syscom, images, exporter, sleep=sleep)
    return proc, syscom, exporter, sleep


class TestProcessorRun:
    def test_counts_each_outcome(self, settings):
        pages = {1: [{"id": 1}, {"id": 2}, {"producto": {"id": 3}}, {"titulo": "no id"}], 2: [{"id": 4}]}
        details = {
            "1": PRICED,
            "2": UNPRICED,
            "3": SyscomError("detail failed", 500, {"message": "boom"}),
            "4": dict(PRICED, sku="A4"),
        }
        proc, syscom, exporter, sleep = build(settings, pages, details, [CREATED, UPDATED])

        summary = proc.run()

        assert (summary.created, summary.updated, summary.skipped, summary.errors) == (1, 1, 2, 1)
        assert summary.pages == 2
        assert summary.line() == "Summary => created: 1, updated: 1, skipped: 2, errors: 1"
        exporter.prepare.assert_called_once()
        exporter.finalize.assert_called_once_with(summary)
        syscom.fetch_token.assert_called_once()
        assert sleep.call_count == 5

    def test_mapped_product_reaches_exporter(self, settings):
        proc, _, exporter, _ = build(settings, {1: [{"id": 1}]}, {"1": PRICED}, [CREATED])
        proc.run()

        product = exporter.write_product.call_args.args[0]
        assert product.sku == "A1"
        assert product.cost == 1000
        assert product.price == 1392.0
        assert product.images == ["https://h/a.jpg"]

    def test_empty_page_stops_the_run(self, settings):
        settings = replace(settings, run_pages=5)
        proc, syscom, _, _ = build(settings, {1: [{"id": 1}]}, {"1": PRICED}, [CREATED])

        summary = proc.run()

        assert summary.pages == 1
        assert syscom.list_products.call_count == 2

    def test_listing_uses_settings(self, settings):
        settings = replace(settings, mode="brand", query="hikvision", only_stock=False, run_pages=1)
        proc, syscom, _, _ = build(settings, {}, {})
        proc.run()
        syscom.list_products.assert_called_once_with("hikvision", 1, stock_only=False, mode="brand")

    def test_sleeps_between_records(self, settings):
        settings = replace(settings, sleep_ms=900, run_pages=1)
        proc, _, _, sleep = build(settings, {1: [{"id": 1}, {"id": 2}]}, {"1": PRICED, "2": UNPRICED}, [CREATED])
        proc.run()
        assert [c.args[0] for c in sleep.call_args_list] == [0.9, 0.9]

    def test_exporter_failure_is_counted_not_raised(self, settings):
        proc, _, exporter, _ = build(settings, {1: [{"id": 1}]}, {"1": PRICED})
        exporter.write_product.side_effect = RuntimeError("Shopify down")
        summary = proc.run()
        assert summary.errors == 1
        assert summary.created == 0

    def test_listing_failure_still_finalizes(self, settings):
        settings = replace(settings, run_pages=3)
        proc, syscom, exporter, _ = build(settings, {}, {"1": PRICED}, [CREATED])
        syscom.list_products.side_effect = [[{"id": 1}], SyscomError("boom", 500)]

        with pytest.raises(SyscomError):
            proc.run()

        exporter.finalize.assert_called_once()
        summary = exporter.finalize.call_args.args[0]
        assert (summary.created, summary.pages) == (1, 1)

    def test_token_failure_aborts(self, settings):
        proc, syscom, exporter, _ = build(settings, {1: [{"id": 1}]}, {"1": PRICED})
        syscom.fetch_token.side_effect = SyscomError("bad credentials", 401)
        with pytest.raises(SyscomError):
            proc.run()
        syscom.list_products.assert_not_called()
        exporter.finalize.assert_not_called()


class TestExchangeRate:
    @pytest.mark.parametrize("raw", [None, 1.0, 0.5])
    def test_unusable_rate_falls_back(self, settings, raw):
        proc, _, _, _ = build(settings, {}, {}, rate=raw)
        assert proc.resolve_exchange_rate() == settings.pricing.fallback_rate
        assert proc.exchange_rate == settings.pricing.fallback_rate

    def test_plausible_rate_is_used(self, settings):
        proc, _, _, _ = build(settings, {}, {}, rate=17.25)
        assert proc.resolve_exchange_rate() == 17.25

    def test_usd_record_uses_resolved_rate(self, settings):
        usd = {"sku": "U1", "nombre": "Cam", "moneda": "USD", "precios": {"oferta": "100"}}
        proc, _, exporter, _ = build(settings, {1: [{"id": 9}]}, {"9": usd}, [CREATED], rate=20.0)
        proc.run()
        assert exporter.write_product.call_args.args[0].cost == 2000.0
