from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

import pricing
from syscom_sync.clients.syscom import SyscomClient, product_id_of, unwrap_item
from syscom_sync.config import SyncSettings
from syscom_sync.exporters.base import CREATED, Exporter
from syscom_sync.images import ImageCollector
from syscom_sync.mapping import map_product
from syscom_sync.models import SyncSummary


def _error_payload(exc: Exception) -> Any:
    """Upstream error body when the exception carries one."""
    payload = getattr(exc, "payload", None)
    if payload:
        return payload
    response = getattr(exc, "response", None)
    if isinstance(response, requests.Response):
        return response.text
    return None


class Processor:
    """Coordinator for listing, detail fetch, images, pricing and export."""

    def __init__(
        self,
        settings: SyncSettings,
        syscom_client: SyscomClient,
        image_collector: ImageCollector,
        exporter: Exporter,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.syscom_client = syscom_client
        self.image_collector = image_collector
        self.exporter = exporter
        self.sleep = sleep
        self.exchange_rate: Optional[float] = None
        self.logger = logging.getLogger(__name__)

    def resolve_exchange_rate(self) -> float:
        cfg = self.settings.pricing
        raw = self.syscom_client.get_exchange_rate()
        rate = pricing.plausible_rate(raw, cfg.fallback_rate, cfg.min_plausible_rate)
        if raw is None or rate != raw:
            self.logger.warning("Exchange rate %r unusable; using fallback %.4f", raw, cfg.fallback_rate)
        else:
            self.logger.info("Exchange rate (normal): %.4f", rate)
        self.exchange_rate = rate
        return rate

    def process_item(self, item: Dict[str, Any], summary: SyncSummary) -> None:
        """Fetch, map and export one listing entry. Exceptions propagate."""
        row = unwrap_item(item)
        pid = product_id_of(row)
        if not pid:
            self.logger.debug("Listing item without product id: %s", sorted(row))
            summary.skipped += 1
            return

        detail = self.syscom_client.get_product_detail(pid)
        images = self.image_collector.collect(detail)
        self.logger.debug("PID %s -> %d images: %s", pid, len(images), images)

        product = map_product(detail, self.settings.pricing, self.exchange_rate, images)
        if product is None:
            summary.skipped += 1
            return

        result = self.exporter.write_product(product)
        if result == CREATED:
            summary.created += 1
        else:
            summary.updated += 1

    def run(self) -> SyncSummary:
        """
        Process up to ``run_pages`` listing pages, one record at a time.

        Per-record failures are logged and counted; the loop continues.
        """
        settings = self.settings
        self.exporter.prepare()
        self.syscom_client.fetch_token()
        if self.exchange_rate is None:
            self.resolve_exchange_rate()

        summary = SyncSummary()
        try:
            for page in range(1, settings.run_pages + 1):
                items = self.syscom_client.list_products(
                    settings.query,
                    page,
                    stock_only=settings.only_stock,
                    mode=settings.mode,
                )
                if not items:
                    self.logger.info("Page %d is empty; stopping.", page)
                    break
                summary.pages += 1
                self.logger.info("Page %d: %d products", page, len(items))

                for item in items:
                    try:
                        self.process_item(item, summary)
                    except Exception as exc:
                        summary.errors += 1
                        row = unwrap_item(item)
                        self.logger.error(
                            "Error with product %s: %s %s",
                            product_id_of(row) or row.get("sku") or "<unknown>",
                            exc,
                            _error_payload(exc) or "",
                            exc_info=settings.debug,
                        )
                    self.sleep(settings.sleep_ms / 1000.0)
        finally:
            # a listing failure still flushes what was already exported
            self.exporter.finalize(summary)
            self.logger.info(summary.line())
        return summary
