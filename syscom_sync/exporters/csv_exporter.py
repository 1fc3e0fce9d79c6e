from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from sync_logging import get_logger
from syscom_sync.exporters.base import CREATED, Exporter
from syscom_sync.models import NormalizedProduct, SyncSummary

logger = get_logger(__name__)

REPORT_COLUMNS = [
    "sku",
    "title",
    "vendor",
    "product_type",
    "price_source",
    "source_currency",
    "cost",
    "price",
    "available",
    "weight_kg",
    "barcode",
    "image_count",
    "images",
]


class CsvReportExporter(Exporter):
    """
    Dry-run target: collects normalized products and writes them to a CSV
    report on finalize. Nothing is sent to Shopify.
    """

    def __init__(self, output_path: Path) -> None:
        self.output_path = Path(output_path)
        self.rows: List[Dict[str, Any]] = []

    def prepare(self) -> None:
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def write_product(self, product: NormalizedProduct) -> str:
        row = asdict(product)
        row["image_count"] = len(product.images)
        row["images"] = " | ".join(product.images)
        self.rows.append(row)
        return CREATED

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=REPORT_COLUMNS)

    def finalize(self, summary: SyncSummary) -> None:
        df = self.to_frame()
        df.to_csv(self.output_path, index=False, encoding="utf-8")
        logger.info("Wrote %d products to %s", len(df), self.output_path)
