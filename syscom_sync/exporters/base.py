from __future__ import annotations

from typing import Protocol

from syscom_sync.models import NormalizedProduct, SyncSummary

CREATED = "created"
UPDATED = "updated"


class Exporter(Protocol):
    """Common interface for output targets (Shopify API, CSV report)."""

    def prepare(self) -> None:
        """Resolve run-level prerequisites; raise to abort the run."""
        ...

    def write_product(self, product: NormalizedProduct) -> str:
        """Write one product and return CREATED or UPDATED."""
        ...

    def finalize(self, summary: SyncSummary) -> None:
        ...
