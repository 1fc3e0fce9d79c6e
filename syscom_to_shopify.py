#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
syscom_to_shopify.py

Command-line entry point for the Syscom → Shopify catalog sync.

Credentials and defaults come from the environment (SHOP, ADMIN_TOKEN,
SYSCOM_CLIENT_ID, SYSCOM_CLIENT_SECRET, ...); the flags below override the
run-shaping settings for a single run.

Examples:
    python syscom_to_shopify.py --query camaras --pages 3
    python syscom_to_shopify.py --mode brand --query hikvision --dry-run --report out.csv
    python syscom_to_shopify.py --probe-rate
"""

from __future__ import annotations

import argparse
import datetime as dt
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import pricing
from sync_logging import setup_logging
from syscom_sync.clients.shopify import ShopifyClient
from syscom_sync.clients.syscom import SyscomClient
from syscom_sync.config import MODE_BRAND, MODE_SEARCH, ConfigError, SyncSettings, load_settings, with_overrides
from syscom_sync.exporters.base import Exporter
from syscom_sync.exporters.csv_exporter import CsvReportExporter
from syscom_sync.exporters.shopify_api_exporter import ShopifyAPIExporter
from syscom_sync.images import ImageCollector
from syscom_sync.processing import Processor

DEFAULT_REPORT = "syscom_dry_run.csv"


def print_run_banner() -> None:
    """Print a line showing when this script is running."""
    now = dt.datetime.now().isoformat(timespec="seconds")
    print(f"[syscom_to_shopify] Run at {now}", flush=True)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync Syscom catalog products into a Shopify store."
    )
    parser.add_argument("--mode", choices=[MODE_SEARCH, MODE_BRAND], default=None, help="Listing mode")
    parser.add_argument("--query", type=str, default=None, help="Search term or brand slug")
    parser.add_argument("--pages", type=int, default=None, help="Number of listing pages to process")
    parser.add_argument(
        "--margin-policy",
        choices=list(pricing.MARGIN_POLICIES),
        default=None,
        help="random (default) or deterministic per-SKU margins",
    )
    parser.add_argument("--max-images", type=int, default=None, help="Maximum images per product")
    parser.add_argument("--validate-images", action="store_true", default=None, help="HEAD-check image URLs")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write to Shopify; write normalized products to a CSV report",
    )
    parser.add_argument("--report", type=str, default=None, help=f"CSV report path (default {DEFAULT_REPORT})")
    parser.add_argument(
        "--probe-rate",
        action="store_true",
        help="Fetch and print the Syscom exchange rate, then exit",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console logging level (DEBUG=1 in the environment implies DEBUG)",
    )
    parser.add_argument("--log-dir", type=str, default=None, help="Directory for run log files")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, environ=None) -> SyncSettings:
    env = os.environ if environ is None else environ
    # The dry run and the rate probe never touch Shopify.
    need_shopify = not (args.dry_run or args.probe_rate)
    settings = load_settings(env, require_credentials=need_shopify)
    if not (settings.syscom_client_id and settings.syscom_client_secret):
        raise ConfigError("Missing required environment variables: SYSCOM_CLIENT_ID, SYSCOM_CLIENT_SECRET")
    return with_overrides(
        settings,
        mode=args.mode,
        query=args.query,
        run_pages=args.pages,
        dry_run=args.dry_run or None,
        pricing_margin_policy=args.margin_policy,
        images_max_images=args.max_images,
        images_validate=args.validate_images,
    )


def build_exporter(settings: SyncSettings, report: Optional[str]) -> Exporter:
    if settings.dry_run:
        return CsvReportExporter(Path(report or DEFAULT_REPORT))
    client = ShopifyClient(
        store_domain=settings.shop_domain,
        access_token=settings.admin_token,
        api_version=settings.shopify_api_version,
    )
    return ShopifyAPIExporter(
        client,
        max_images=settings.images.max_images,
        set_price=settings.set_price,
    )


def probe_rate(settings: SyncSettings) -> int:
    client = SyscomClient(
        settings.syscom_client_id,
        settings.syscom_client_secret,
        currency=settings.pricing.source_currency,
    )
    client.fetch_token()
    raw = client.get_exchange_rate()
    effective = pricing.plausible_rate(raw, settings.pricing.fallback_rate, settings.pricing.min_plausible_rate)
    print(f"tipocambio: normal={raw} effective={effective}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    level_name = args.log_level or ("DEBUG" if settings.debug else "INFO")
    setup_logging(log_root=args.log_dir, console_level=getattr(logging, level_name))

    try:
        if args.probe_rate:
            return probe_rate(settings)

        print_run_banner()
        processor = Processor(
            settings=settings,
            syscom_client=SyscomClient(
                settings.syscom_client_id,
                settings.syscom_client_secret,
                currency=settings.pricing.source_currency,
            ),
            image_collector=ImageCollector(settings.images),
            exporter=build_exporter(settings, args.report),
        )
        summary = processor.run()
        print(summary.line(), flush=True)
    except Exception as e:
        logging.exception("Fatal error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
