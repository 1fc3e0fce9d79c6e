from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

import pricing
from syscom_sync.config import PricingConfig
from syscom_sync.models import NormalizedProduct

logger = logging.getLogger(__name__)

SKU_FIELDS = ("sku", "codigo", "clave", "modelo")
TITLE_FIELDS = ("nombre", "titulo", "descripcion_corta", "descripcion")
DESCRIPTION_FIELDS = ("descripcion_html", "descripcion")
BARCODE_FIELDS = ("codigo_barras", "codigo_barras_ean", "ean", "barcode", "gtin", "upc")
STOCK_FIELDS = ("existencia", "stock", "total_existencia")
WEIGHT_FIELDS = ("peso_kg", "peso")
TOP_LEVEL_PRICE_FIELDS = ("precio", "precio_publico", "precio_lista")

# Some records report grams under peso_kg.
GRAMS_THRESHOLD = 100


def first_present(record: Dict[str, Any], keys) -> Any:
    for key in keys:
        val = record.get(key)
        if val not in (None, "") and not isinstance(val, (dict, list)):
            return val
    return None


def _name_of(value: Any) -> str:
    if isinstance(value, dict):
        name = value.get("nombre") or value.get("name")
        return str(name) if name else ""
    if value in (None, ""):
        return ""
    return str(value)


def _clean(val: Any) -> Optional[str]:
    if val is None:
        return None
    return str(val).strip() or None


def extract_sku(record: Dict[str, Any]) -> Optional[str]:
    return _clean(first_present(record, SKU_FIELDS))


def extract_title(record: Dict[str, Any]) -> Optional[str]:
    return _clean(first_present(record, TITLE_FIELDS))


def extract_vendor(record: Dict[str, Any]) -> str:
    return _name_of(record.get("marca")) or _name_of(record.get("fabricante"))


def extract_product_type(record: Dict[str, Any]) -> str:
    categorias = record.get("categorias")
    if isinstance(categorias, list) and categorias:
        name = _name_of(categorias[0])
        if name:
            return name
    return _name_of(record.get("categoria"))


def extract_barcode(record: Dict[str, Any]) -> Optional[str]:
    return _clean(first_present(record, BARCODE_FIELDS))


def extract_weight_kg(record: Dict[str, Any]) -> float:
    weight = pricing.first_number(*(record.get(k) for k in WEIGHT_FIELDS))
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    if weight > GRAMS_THRESHOLD:
        weight = weight / 1000
    return weight


def extract_available(record: Dict[str, Any]) -> int:
    qty = pricing.first_number(*(record.get(k) for k in STOCK_FIELDS))
    if not math.isfinite(qty) or qty < 0:
        return 0
    return int(qty)


def extract_source_currency(record: Dict[str, Any], default: str) -> str:
    precios = record.get("precios")
    moneda = record.get("moneda") or (precios.get("moneda") if isinstance(precios, dict) else None) or default
    return str(moneda).strip().lower()


def select_cost_price(record: Dict[str, Any], cfg: PricingConfig) -> Optional[pricing.PriceCandidate]:
    """Pick from ``precios`` first, then the top-level price fields."""
    candidate = pricing.select_price(record.get("precios"), cfg.preference_order, cfg.price_min)
    if candidate:
        return candidate
    for key in TOP_LEVEL_PRICE_FIELDS:
        n = pricing.parse_money(record.get(key))
        if math.isfinite(n) and n >= cfg.price_min:
            return pricing.PriceCandidate(n, key)
    return None


def map_product(
    record: Dict[str, Any],
    cfg: PricingConfig,
    exchange_rate: Optional[float],
    images: Optional[List[str]] = None,
) -> Optional[NormalizedProduct]:
    """
    Build a NormalizedProduct from a Syscom detail record.

    Returns None when the record has no sku/title or cannot be priced.
    """
    sku = extract_sku(record)
    title = extract_title(record)
    if not sku or not title:
        return None

    candidate = select_cost_price(record, cfg)
    if candidate is None:
        precios = record.get("precios")
        logger.info(
            "SKU %s has no usable price (precios keys=%s); skipping.",
            sku,
            list(precios) if isinstance(precios, dict) else [],
        )
        return None

    currency = extract_source_currency(record, cfg.source_currency)
    cost = pricing.round2(
        pricing.normalize_to_settlement(
            candidate.value,
            currency,
            exchange_rate,
            fallback_rate=cfg.fallback_rate,
            settlement_currency=cfg.settlement_currency,
            foreign_currency=cfg.foreign_currency,
            min_plausible_rate=cfg.min_plausible_rate,
        )
    )
    if cost <= 0:
        logger.info("SKU %s normalized to a non-positive cost; skipping.", sku)
        return None

    price = pricing.compute_sale_price(
        cost,
        cfg.margin_min,
        cfg.margin_max,
        cfg.tax_multiplier,
        cfg.margin_policy,
        seed_key=sku,
    )

    description = first_present(record, DESCRIPTION_FIELDS)
    product = NormalizedProduct(
        sku=sku,
        title=title,
        description_html=str(description or ""),
        vendor=extract_vendor(record),
        product_type=extract_product_type(record),
        cost=cost,
        price=price,
        available=extract_available(record),
        weight_kg=extract_weight_kg(record),
        barcode=extract_barcode(record),
        images=list(images or []),
        price_source=candidate.source_key,
        source_currency=currency,
    )
    logger.debug(
        "SKU %s | base:%s (src:%s) %s | tc:%s | cost:%s | price:%s | imgs:%d",
        sku,
        candidate.value,
        candidate.source_key,
        currency.upper(),
        exchange_rate,
        cost,
        price,
        len(product.images),
    )
    return product
