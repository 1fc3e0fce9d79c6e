#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
pricing.py
================================================================================
PRICING ENGINE MODULE - SYSCOM -> SHOPIFY CATALOG SYNC
================================================================================

This module centralizes ALL pricing logic for the Syscom -> Shopify pipeline.

What this file provides:
------------------------
    • parse_money()             (vendor money strings -> float / NaN)
    • select_price()            (tiered cost-price selection)
    • normalize_to_settlement() (USD -> MXN with a plausibility floor)
    • compute_sale_price()      (margin band + IVA)
    • PriceCandidate            (selection result)

Pricing logic implemented:
--------------------------
    ✓ Money strings with $, €, MXN, USD, DLLS, pesos
    ✓ "1,234.56" and "1.234,56" separator styles
    ✓ Preferred price keys (precio_descuentos, precio_especial, ...)
    ✓ Discount/special/offer/net pattern match (minimum wins)
    ✓ List/public/MSRP/base exclusion fallback (minimum wins)
    ✓ Last resort: any key, still above the threshold (minimum wins)
    ✓ Exchange-rate sanity floor with configured fallback
    ✓ Random or deterministic (SKU-hashed) margin
    ✓ Half-up rounding to cents after margin and again after tax

Nothing in here reads the environment; callers pass settings explicitly.

================================================================================
"""

from __future__ import annotations

import hashlib
import math
import random
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence


# ====================================================================
# CONFIG CONSTANTS
# ====================================================================
DEFAULT_PRICE_MIN = 50.0
DEFAULT_FALLBACK_RATE = 18.0
MIN_PLAUSIBLE_RATE = 10.0       # a fetched MXN/USD rate of 1 means "no data"
LAST_RESORT_FLOOR = 1.0         # values <= 1 look like percentages

# Exact keys, tried in order before any pattern matching.
DEFAULT_PRICE_PREFERENCE = (
    "precio_descuentos",
    "precio_especial",
    "con_descuento",
    "con_descuentos",
    "precio_descuento",
    "neto",
    "precio_neto",
    "mi_precio",
    "oferta",
    "especial",
)

MARGIN_POLICY_RANDOM = "random"
MARGIN_POLICY_DETERMINISTIC = "deterministic"
MARGIN_POLICIES = (MARGIN_POLICY_RANDOM, MARGIN_POLICY_DETERMINISTIC)

_CURRENCY_TOKENS = re.compile(
    r"\s*(MXN|USD|\$|usd?|eur|€|dlls?|\bpesos?\b)\s*", re.IGNORECASE
)
_NON_NUMERIC = re.compile(r"[^0-9.+\-]")

DISCOUNT_KEY_PATTERN = re.compile(
    r"descuent|especial|oferta|neto|discount|special|offer|net", re.IGNORECASE
)
LIST_KEY_PATTERN = re.compile(
    r"lista|list|publico|public|msrp|sin_desc|base", re.IGNORECASE
)


# ====================================================================
# PRICE CANDIDATE
# ====================================================================
@dataclass(frozen=True)
class PriceCandidate:
    value: float
    source_key: str


# ====================================================================
# NUMERIC HELPERS
# ====================================================================
def round2(value: float) -> float:
    """Round half-up to cents (1.005 -> 1.01)."""
    return float(Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def parse_money(value: Any) -> float:
    """
    Parse a vendor money value into a float.

    Returns NaN for anything that is not a usable amount (None, dicts,
    blank strings, text with no digits). Exponent notation ("1e-05") is
    not money text and is not understood; re-parse amounts from
    fixed-point text such as format(x, "f").
    """
    if value is None or isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else math.nan
    if not isinstance(value, str):
        return math.nan

    s = value.strip()
    if not s:
        return math.nan
    s = _CURRENCY_TOKENS.sub("", s)

    has_comma = "," in s
    has_dot = "." in s
    if has_comma and has_dot:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".", 1)
        else:
            s = s.replace(",", "")
    elif has_comma:
        s = s.replace(".", "").replace(",", ".", 1)
    else:
        s = s.replace(",", "")

    s = _NON_NUMERIC.sub("", s)
    try:
        number = float(s)
    except ValueError:
        return math.nan
    return number if math.isfinite(number) else math.nan


def first_number(*values: Any) -> float:
    """Return the first value that parses to a finite number, else NaN."""
    for val in values:
        n = parse_money(val)
        if math.isfinite(n):
            return n
    return math.nan


# ====================================================================
# PRICE SELECTION
# ====================================================================
def _cheapest(candidates: Iterable[PriceCandidate]) -> Optional[PriceCandidate]:
    best: Optional[PriceCandidate] = None
    for cand in candidates:
        # ties keep the earlier key
        if best is None or cand.value < best.value:
            best = cand
    return best


def _parsed(price_fields: Mapping[str, Any], keys: Iterable[str]) -> list[PriceCandidate]:
    out = []
    for key in keys:
        n = parse_money(price_fields[key])
        if math.isfinite(n):
            out.append(PriceCandidate(n, key))
    return out


def select_price(
    price_fields: Any,
    preference_order: Sequence[str] = DEFAULT_PRICE_PREFERENCE,
    minimum: float = DEFAULT_PRICE_MIN,
) -> Optional[PriceCandidate]:
    """
    Pick the cost price out of a vendor ``precios`` mapping.

    Tiers, first hit wins:
      1. preferred keys in order, first value >= minimum
      2. discount/special/offer/net keys, cheapest value >= minimum
      3. keys that are not list/public/MSRP/base, cheapest value >= minimum
      4. any key (list prices included), cheapest value >= minimum and > 1
    """
    if not isinstance(price_fields, Mapping) or not price_fields:
        return None

    for key in preference_order:
        if key in price_fields:
            n = parse_money(price_fields[key])
            if math.isfinite(n) and n >= minimum:
                return PriceCandidate(n, key)

    keys = [str(k) for k in price_fields]
    price_fields = {str(k): v for k, v in price_fields.items()}

    discounted = [c for c in _parsed(price_fields, (k for k in keys if DISCOUNT_KEY_PATTERN.search(k)))
                  if c.value >= minimum]
    if discounted:
        return _cheapest(discounted)

    unlisted = [c for c in _parsed(price_fields, (k for k in keys if not LIST_KEY_PATTERN.search(k)))
                if c.value >= minimum]
    if unlisted:
        return _cheapest(unlisted)

    anything = [c for c in _parsed(price_fields, keys) if c.value > LAST_RESORT_FLOOR and c.value >= minimum]
    if anything:
        return _cheapest(anything)

    return None


# ====================================================================
# CURRENCY NORMALIZATION
# ====================================================================
def normalize_to_settlement(
    amount: float,
    source_currency: Optional[str],
    exchange_rate: Optional[float],
    fallback_rate: float = DEFAULT_FALLBACK_RATE,
    settlement_currency: str = "mxn",
    foreign_currency: str = "usd",
    min_plausible_rate: float = MIN_PLAUSIBLE_RATE,
) -> float:
    """Convert ``amount`` into the settlement currency."""
    code = (source_currency or "").strip().lower()
    if not code or code == settlement_currency.strip().lower():
        return amount
    if code == foreign_currency.strip().lower():
        rate = exchange_rate if exchange_rate and exchange_rate > min_plausible_rate else fallback_rate
        return amount * rate
    return amount


def plausible_rate(rate: Any, fallback_rate: float, min_plausible_rate: float = MIN_PLAUSIBLE_RATE) -> float:
    n = parse_money(rate)
    if math.isfinite(n) and n > min_plausible_rate:
        return n
    return fallback_rate


# ====================================================================
# SALE PRICE
# ====================================================================
def deterministic_margin(seed_key: str, margin_min: float, margin_max: float) -> float:
    digest = hashlib.sha256(str(seed_key).encode("utf-8")).hexdigest()
    fraction = int(digest[:8], 16) / 0xFFFFFFFF
    return margin_min + fraction * (margin_max - margin_min)


def pick_margin(
    margin_min: float,
    margin_max: float,
    margin_policy: str = MARGIN_POLICY_RANDOM,
    seed_key: str = "",
    rng: Optional[random.Random] = None,
) -> float:
    if margin_policy == MARGIN_POLICY_DETERMINISTIC:
        return deterministic_margin(seed_key, margin_min, margin_max)
    if margin_policy != MARGIN_POLICY_RANDOM:
        raise ValueError(f"Unknown margin policy: {margin_policy!r}")
    return (rng or random).uniform(margin_min, margin_max)


def compute_sale_price(
    cost: float,
    margin_min: float,
    margin_max: float,
    tax_multiplier: float,
    margin_policy: str = MARGIN_POLICY_RANDOM,
    seed_key: str = "",
    rng: Optional[random.Random] = None,
) -> float:
    """
    round2(round2(cost * (1 + margin)) * tax_multiplier)

    Callers must not price items with a non-positive cost.
    """
    if not (cost > 0):
        raise ValueError(f"Cannot compute a sale price for cost={cost!r}")
    margin = pick_margin(margin_min, margin_max, margin_policy, seed_key, rng)
    with_margin = round2(cost * (1 + margin))
    return round2(with_margin * tax_multiplier)
