"""Money parsing, price selection, currency conversion and sale price."""

import math
import random

import pytest

import pricing
from pricing import (
    PriceCandidate,
    compute_sale_price,
    normalize_to_settlement,
    parse_money,
    select_price,
)


class TestParseMoney:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("$1,234.56 MXN", 1234.56),
            ("1.234,56", 1234.56),
            ("1,5", 1.5),
            ("USD 99.90", 99.9),
            ("€ 12", 12.0),
            ("1,000.00 pesos", 1000.0),
            ("1,000", 1.0),
            ("  250 DLLS ", 250.0),
            ("-3.5", -3.5),
        ],
    )
    def test_strings(self, raw, expected):
        assert parse_money(raw) == pytest.approx(expected)

    def test_numbers_pass_through(self):
        assert parse_money(42) == 42.0
        assert parse_money(12.5) == 12.5

    @pytest.mark.parametrize("raw", ["", "   ", None, {"a": 1}, [1], True, "MXN", "abc", float("inf")])
    def test_not_a_number(self, raw):
        assert math.isnan(parse_money(raw))

    @pytest.mark.parametrize("raw", ["$1,234.56 MXN", "1.234,56", "99", "0.5", "7,25", "0.00001", "25000000000000000"])
    def test_idempotent_after_canonicalization(self, raw):
        once = parse_money(raw)
        assert parse_money(format(once, "f")) == once

    def test_first_number_skips_garbage(self):
        assert pricing.first_number(None, "", "n/a", "12") == 12.0
        assert math.isnan(pricing.first_number(None, {}))


class TestRound2:
    def test_half_up(self):
        assert pricing.round2(1.005) == 1.01
        assert pricing.round2(2.675) == 2.68
        assert pricing.round2(1391.9999999999998) == 1392.0


class TestSelectPrice:
    def test_preferred_key_wins(self):
        got = select_price({"descuento": "999.00", "lista": "1500.00"}, ["descuento", "lista"], 50)
        assert got == PriceCandidate(999.0, "descuento")

    def test_below_threshold_without_other_candidates(self):
        assert select_price({"lista": "40"}, ["descuento", "lista"], 50) is None

    def test_preferred_key_below_threshold_falls_through(self):
        got = select_price({"precio_descuentos": "10", "precio_especial": "700"}, pricing.DEFAULT_PRICE_PREFERENCE, 50)
        assert got == PriceCandidate(700.0, "precio_especial")

    def test_pattern_tier_picks_minimum(self):
        fields = {
            "precio_lista": "1500",
            "descuento_volumen": "900",
            "precio_oferta": "850",
            "neto_distribuidor": "870",
        }
        got = select_price(fields, [], 50)
        assert got == PriceCandidate(850.0, "precio_oferta")

    def test_pattern_tier_ignores_values_under_threshold(self):
        got = select_price({"descuento": "5", "oferta": "300", "especial": "420"}, [], 50)
        assert got == PriceCandidate(300.0, "oferta")

    def test_exclusion_tier_skips_list_prices(self):
        fields = {"precio_lista": "100", "precio_publico": "90", "distribuidor": "1200", "mayoreo": "1100"}
        got = select_price(fields, [], 50)
        assert got == PriceCandidate(1100.0, "mayoreo")

    def test_last_resort_accepts_list_prices(self):
        fields = {"precio_lista": "1500", "base": "0.35", "msrp": "1400"}
        got = select_price(fields, [], 50)
        assert got == PriceCandidate(1400.0, "msrp")

    def test_last_resort_rejects_fractions(self):
        fields = {"precio_lista": "40", "base": "0.35"}
        assert select_price(fields, [], 0) == PriceCandidate(40.0, "precio_lista")
        assert select_price({"base": "0.35"}, [], 0) is None

    def test_nothing_usable(self):
        assert select_price({"lista": "0.5", "moneda": "USD"}, [], 50) is None
        assert select_price({}, [], 50) is None
        assert select_price(None, [], 50) is None
        assert select_price("1000", [], 50) is None

    def test_currency_key_is_never_a_price(self):
        got = select_price({"moneda": "MXN", "precio_especial": "$2,500.00"}, pricing.DEFAULT_PRICE_PREFERENCE, 50)
        assert got == PriceCandidate(2500.0, "precio_especial")


class TestNormalizeToSettlement:
    def test_usd_with_plausible_rate(self):
        assert normalize_to_settlement(100, "usd", 18.5, 20) == pytest.approx(1850)

    def test_usd_with_degenerate_rate_uses_fallback(self):
        assert normalize_to_settlement(100, "usd", 1, 20) == pytest.approx(2000)
        assert normalize_to_settlement(100, "USD", None, 20) == pytest.approx(2000)
        assert normalize_to_settlement(100, "usd", -5, 20) == pytest.approx(2000)

    def test_settlement_and_unknown_are_identity(self):
        assert normalize_to_settlement(100, "MXN", 18.5, 20) == 100
        assert normalize_to_settlement(100, "", 18.5, 20) == 100
        assert normalize_to_settlement(100, None, 18.5, 20) == 100
        assert normalize_to_settlement(100, "eur", 18.5, 20) == 100

    def test_plausible_rate(self):
        assert pricing.plausible_rate("18.75", 18) == 18.75
        assert pricing.plausible_rate(1, 18) == 18
        assert pricing.plausible_rate(None, 18) == 18


class TestComputeSalePrice:
    def test_margin_then_tax(self):
        assert compute_sale_price(1000, 0.2, 0.2, 1.16, "deterministic", "A1") == 1392.00

    def test_deterministic_is_stable(self):
        first = compute_sale_price(1000, 0.15, 0.25, 1.16, "deterministic", "SKU1")
        for _ in range(5):
            assert compute_sale_price(1000, 0.15, 0.25, 1.16, "deterministic", "SKU1") == first
        assert 1000 * 1.15 * 1.16 - 0.01 <= first <= 1000 * 1.25 * 1.16 + 0.01

    def test_deterministic_equal_bounds(self):
        assert compute_sale_price(1000, 0.15, 0.15, 1.16, "deterministic", "SKU1") == 1334.0

    def test_deterministic_margin_differs_by_sku(self):
        margins = {pricing.deterministic_margin(f"SKU{i}", 0.15, 0.25) for i in range(20)}
        assert len(margins) > 1
        assert all(0.15 <= m <= 0.25 for m in margins)

    def test_random_policy_stays_in_band(self):
        rng = random.Random(7)
        for _ in range(50):
            price = compute_sale_price(500, 0.15, 0.25, 1.0, "random", rng=rng)
            assert 575.0 <= price <= 625.0

    def test_non_positive_cost_rejected(self):
        with pytest.raises(ValueError):
            compute_sale_price(0, 0.1, 0.2, 1.16)
        with pytest.raises(ValueError):
            compute_sale_price(-10, 0.1, 0.2, 1.16)

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            compute_sale_price(100, 0.1, 0.2, 1.16, "surge")
