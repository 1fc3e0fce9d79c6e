from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional, Tuple

import pricing

SYSCOM_OAUTH_URL = "https://developers.syscom.mx/oauth/token"
SYSCOM_API_BASE = "https://developers.syscom.mx/api/v1"
SYSCOM_FTP_HOST = "https://ftp3.syscom.mx"
DEFAULT_SHOPIFY_API_VERSION = "2025-07"

MODE_SEARCH = "search"
MODE_BRAND = "brand"

REQUIRED_ENV = ("SHOP", "ADMIN_TOKEN", "SYSCOM_CLIENT_ID", "SYSCOM_CLIENT_SECRET")


class ConfigError(ValueError):
    """Missing or invalid configuration; fatal for the run."""


@dataclass(frozen=True)
class PricingConfig:
    preference_order: Tuple[str, ...] = pricing.DEFAULT_PRICE_PREFERENCE
    price_min: float = pricing.DEFAULT_PRICE_MIN
    margin_min: float = 0.15
    margin_max: float = 0.25
    tax_multiplier: float = 1.16
    margin_policy: str = pricing.MARGIN_POLICY_RANDOM
    settlement_currency: str = "mxn"
    foreign_currency: str = "usd"
    # currency requested from Syscom; also the default source currency of a record
    source_currency: str = "mxn"
    fallback_rate: float = pricing.DEFAULT_FALLBACK_RATE
    min_plausible_rate: float = pricing.MIN_PLAUSIBLE_RATE


@dataclass(frozen=True)
class ImageConfig:
    max_images: int = 8
    guess_siblings: bool = True
    dir_scan: bool = True
    scrape_html: bool = True
    validate: bool = False
    scrape_threshold: int = 4
    ftp_host: str = SYSCOM_FTP_HOST
    timeout: float = 12.0


@dataclass(frozen=True)
class SyncSettings:
    shop: str
    admin_token: str
    syscom_client_id: str
    syscom_client_secret: str
    shopify_api_version: str = DEFAULT_SHOPIFY_API_VERSION
    mode: str = MODE_SEARCH
    query: str = "camaras"
    run_pages: int = 2
    sleep_ms: int = 900
    only_stock: bool = True
    set_price: bool = True
    debug: bool = False
    dry_run: bool = False
    pricing: PricingConfig = field(default_factory=PricingConfig)
    images: ImageConfig = field(default_factory=ImageConfig)

    @property
    def shop_domain(self) -> str:
        shop = self.shop.strip()
        return shop if "." in shop else f"{shop}.myshopify.com"


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip() != "0"


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _integer(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _text(env: Mapping[str, str], name: str, default: str) -> str:
    return (env.get(name) or default).strip()


def load_pricing_config(env: Mapping[str, str]) -> PricingConfig:
    keys_raw = env.get("SYSCOM_PRICE_KEYS", "")
    preference = tuple(k.strip() for k in keys_raw.split(",") if k.strip()) or pricing.DEFAULT_PRICE_PREFERENCE

    cfg = PricingConfig(
        preference_order=preference,
        price_min=_number(env, "SYSCOM_PRICE_MIN", pricing.DEFAULT_PRICE_MIN),
        margin_min=_number(env, "MARGIN_MIN", 0.15),
        margin_max=_number(env, "MARGIN_MAX", 0.25),
        tax_multiplier=_number(env, "IVA_RATE", 1.16),
        margin_policy=_text(env, "MARGIN_POLICY", pricing.MARGIN_POLICY_RANDOM).lower(),
        settlement_currency=_text(env, "SETTLEMENT_CURRENCY", "mxn").lower(),
        source_currency=_text(env, "SYSCOM_CURRENCY", "mxn").lower(),
        fallback_rate=_number(env, "SYSCOM_FALLBACK_RATE", pricing.DEFAULT_FALLBACK_RATE),
    )
    validate_pricing_config(cfg)
    return cfg


def validate_pricing_config(cfg: PricingConfig) -> None:
    if cfg.margin_policy not in pricing.MARGIN_POLICIES:
        raise ConfigError(
            f"MARGIN_POLICY must be one of {', '.join(pricing.MARGIN_POLICIES)}, got {cfg.margin_policy!r}"
        )
    if cfg.margin_min < 0 or cfg.margin_min > cfg.margin_max:
        raise ConfigError(f"Invalid margin band [{cfg.margin_min}, {cfg.margin_max}]")
    if cfg.tax_multiplier <= 0:
        raise ConfigError(f"IVA_RATE must be positive, got {cfg.tax_multiplier}")
    if cfg.fallback_rate <= 0:
        raise ConfigError(f"SYSCOM_FALLBACK_RATE must be positive, got {cfg.fallback_rate}")


def load_image_config(env: Mapping[str, str]) -> ImageConfig:
    max_images = _integer(env, "SYSCOM_MAX_IMAGES", 8)
    if max_images < 0:
        raise ConfigError(f"SYSCOM_MAX_IMAGES must be >= 0, got {max_images}")
    return ImageConfig(
        max_images=max_images,
        guess_siblings=_flag(env, "SYSCOM_GUESS_SIBLINGS", True),
        dir_scan=_flag(env, "SYSCOM_FTP_DIR_SCAN", True),
        scrape_html=_flag(env, "SYSCOM_SCRAPE_HTML", True),
        validate=_flag(env, "SYSCOM_VALIDATE_IMAGES", False),
    )


def load_settings(environ: Optional[Mapping[str, str]] = None, require_credentials: bool = True) -> SyncSettings:
    """
    Build the run settings from environment variables.

    Raises ConfigError when a required variable is missing or a value is
    malformed.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_ENV if not (env.get(name) or "").strip()]
    if missing and require_credentials:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    mode = _text(env, "SYSCOM_MODE", MODE_SEARCH).lower()
    if mode not in (MODE_SEARCH, MODE_BRAND):
        raise ConfigError(f"SYSCOM_MODE must be 'search' or 'brand', got {mode!r}")

    run_pages = _integer(env, "RUN_PAGES", 2)
    sleep_ms = _integer(env, "SLEEP_MS", 900)
    if run_pages < 1:
        raise ConfigError(f"RUN_PAGES must be >= 1, got {run_pages}")
    if sleep_ms < 0:
        raise ConfigError(f"SLEEP_MS must be >= 0, got {sleep_ms}")

    return SyncSettings(
        shop=_text(env, "SHOP", ""),
        admin_token=_text(env, "ADMIN_TOKEN", ""),
        syscom_client_id=_text(env, "SYSCOM_CLIENT_ID", ""),
        syscom_client_secret=_text(env, "SYSCOM_CLIENT_SECRET", ""),
        shopify_api_version=_text(env, "SHOPIFY_API_VERSION", DEFAULT_SHOPIFY_API_VERSION),
        mode=mode,
        query=_text(env, "SYSCOM_QUERY", "camaras"),
        run_pages=run_pages,
        sleep_ms=sleep_ms,
        only_stock=_flag(env, "SYSCOM_ONLY_STOCK", True),
        set_price=_flag(env, "SET_PRICE", True),
        debug=(env.get("DEBUG") or "").strip() == "1",
        pricing=load_pricing_config(env),
        images=load_image_config(env),
    )


def with_overrides(settings: SyncSettings, **overrides) -> SyncSettings:
    """Return a copy with CLI overrides applied; None values are ignored."""
    top = {k: v for k, v in overrides.items() if v is not None and not k.startswith(("pricing_", "images_"))}
    pricing_changes = {k[len("pricing_"):]: v for k, v in overrides.items() if v is not None and k.startswith("pricing_")}
    image_changes = {k[len("images_"):]: v for k, v in overrides.items() if v is not None and k.startswith("images_")}

    pricing_cfg = replace(settings.pricing, **pricing_changes)
    validate_pricing_config(pricing_cfg)
    return replace(
        settings,
        pricing=pricing_cfg,
        images=replace(settings.images, **image_changes),
        **top,
    )
