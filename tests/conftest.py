"""Shared fixtures for the sync tests. Nothing here touches the network."""

from unittest.mock import MagicMock

import pytest

from syscom_sync.config import PricingConfig, SyncSettings


@pytest.fixture
def pricing_cfg():
    """Fixed 20% margin, 16% IVA, MXN settlement."""
    return PricingConfig(margin_min=0.2, margin_max=0.2, tax_multiplier=1.16)


@pytest.fixture
def settings(pricing_cfg):
    return SyncSettings(
        shop="demo-shop",
        admin_token="shpat_test",
        syscom_client_id="cid",
        syscom_client_secret="secret",
        run_pages=2,
        sleep_ms=0,
        pricing=pricing_cfg,
    )


def make_response(status=200, json_data=None, text="", content=b"x"):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.content = content
    if isinstance(json_data, Exception):
        resp.json.side_effect = json_data
    else:
        resp.json.return_value = json_data
    return resp


@pytest.fixture
def response_factory():
    return make_response
