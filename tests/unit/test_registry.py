"""
test_registry.py - Unit tests for the collateral registry

Tests:
- Registration returns True for new assets, False for updates
- Known assets are append-only and ordered
- Threshold updates
- Validation and unknown-asset lookups
- Clone independence
"""

import pytest

from cdp import (
    CollateralRegistry, CollateralTypeInfo, InvalidParameter, UnknownAsset,
)


class TestCollateralRegistry:

    def test_register_new(self):
        registry = CollateralRegistry()
        assert registry.register_or_update("WETH", "WETH/USDX", False, 15_000) is True
        assert registry.info("WETH") == CollateralTypeInfo("WETH/USDX", False, 15_000)
        assert registry.known_assets() == ["WETH"]

    def test_update_existing(self):
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        assert registry.register_or_update("WETH", "USDX/WETH", True, 13_000) is False
        assert registry.info("WETH") == CollateralTypeInfo("USDX/WETH", True, 13_000)
        assert registry.known_assets() == ["WETH"]

    def test_registration_order(self):
        registry = CollateralRegistry()
        for asset in ("WETH", "WBTC", "LINK"):
            registry.register_or_update(asset, f"{asset}/USDX", False, 15_000)
        registry.register_or_update("WETH", "WETH/USDX", False, 14_000)
        assert registry.known_assets() == ["WETH", "WBTC", "LINK"]
        assert len(registry) == 3

    def test_known_assets_is_a_copy(self):
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        registry.known_assets().append("FAKE")
        assert registry.known_assets() == ["WETH"]

    def test_update_threshold(self):
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        registry.update_threshold("WETH", 12_500)
        info = registry.info("WETH")
        assert info.liquidation_threshold_bps == 12_500
        assert info.price_reference_id == "WETH/USDX"

    def test_update_threshold_unknown(self):
        with pytest.raises(UnknownAsset):
            CollateralRegistry().update_threshold("WETH", 12_500)

    def test_update_threshold_invalid(self):
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        with pytest.raises(InvalidParameter):
            registry.update_threshold("WETH", 0)

    def test_info_unknown(self):
        with pytest.raises(UnknownAsset, match="DOGE"):
            CollateralRegistry().info("DOGE")

    @pytest.mark.parametrize("asset,ref,bps", [
        ("", "WETH/USDX", 15_000),
        ("WETH", "", 15_000),
        ("WETH", "  ", 15_000),
        ("WETH", "WETH/USDX", 0),
        ("WETH", "WETH/USDX", -1),
    ])
    def test_validation(self, asset, ref, bps):
        registry = CollateralRegistry()
        with pytest.raises(InvalidParameter):
            registry.register_or_update(asset, ref, False, bps)
        assert registry.known_assets() == []

    def test_clone_independent(self):
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        cloned = registry.clone()
        cloned.register_or_update("WBTC", "WBTC/USDX", False, 15_000)
        cloned.update_threshold("WETH", 11_000)
        assert registry.known_assets() == ["WETH"]
        assert registry.info("WETH").liquidation_threshold_bps == 15_000
        assert cloned.known_assets() == ["WETH", "WBTC"]
