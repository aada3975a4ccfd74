"""
test_oracle.py - Unit tests for the price oracle adapter

Tests:
- Unit price from sqrt_price_x96 for both pool positions
- Zero and truncating-to-zero prices raise PriceUnavailable
- USD value and amount-from-USD conversions truncate
- View adapters: unknown asset, zero-amount short circuit
"""

import pytest
from datetime import datetime

from cdp import (
    CollateralTypeInfo, PriceUnavailable, UnknownAsset,
    calculate_unit_price, calculate_usd_value, calculate_amount_from_usd,
    compute_token_price, compute_usd_value, compute_amount_from_usd,
    mul_div, SCALE, Q96, Q192,
)
from tests.fake_view import FakeView


WETH_INFO = CollateralTypeInfo("WETH/USDX", False, 15_000)
WBTC_INFO = CollateralTypeInfo("USDX/WBTC", True, 15_000)


def make_view(**kwargs):
    defaults = dict(
        registry={'WETH': WETH_INFO, 'WBTC': WBTC_INFO},
        pool_prices={'WETH/USDX': 50 * Q96, 'USDX/WBTC': 2 ** 91},
    )
    defaults.update(kwargs)
    return FakeView(**defaults)


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

class TestCalculateUnitPrice:
    """Tests for calculate_unit_price."""

    def test_second_asset_exact_square(self):
        """raw = 50 * Q96 prices the asset at exactly $2500."""
        assert calculate_unit_price(50 * Q96, False) == 2500 * SCALE

    def test_second_asset_parity(self):
        """raw = Q96 is a 1:1 pool."""
        assert calculate_unit_price(Q96, False) == SCALE

    def test_first_asset_inverts(self):
        """raw = 2**91 with the asset first prices it at exactly $1024."""
        assert calculate_unit_price(2 ** 91, True) == 1024 * SCALE

    def test_first_asset_parity(self):
        assert calculate_unit_price(Q96, True) == SCALE

    def test_positions_are_reciprocal(self):
        """A raw price of 2 * Q96 reads as $4 one way and $0.25 the other."""
        assert calculate_unit_price(2 * Q96, False) == 4 * SCALE
        assert calculate_unit_price(2 * Q96, True) == SCALE // 4

    def test_zero_raw_price_unavailable(self):
        with pytest.raises(PriceUnavailable):
            calculate_unit_price(0, False)
        with pytest.raises(PriceUnavailable):
            calculate_unit_price(0, True)

    def test_price_truncating_to_zero_unavailable(self):
        """A tiny raw price squared and scaled below one wei is unavailable."""
        with pytest.raises(PriceUnavailable, match="truncates to zero"):
            calculate_unit_price(1, False)

    def test_huge_raw_first_asset_unavailable(self):
        """A huge raw price with the asset first inverts to zero."""
        with pytest.raises(PriceUnavailable):
            calculate_unit_price(Q192, True)

    def test_truncation(self):
        """The second-asset formula truncates toward zero."""
        raw = 3 * Q96 + 1
        expected = (raw * raw) * SCALE // Q192
        assert calculate_unit_price(raw, False) == expected


class TestConversions:
    """Tests for USD/amount conversions."""

    def test_usd_value(self):
        assert calculate_usd_value(10 * SCALE, 2500 * SCALE) == 25_000 * SCALE

    def test_usd_value_fractional_amount(self):
        assert calculate_usd_value(SCALE // 2, 2000 * SCALE) == 1000 * SCALE

    def test_usd_value_truncates(self):
        """1 wei at $0.5 is worth 0."""
        assert calculate_usd_value(1, SCALE // 2) == 0

    def test_amount_from_usd(self):
        assert calculate_amount_from_usd(5000 * SCALE, 2500 * SCALE) == 2 * SCALE

    def test_amount_from_usd_truncates(self):
        """$100 at $3 per unit is 33.333... units, truncated."""
        assert calculate_amount_from_usd(100 * SCALE, 3 * SCALE) == 33_333_333_333_333_333_333

    def test_amount_from_usd_zero_price(self):
        with pytest.raises(PriceUnavailable):
            calculate_amount_from_usd(100 * SCALE, 0)

    def test_mul_div(self):
        assert mul_div(7, 3, 2) == 10
        with pytest.raises(ZeroDivisionError):
            mul_div(1, 1, 0)


# ============================================================================
# VIEW ADAPTERS
# ============================================================================

class TestViewAdapters:
    """Tests for compute_* functions reading through an EngineView."""

    def test_token_price_second_asset(self):
        assert compute_token_price(make_view(), 'WETH') == 2500 * SCALE

    def test_token_price_first_asset(self):
        assert compute_token_price(make_view(), 'WBTC') == 1024 * SCALE

    def test_token_price_unknown_asset(self):
        with pytest.raises(UnknownAsset):
            compute_token_price(make_view(), 'DOGE')

    def test_token_price_missing_pool(self):
        """A registered asset whose pool has no price is unavailable."""
        view = make_view(pool_prices={})
        with pytest.raises(PriceUnavailable):
            compute_token_price(view, 'WETH')

    def test_usd_value(self):
        assert compute_usd_value(make_view(), 'WETH', 2 * SCALE) == 5000 * SCALE

    def test_zero_amount_skips_pool(self):
        """A zero amount returns 0 without reading the pool."""
        view = make_view(pool_prices={})
        assert compute_usd_value(view, 'WETH', 0) == 0
        assert view.price_reads == []

    def test_zero_amount_still_validates_asset(self):
        with pytest.raises(UnknownAsset):
            compute_usd_value(make_view(), 'DOGE', 0)

    def test_amount_from_usd(self):
        assert compute_amount_from_usd(make_view(), 'WBTC', 2048 * SCALE) == 2 * SCALE

    def test_unset_sentinel_is_unknown(self):
        """An entry with an empty price reference is treated as unregistered."""
        view = make_view(registry={'WETH': CollateralTypeInfo("", False, 0)})
        with pytest.raises(UnknownAsset):
            compute_token_price(view, 'WETH')
