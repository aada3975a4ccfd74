"""
oracle.py - Price Oracle Adapter

Converts a pool's square-root price into a USD unit price for a collateral
asset, and converts between token amounts and USD values.

A pool quotes a square-root price in Q64.96 fixed point. Squaring the raw
value gives the pool ratio scaled by Q192, and which way the ratio runs
depends on the asset's position in the pool:

    asset is first:   price = Q192 * SCALE // raw^2
    asset is second:  price = raw^2 * SCALE // Q192

encode_sqrt_price_x96 in price_source.py is the inverse of these formulas.

The module follows the same split as the rest of the package:
    - calculate_* functions are pure integer math.
    - compute_* functions take an EngineView and read registry and pool state.

All divisions truncate toward zero.
"""

from __future__ import annotations

from .core import (
    EngineView, PriceUnavailable, Q192, SCALE,
)


# ============================================================================
# PURE CALCULATIONS
# ============================================================================

def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute a * b // denominator without intermediate rounding."""
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (a * b) // denominator


def calculate_unit_price(sqrt_price_x96: int, asset_is_first_in_pool: bool) -> int:
    """
    USD price of one whole unit of the asset, 18-decimal fixed point.

    When the collateral is the pool's second asset the ratio raw² / Q192
    is its USD price, scaled by SCALE. When it is the first asset the
    ratio is inverted to Q192 / raw² and scaled by SCALE as well, so both
    orientations return 18-decimal units; an unscaled Q192 // raw² would
    truncate every price below $1 to zero.

    Args:
        sqrt_price_x96: Raw pool price (0 means unavailable).
        asset_is_first_in_pool: Whether the collateral asset is the pool's
            first asset.

    Raises:
        PriceUnavailable: If the raw price or the resulting price is zero.
    """
    if sqrt_price_x96 <= 0:
        raise PriceUnavailable("pool returned no price")

    squared = sqrt_price_x96 * sqrt_price_x96
    if asset_is_first_in_pool:
        price = mul_div(Q192, SCALE, squared)
    else:
        price = mul_div(squared, SCALE, Q192)

    if price == 0:
        raise PriceUnavailable(f"price truncates to zero for sqrt_price_x96={sqrt_price_x96}")
    return price


def calculate_usd_value(amount: int, unit_price: int) -> int:
    """USD value (fixed point) of amount smallest units at unit_price."""
    return mul_div(amount, unit_price, SCALE)


def calculate_amount_from_usd(usd_amount: int, unit_price: int) -> int:
    """Token amount (smallest units) worth usd_amount at unit_price."""
    if unit_price <= 0:
        raise PriceUnavailable("cannot convert with a zero price")
    return mul_div(usd_amount, SCALE, unit_price)


# ============================================================================
# VIEW ADAPTERS
# ============================================================================

def compute_token_price(view: EngineView, asset: str) -> int:
    """
    Current USD unit price of a registered collateral asset.

    Raises:
        UnknownAsset: If the asset is not registered.
        PriceUnavailable: If its pool has no valid price.
    """
    info = view.get_collateral_info(asset)
    raw = view.get_pool_price(info.price_reference_id)
    return calculate_unit_price(raw, info.asset_is_first_in_pool)


def compute_usd_value(view: EngineView, asset: str, amount: int) -> int:
    """
    USD value of amount of asset.

    A zero amount returns 0 without reading the pool, but the asset must
    still be registered.
    """
    if amount == 0:
        view.get_collateral_info(asset)
        return 0
    return calculate_usd_value(amount, compute_token_price(view, asset))


def compute_amount_from_usd(view: EngineView, asset: str, usd_amount: int) -> int:
    """Amount of asset worth usd_amount at the current pool price."""
    return calculate_amount_from_usd(usd_amount, compute_token_price(view, asset))
