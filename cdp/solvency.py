"""
solvency.py - Health factor calculation

    health_factor = (collateral_value * 100 // threshold_percent) * SCALE // debt

A position with no debt has the maximum health factor. A position is
healthy while its health factor is at least MIN_HEALTH_FACTOR (1.0).
"""

from __future__ import annotations

from .core import (
    EngineView, HealthFactorBroken, MAX_HEALTH_FACTOR, PERCENT_PRECISION, SCALE,
)
from .interest import compute_current_debt
from .oracle import compute_usd_value


def calculate_health_factor(collateral_value: int, debt: int, threshold_percent: int) -> int:
    """
    Args:
        collateral_value: USD value of all collateral (fixed point).
        debt: Current debt including pending interest (fixed point).
        threshold_percent: Required collateral ratio, e.g. 150.

    Returns:
        Health factor in fixed point; MAX_HEALTH_FACTOR when debt is 0.
    """
    if debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value * PERCENT_PRECISION // threshold_percent
    return adjusted * SCALE // debt


def compute_collateral_value(view: EngineView, user: str) -> int:
    """Sum of USD values of the user's balances over all known assets."""
    return sum(
        compute_usd_value(view, asset, view.get_collateral_balance(user, asset))
        for asset in view.list_collateral_assets()
    )


def compute_health_factor(view: EngineView, user: str) -> int:
    """Health factor of a user. Returns MAX_HEALTH_FACTOR before reading any price if debt is 0."""
    debt = compute_current_debt(view, user)
    if debt == 0:
        return MAX_HEALTH_FACTOR
    return calculate_health_factor(
        compute_collateral_value(view, user),
        debt,
        view.config.liquidation_threshold_percent,
    )


def is_healthy(view: EngineView, user: str) -> bool:
    return compute_health_factor(view, user) >= view.config.min_health_factor


def assert_healthy(view: EngineView, user: str) -> None:
    """
    Raises:
        HealthFactorBroken: If the user's health factor is below the minimum.
    """
    health_factor = compute_health_factor(view, user)
    if health_factor < view.config.min_health_factor:
        raise HealthFactorBroken(health_factor)
