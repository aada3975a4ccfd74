"""
price_source.py - Pool price sources for collateral valuation

Provides the price-reference pools the oracle adapter reads from. A pool
quotes the ratio between its two assets as a square-root price in Q64.96
fixed point (sqrt_price_x96). A pool with no price returns 0, the invalid
price sentinel.

Classes:
- PriceSource: Protocol defining the pricing interface
- StaticPriceSource: Time-independent pool prices
- TimeSeriesPriceSource: Time-varying pool prices with historical data

Helpers:
- encode_sqrt_price_x96: USD unit price -> sqrt_price_x96 for a pool position
- generate_price_path: seeded geometric Brownian motion path (numpy)
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple, Protocol, runtime_checkable
from bisect import bisect_right
import math

import numpy as np

from .core import Q192, SCALE


@runtime_checkable
class PriceSource(Protocol):
    """
    Protocol for pool price sources.

    Implementations return the raw square-root price of a pool at a
    timestamp, or 0 when no valid price exists.
    """

    def current_price(self, pool_id: str, timestamp: Optional[datetime] = None) -> int:
        """Return sqrt_price_x96 for the pool, or 0 if unavailable."""
        ...


def encode_sqrt_price_x96(unit_price: int, asset_is_first_in_pool: bool) -> int:
    """
    Encode a USD unit price (18-decimal fixed point) as a pool sqrt price.

    Inverse of oracle.calculate_unit_price, truncating:
        first asset:  raw = isqrt(Q192 * SCALE / price)
        second asset: raw = isqrt(price * Q192 / SCALE)

    Example:
        # $2500 per unit, asset is the pool's second asset
        raw = encode_sqrt_price_x96(2500 * SCALE, False)
        assert raw == 50 * Q96
    """
    if unit_price <= 0:
        raise ValueError(f"unit_price must be positive, got {unit_price}")
    if asset_is_first_in_pool:
        return math.isqrt(Q192 * SCALE // unit_price)
    return math.isqrt(unit_price * Q192 // SCALE)


class StaticPriceSource:
    """
    Pool price source with static prices (time-independent).

    Prices are stored as raw sqrt_price_x96 values. Unknown pools return 0.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        """
        Args:
            prices: Dictionary mapping pool ids to sqrt_price_x96
        """
        self.prices: Dict[str, int] = dict(prices or {})

    def current_price(self, pool_id: str, timestamp: Optional[datetime] = None) -> int:
        """Get static price (timestamp is ignored)."""
        return self.prices.get(pool_id, 0)

    def update_price(self, pool_id: str, sqrt_price_x96: int):
        """Update the raw price of a pool."""
        self.prices[pool_id] = sqrt_price_x96

    def update_prices(self, prices: Dict[str, int]):
        """Update multiple pool prices at once."""
        self.prices.update(prices)

    def set_unit_price(self, pool_id: str, unit_price: int, asset_is_first_in_pool: bool):
        """Set a pool's price from a USD unit price of the collateral asset."""
        self.prices[pool_id] = encode_sqrt_price_x96(unit_price, asset_is_first_in_pool)

    def __repr__(self):
        return f"StaticPriceSource({len(self.prices)} pools)"


class TimeSeriesPriceSource:
    """
    Pool price source with time-varying prices.

    Uses the most recent observation at or before the requested timestamp.
    Returns 0 if the pool has no observation at or before it.
    """

    def __init__(self, price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None):
        """
        Args:
            price_paths: Optional dict mapping pool ids to lists of
                (timestamp, sqrt_price_x96) tuples.

        Example:
            source = TimeSeriesPriceSource({
                'WETH/USD': [(t0, raw0), (t1, raw1)],
            })
        """
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        if price_paths:
            for pool_id, path in price_paths.items():
                if not path:
                    continue
                self.price_history[pool_id] = sorted(path, key=lambda x: x[0])

    def add_price(self, pool_id: str, timestamp: datetime, sqrt_price_x96: int):
        """Add an observation for a pool."""
        history = self.price_history.setdefault(pool_id, [])
        history.append((timestamp, sqrt_price_x96))
        history.sort(key=lambda x: x[0])

    def add_unit_prices(
        self,
        pool_id: str,
        observations: List[Tuple[datetime, int]],
        asset_is_first_in_pool: bool,
    ):
        """Add a path of USD unit prices, encoding each as a sqrt price."""
        for timestamp, unit_price in observations:
            self.add_price(pool_id, timestamp, encode_sqrt_price_x96(unit_price, asset_is_first_in_pool))

    def current_price(self, pool_id: str, timestamp: Optional[datetime] = None) -> int:
        """
        Get the raw price at or before timestamp (latest if timestamp is None).

        Uses binary search for O(log n) lookup.
        """
        history = self.price_history.get(pool_id)
        if not history:
            return 0
        if timestamp is None:
            return history[-1][1]

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return 0
        return history[idx - 1][1]

    def get_all_timestamps(self, pool_id: Optional[str] = None) -> List[datetime]:
        """Sorted unique timestamps for one pool, or across all pools."""
        if pool_id:
            return [ts for ts, _ in self.price_history.get(pool_id, [])]
        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(h) for h in self.price_history.values())
        return f"TimeSeriesPriceSource({len(self.price_history)} pools, {total_observations} observations)"


def generate_price_path(
    initial_price: int,
    start: datetime,
    steps: int,
    step: timedelta,
    annual_volatility: float = 0.8,
    annual_drift: float = 0.0,
    seed: Optional[int] = None,
) -> List[Tuple[datetime, int]]:
    """
    Generate a geometric Brownian motion path of USD unit prices.

    Prices are returned as 18-decimal fixed-point ints. The same seed
    always produces the same path.

    Args:
        initial_price: Starting unit price (fixed point).
        start: Timestamp of the first observation.
        steps: Number of increments after the first observation.
        step: Time between observations.
        annual_volatility: Annualized volatility (e.g. 0.8 for 80%).
        annual_drift: Annualized drift.
        seed: Random seed.

    Returns:
        List of (timestamp, unit_price) with steps + 1 entries.
    """
    if initial_price <= 0:
        raise ValueError(f"initial_price must be positive, got {initial_price}")
    if steps < 0:
        raise ValueError(f"steps cannot be negative, got {steps}")

    rng = np.random.default_rng(seed)
    dt = step.total_seconds() / (365 * 24 * 60 * 60)
    shocks = rng.standard_normal(steps)
    log_returns = (annual_drift - 0.5 * annual_volatility ** 2) * dt + annual_volatility * np.sqrt(dt) * shocks
    factors = np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))

    return [
        (start + step * i, max(1, int(initial_price * float(f))))
        for i, f in enumerate(factors)
    ]
