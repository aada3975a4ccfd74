"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Asset ledgers (collateral tokens, stable unit, funded users)
- Price sources with exact pool prices
- Engines (empty, with WETH registered, with an open position)
- Comparison utilities
"""

import pytest
from datetime import datetime, timedelta
from typing import Any, Dict

from cdp import (
    AssetLedger, StableToken, StaticPriceSource, CollateralEngine, EngineConfig,
    token, create_stable_asset,
    SCALE, Q96,
)

from tests.fake_view import FakeView


T0 = datetime(2025, 1, 1)
ADMIN = "admin"
ENGINE = "cdp_engine"
STABLE = "USDX"
WETH_POOL = "WETH/USDX"
WBTC_POOL = "USDX/WBTC"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def units(amount) -> int:
    """Whole units to 18-decimal fixed point."""
    return int(amount * SCALE)


def exact_raw(root: int) -> int:
    """
    sqrt_price_x96 giving a unit price of exactly root**2 dollars
    for an asset that is second in its pool.
    """
    return root * Q96


def set_weth_price(prices: StaticPriceSource, dollars: int) -> None:
    """Set the WETH pool to a USD price (may truncate by a few wei)."""
    prices.set_unit_price(WETH_POOL, units(dollars), asset_is_first_in_pool=False)


def make_assets(verbose: bool = False) -> AssetLedger:
    """Asset ledger with WETH, WBTC, the stable unit and funded users."""
    assets = AssetLedger("custody", verbose=verbose)
    assets.register_asset(token("WETH", "Wrapped Ether"))
    assets.register_asset(token("WBTC", "Wrapped Bitcoin", decimals=18))
    assets.register_asset(create_stable_asset(STABLE, "USD Stable", minter=ENGINE))
    for user in ("alice", "bob", "carol"):
        assets.register_account(user)
        assets.mint_to(user, "WETH", units(100))
        assets.mint_to(user, "WBTC", units(10))
    return assets


def make_engine(prices: StaticPriceSource, assets: AssetLedger = None, **kwargs) -> CollateralEngine:
    """Engine with WETH registered (asset second in pool)."""
    assets = assets or make_assets()
    engine = CollateralEngine(
        ADMIN, assets, StableToken(assets, STABLE), prices,
        initial_time=T0, verbose=False, **kwargs,
    )
    engine.register_or_update_collateral(ADMIN, "WETH", WETH_POOL, False, 15_000)
    return engine


def engine_snapshot(engine: CollateralEngine) -> Dict[str, Any]:
    """Everything an operation can change: engine state and asset balances."""
    state = engine.state
    return {
        'collateral': {u: dict(b) for u, b in state.collateral.items() if b},
        'debts': dict(state.debts),
        'totals': engine.total_debt(),
        'events': len(state.event_log),
        'registry': [(a, state.get_collateral_info(a)) for a in state.list_collateral_assets()],
        'balances': engine.assets.snapshot_balances(),
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def prices():
    """WETH at exactly $2500, WBTC (first in its pool) at exactly $1024."""
    source = StaticPriceSource()
    source.update_price(WETH_POOL, exact_raw(50))
    # Q192 * SCALE // raw^2 == 1024 * SCALE with raw = 2**91
    source.update_price(WBTC_POOL, 2 ** 91)
    return source


@pytest.fixture
def assets():
    return make_assets()


@pytest.fixture
def stable(assets):
    return StableToken(assets, STABLE)


@pytest.fixture
def engine(prices, assets):
    return make_engine(prices, assets)


@pytest.fixture
def open_position(engine):
    """alice: 10 WETH at $2500, 10,000 USDX minted (health factor 1.666...)."""
    engine.deposit_and_mint("alice", "WETH", units(10), units(10_000))
    return engine


@pytest.fixture
def liquidator_funded(open_position):
    """carol holds 20,000 USDX from her own over-collateralized position."""
    open_position.deposit_and_mint("carol", "WETH", units(50), units(20_000))
    return open_position


@pytest.fixture
def later():
    return T0 + timedelta(days=365)


@pytest.fixture
def fake_view():
    return FakeView()
