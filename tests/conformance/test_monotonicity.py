"""
Monotonicity Conformance Tests

INVARIANT: Debt grows with time; solvency moves with collateral and debt;
liquidation only ever improves a position.

    t1 ≤ t2 ⟹ pending(t1) ≤ pending(t2)
    c1 ≤ c2 ⟹ hf(c1, d) ≤ hf(c2, d)
    d1 ≤ d2 ⟹ hf(c, d1) ≥ hf(c, d2)
    liquidate(user) succeeds ⟹ hf_after > hf_before
"""

import pytest
from datetime import datetime, timedelta
from hypothesis import given, settings
from hypothesis import strategies as st

from cdp import (
    HealthFactorOk, StaticPriceSource,
    calculate_pending_interest, calculate_health_factor,
    ANNUAL_INTEREST_RATE, SCALE,
)
from tests.conftest import WETH_POOL, units, exact_raw, make_engine


T0 = datetime(2025, 1, 1)
amounts = st.integers(min_value=0, max_value=10 ** 30)
seconds = st.integers(min_value=0, max_value=10 * 365 * 24 * 3600)


class TestInterestMonotonicity:

    @given(principal=amounts, s1=seconds, s2=seconds)
    @settings(max_examples=200)
    def test_pending_grows_with_time(self, principal, s1, s2):
        """PROPERTY: More elapsed time never means less interest."""
        early, late = sorted((s1, s2))
        a = calculate_pending_interest(principal, ANNUAL_INTEREST_RATE, T0, T0 + timedelta(seconds=early))
        b = calculate_pending_interest(principal, ANNUAL_INTEREST_RATE, T0, T0 + timedelta(seconds=late))
        assert a <= b

    @given(p1=amounts, p2=amounts, s=seconds)
    @settings(max_examples=200)
    def test_pending_grows_with_principal(self, p1, p2, s):
        small, large = sorted((p1, p2))
        now = T0 + timedelta(seconds=s)
        assert (
            calculate_pending_interest(small, ANNUAL_INTEREST_RATE, T0, now)
            <= calculate_pending_interest(large, ANNUAL_INTEREST_RATE, T0, now)
        )

    @given(principal=amounts, s1=seconds, s2=seconds)
    @settings(max_examples=100)
    def test_pending_is_superadditive_over_splits(self, principal, s1, s2):
        """
        PROPERTY: Accruing in two steps books at most one wei per step less
        than accruing once (truncation), never more.
        """
        once = calculate_pending_interest(principal, ANNUAL_INTEREST_RATE, T0, T0 + timedelta(seconds=s1 + s2))
        first = calculate_pending_interest(principal, ANNUAL_INTEREST_RATE, T0, T0 + timedelta(seconds=s1))
        second = calculate_pending_interest(principal, ANNUAL_INTEREST_RATE, T0, T0 + timedelta(seconds=s2))
        assert once - 1 <= first + second <= once


class TestHealthFactorMonotonicity:

    @given(c1=amounts, c2=amounts, debt=st.integers(min_value=1, max_value=10 ** 30))
    @settings(max_examples=200)
    def test_more_collateral_is_healthier(self, c1, c2, debt):
        low, high = sorted((c1, c2))
        assert calculate_health_factor(low, debt, 150) <= calculate_health_factor(high, debt, 150)

    @given(collateral=amounts, d1=st.integers(min_value=1, max_value=10 ** 30),
           d2=st.integers(min_value=1, max_value=10 ** 30))
    @settings(max_examples=200)
    def test_more_debt_is_less_healthy(self, collateral, d1, d2):
        low, high = sorted((d1, d2))
        assert calculate_health_factor(collateral, low, 150) >= calculate_health_factor(collateral, high, 150)


def liquidatable_engine(root):
    """alice: 10 WETH / 10,000 debt; carol: liquidity. WETH then set to root**2 dollars."""
    prices = StaticPriceSource({WETH_POOL: exact_raw(50)})
    engine = make_engine(prices)
    engine.deposit_and_mint("alice", "WETH", units(10), units(10_000))
    engine.deposit_and_mint("carol", "WETH", units(50), units(20_000))
    prices.update_price(WETH_POOL, exact_raw(root))
    return engine


class TestLiquidationMonotonicity:

    @given(
        root=st.integers(min_value=34, max_value=38),
        cover=st.integers(min_value=1, max_value=10_000),
    )
    @settings(max_examples=60, deadline=None)
    def test_liquidation_improves_health(self, root, cover):
        """
        PROPERTY: Between $1156 and $1444 alice is liquidatable but above
        the point where the bonus outweighs the repayment, so any whole-unit
        liquidation succeeds and strictly raises her health factor.
        """
        engine = liquidatable_engine(root)
        before = engine.health_factor("alice")
        assert before < SCALE

        result = engine.liquidate("carol", "alice", "WETH", units(cover))

        assert result.starting_health_factor == before
        assert result.ending_health_factor > before
        assert engine.health_factor("alice") == result.ending_health_factor
        assert result.collateral_seized <= units(10)

    @given(root=st.integers(min_value=39, max_value=100))
    @settings(max_examples=30, deadline=None)
    def test_healthy_positions_never_liquidated(self, root):
        engine = liquidatable_engine(root)
        with pytest.raises(HealthFactorOk):
            engine.liquidate("carol", "alice", "WETH", units(1))
