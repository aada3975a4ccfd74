"""
stress.py - Price-path stress runner

Walks an engine through a sequence of collateral prices and reports how
positions respond.

Execution order each step():
1. Advance engine time
2. Set the pool price for the step
3. Scan positions (collateral value, debt, health factor)
4. If a liquidator is configured, liquidate unhealthy positions

scan_positions() can also be used on its own to snapshot an engine.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .core import PERCENT_PRECISION
from .engine import CollateralEngine
from .liquidation import LiquidationResult
from .price_source import StaticPriceSource, generate_price_path


@dataclass(frozen=True, slots=True)
class PositionReport:
    """
    Snapshot of one user's position.

    health_factor counts pending interest; liquidatable is decided after
    accrual, the way liquidate() decides it, so the two can disagree.
    """
    user: str
    collateral_value: int
    current_debt: int
    health_factor: int
    liquidatable: bool


@dataclass
class StressReport:
    """
    Accumulated results of a price-path run.

    Attributes:
        steps: Number of steps processed.
        first_liquidatable: user -> time the position first became liquidatable.
        lowest_health_factor: user -> lowest health factor observed.
        liquidations: Liquidations executed by the runner.
    """
    steps: int = 0
    first_liquidatable: Dict[str, datetime] = field(default_factory=dict)
    lowest_health_factor: Dict[str, int] = field(default_factory=dict)
    liquidations: List[LiquidationResult] = field(default_factory=list)

    def record(self, timestamp: datetime, reports: List[PositionReport]) -> None:
        self.steps += 1
        for r in reports:
            lowest = self.lowest_health_factor.get(r.user)
            if lowest is None or r.health_factor < lowest:
                self.lowest_health_factor[r.user] = r.health_factor
            if r.liquidatable and r.user not in self.first_liquidatable:
                self.first_liquidatable[r.user] = timestamp


def scan_positions(engine: CollateralEngine, users: Optional[List[str]] = None) -> List[PositionReport]:
    """
    Report every user's position at the engine's current time and prices.

    Args:
        engine: Engine to inspect.
        users: Users to report (default: every user with a record).
    """
    reports = []
    for user in users if users is not None else engine.list_users():
        reports.append(PositionReport(
            user=user,
            collateral_value=engine.collateral_value(user),
            current_debt=engine.current_debt(user),
            health_factor=engine.health_factor(user),
            liquidatable=engine.is_liquidatable(user),
        ))
    return reports


class StressRunner:
    """
    Drives one collateral asset's pool price along a path.

    Args:
        engine: Engine under test.
        price_source: The StaticPriceSource the engine reads.
        asset: Collateral asset whose pool is moved.
        liquidator: Optional identity that liquidates unhealthy positions.
        liquidation_percent: Share of a position's debt covered per liquidation.
    """

    def __init__(
        self,
        engine: CollateralEngine,
        price_source: StaticPriceSource,
        asset: str,
        liquidator: Optional[str] = None,
        liquidation_percent: int = 50,
    ):
        if not 0 < liquidation_percent <= PERCENT_PRECISION:
            raise ValueError(f"liquidation_percent must be in (0, 100], got {liquidation_percent}")
        self.engine = engine
        self.price_source = price_source
        self.asset = asset
        self.liquidator = liquidator
        self.liquidation_percent = liquidation_percent
        self.report = StressReport()

    def step(self, timestamp: datetime, unit_price: int) -> List[PositionReport]:
        """
        Move to timestamp at unit_price and process all positions.

        Returns:
            Position reports taken before any liquidation.

        Raises:
            CdpError: Any liquidation failure (e.g. HealthFactorNotImproved
                for a position too far underwater) aborts the run.
        """
        info = self.engine.collateral_type_info(self.asset)
        self.engine.advance_time(timestamp)
        self.price_source.set_unit_price(info.price_reference_id, unit_price, info.asset_is_first_in_pool)

        reports = scan_positions(self.engine)
        self.report.record(timestamp, reports)

        if self.liquidator:
            for r in reports:
                if not r.liquidatable or r.user == self.liquidator:
                    continue
                if self.engine.user_collateral(r.user, self.asset) == 0:
                    continue
                debt_to_cover = r.current_debt * self.liquidation_percent // PERCENT_PRECISION
                if debt_to_cover == 0:
                    continue
                result = self.engine.liquidate(self.liquidator, r.user, self.asset, debt_to_cover)
                self.report.liquidations.append(result)

        return reports

    def run(self, path: List[Tuple[datetime, int]]) -> StressReport:
        """Process every (timestamp, unit_price) in the path."""
        for timestamp, unit_price in path:
            self.step(timestamp, unit_price)
        return self.report


def run_price_path(
    engine: CollateralEngine,
    price_source: StaticPriceSource,
    asset: str,
    path: List[Tuple[datetime, int]],
    liquidator: Optional[str] = None,
    liquidation_percent: int = 50,
) -> StressReport:
    """
    Convenience wrapper: run a StressRunner over a path.

    Example:
        path = generate_price_path(2000 * SCALE, start, 30, timedelta(days=1), seed=7)
        report = run_price_path(engine, prices, "WETH", path)
        report.first_liquidatable
    """
    runner = StressRunner(engine, price_source, asset, liquidator, liquidation_percent)
    return runner.run(path)


__all__ = [
    'PositionReport', 'StressReport', 'StressRunner',
    'scan_positions', 'run_price_path', 'generate_price_path',
]
