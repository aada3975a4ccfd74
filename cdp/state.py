"""
state.py - EngineState, the explicit store of engine data

EngineState holds every ledger the engine mutates:
    - the collateral registry
    - collateral balances per (user, asset)
    - debt positions per user
    - the total_principal and total_interest_accrued aggregates
    - the event log

It implements the EngineView protocol, so the pure calculation modules
read it directly. The engine never mutates its live state during an
operation: it mutates a clone() and swaps it in on success.

The price source is a shared external collaborator. Clones reference the
same price source rather than copying it.
"""

from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List

from .core import (
    CollateralBalances, CollateralTypeInfo, DebtPosition, EMPTY_DEBT_POSITION,
    EngineConfig, EngineEvent, InsufficientCollateral,
)
from .price_source import PriceSource
from .registry import CollateralRegistry


class EngineState:
    """
    Mutable store of collateral, debt, aggregates and events.

    Example:
        state = EngineState(EngineConfig(), prices, datetime(2025, 1, 1))
        state.registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        state.set_collateral_balance("alice", "WETH", 10 ** 18)
        state.get_collateral_balance("alice", "WETH")   # 10 ** 18
    """

    def __init__(
        self,
        config: EngineConfig,
        price_source: PriceSource,
        current_time: datetime,
    ):
        self._config = config
        self.price_source = price_source
        self._current_time = current_time
        self.registry = CollateralRegistry()
        self.collateral: Dict[str, CollateralBalances] = defaultdict(dict)
        self.debts: Dict[str, DebtPosition] = {}
        self.total_principal: int = 0
        self.total_interest_accrued: int = 0
        self.event_log: List[EngineEvent] = []
        self._next_sequence: int = 0

    # ========================================================================
    # ENGINE VIEW
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    @property
    def config(self) -> EngineConfig:
        return self._config

    def get_collateral_info(self, asset: str) -> CollateralTypeInfo:
        return self.registry.info(asset)

    def list_collateral_assets(self) -> List[str]:
        return self.registry.known_assets()

    def get_collateral_balance(self, user: str, asset: str) -> int:
        return self.collateral.get(user, {}).get(asset, 0)

    def get_debt_position(self, user: str) -> DebtPosition:
        return self.debts.get(user, EMPTY_DEBT_POSITION)

    def get_pool_price(self, price_reference_id: str) -> int:
        return self.price_source.current_price(price_reference_id, self._current_time)

    # ========================================================================
    # MUTATORS
    # ========================================================================

    def set_current_time(self, new_time: datetime) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def set_collateral_balance(self, user: str, asset: str, amount: int) -> None:
        """
        Raises:
            InsufficientCollateral: If amount is negative.
        """
        if amount < 0:
            raise InsufficientCollateral(f"{user} {asset}: balance would be {amount}")
        if amount == 0:
            self.collateral[user].pop(asset, None)
        else:
            self.collateral[user][asset] = amount

    def set_debt_position(self, user: str, position: DebtPosition) -> None:
        self.debts[user] = position

    def emit(self, event_type: str, **data: Any) -> EngineEvent:
        """Append an event stamped with the current time and next sequence number."""
        event = EngineEvent(
            event_type=event_type,
            timestamp=self._current_time,
            sequence_number=self._next_sequence,
            data=dict(data),
        )
        self._next_sequence += 1
        self.event_log.append(event)
        return event

    # ========================================================================
    # QUERIES
    # ========================================================================

    def list_users(self) -> List[str]:
        """Users with any collateral or debt record, sorted."""
        users = {u for u, bals in self.collateral.items() if bals}
        users.update(self.debts)
        return sorted(users)

    def events_of_type(self, event_type: str) -> List[EngineEvent]:
        return [e for e in self.event_log if e.event_type == event_type]

    def verify_aggregates(self) -> Dict[str, Any]:
        """
        Verify that total_principal equals the sum of per-user principal.

        Returns:
            Dict with keys:
            - 'valid': bool
            - 'total_principal': the stored aggregate
            - 'sum_principal': the sum over users
            - 'discrepancies': list of dicts describing any violation

        Example:
            result = state.verify_aggregates()
            assert result['valid'], result['discrepancies']
        """
        sum_principal = sum(p.principal for p in self.debts.values())
        discrepancies = []
        if sum_principal != self.total_principal:
            discrepancies.append({
                'aggregate': 'total_principal',
                'expected': sum_principal,
                'actual': self.total_principal,
                'difference': self.total_principal - sum_principal,
            })
        for user, bals in self.collateral.items():
            for asset, amount in bals.items():
                if amount < 0:
                    discrepancies.append({
                        'aggregate': 'collateral',
                        'user': user,
                        'asset': asset,
                        'actual': amount,
                    })
        if self.total_interest_accrued < 0:
            discrepancies.append({
                'aggregate': 'total_interest_accrued',
                'actual': self.total_interest_accrued,
            })
        return {
            'valid': len(discrepancies) == 0,
            'total_principal': self.total_principal,
            'sum_principal': sum_principal,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> EngineState:
        """
        Create an independent copy for staging an operation.

        Registry, balances, positions, aggregates and the event log are
        copied. The config and price source are shared.
        """
        cloned = EngineState.__new__(EngineState)
        cloned._config = self._config
        cloned.price_source = self.price_source
        cloned._current_time = self._current_time
        cloned.registry = self.registry.clone()
        cloned.collateral = defaultdict(dict)
        for user, bals in self.collateral.items():
            cloned.collateral[user] = dict(bals)
        cloned.debts = dict(self.debts)
        cloned.total_principal = self.total_principal
        cloned.total_interest_accrued = self.total_interest_accrued
        cloned.event_log = list(self.event_log)
        cloned._next_sequence = self._next_sequence
        return cloned

    def __repr__(self):
        return (
            f"EngineState({len(self.registry)} assets, {len(self.list_users())} users, "
            f"principal={self.total_principal}, interest={self.total_interest_accrued})"
        )
