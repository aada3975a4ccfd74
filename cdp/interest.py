"""
interest.py - Simple interest accrual on minted debt

Interest is linear in time:

    pending = principal * annual_rate * elapsed_seconds // (SECONDS_PER_YEAR * SCALE)

Per-user positions store only principal and the time of the last accrual.
Accrual books the pending amount into the engine-wide
total_interest_accrued counter and restarts the user's clock; it never
adds interest to the user's principal. Between accruals a user's current
debt is principal plus the interest pending since last_accrual_time.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from .core import (
    DebtPosition, EngineView, EVENT_INTEREST_ACCRUED,
    SCALE, SECONDS_PER_YEAR,
)

if TYPE_CHECKING:
    from .state import EngineState


def elapsed_seconds(last_accrual_time: Optional[datetime], now: datetime) -> int:
    """Whole seconds from last_accrual_time to now (0 if unset or not later)."""
    if last_accrual_time is None:
        return 0
    return max(0, int((now - last_accrual_time).total_seconds()))


def calculate_pending_interest(
    principal: int,
    annual_rate: int,
    last_accrual_time: Optional[datetime],
    now: datetime,
) -> int:
    """
    Interest accrued on principal since last_accrual_time.

    Returns 0 when principal is 0, the position was never touched, or no
    time has elapsed.
    """
    if principal == 0:
        return 0
    elapsed = elapsed_seconds(last_accrual_time, now)
    if elapsed == 0:
        return 0
    return principal * annual_rate * elapsed // (SECONDS_PER_YEAR * SCALE)


def calculate_current_debt(position: DebtPosition, annual_rate: int, now: datetime) -> int:
    """Principal plus pending interest."""
    return position.principal + calculate_pending_interest(
        position.principal, annual_rate, position.last_accrual_time, now
    )


def compute_current_debt(view: EngineView, user: str) -> int:
    """Current debt of a user as seen through an EngineView. Read-only."""
    return calculate_current_debt(
        view.get_debt_position(user),
        view.config.annual_interest_rate,
        view.current_time,
    )


def accrue_interest(state: EngineState, user: str) -> int:
    """
    Book a user's pending interest and restart their accrual clock.

    Behaviour:
        - principal 0 or never accrued: clock set to now, returns 0
        - no time elapsed: no change, returns 0
        - otherwise: pending interest added to total_interest_accrued,
          clock set to now, INTEREST_ACCRUED emitted

    Returns:
        The interest booked.
    """
    now = state.current_time
    position = state.get_debt_position(user)

    if position.principal == 0 or position.last_accrual_time is None:
        state.set_debt_position(user, replace(position, last_accrual_time=now))
        return 0

    if elapsed_seconds(position.last_accrual_time, now) == 0:
        return 0

    interest = calculate_pending_interest(
        position.principal,
        state.config.annual_interest_rate,
        position.last_accrual_time,
        now,
    )
    state.total_interest_accrued += interest
    state.set_debt_position(user, replace(position, last_accrual_time=now))
    state.emit(EVENT_INTEREST_ACCRUED, user=user, interest=interest)
    return interest
