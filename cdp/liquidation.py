"""
liquidation.py - Repayment split and collateral seizure sizing

Pure functions shared by repayment and liquidation:

    calculate_repayment_split:  how a payment divides into interest and principal
    calculate_seizure:          how much collateral a liquidator receives

Interest is paid first, then principal, as in any amortizing loan.

The stateful liquidation sequence lives in CollateralEngine.liquidate();
this module only sizes it. LiquidationResult is the record returned to the
liquidator.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import PERCENT_PRECISION, EngineView
from .oracle import compute_amount_from_usd


@dataclass(frozen=True, slots=True)
class RepaymentSplit:
    """
    Division of a payment against a debt position.

    Attributes:
        principal_portion: Amount retiring principal.
        interest_portion: Amount paying pending interest.
    """
    principal_portion: int
    interest_portion: int

    def __post_init__(self):
        if self.principal_portion < 0:
            raise ValueError(f"principal_portion cannot be negative, got {self.principal_portion}")
        if self.interest_portion < 0:
            raise ValueError(f"interest_portion cannot be negative, got {self.interest_portion}")


@dataclass(frozen=True, slots=True)
class SeizurePlan:
    """
    Collateral to move from the target to the liquidator.

    Attributes:
        debt_in_tokens: Collateral equivalent of the debt covered.
        bonus: Bonus collateral on top of debt_in_tokens (before capping).
        total: Amount actually seized.
        capped: Whether total was limited by the target's balance.
    """
    debt_in_tokens: int
    bonus: int
    total: int
    capped: bool


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of a successful liquidation."""
    user: str
    liquidator: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus: int
    capped: bool
    principal_portion: int
    interest_portion: int
    starting_health_factor: int
    ending_health_factor: int

    def __repr__(self) -> str:
        return (
            f"LiquidationResult({self.user} by {self.liquidator}: "
            f"{self.collateral_seized} {self.asset} for {self.debt_covered} debt)"
        )


def calculate_repayment_split(amount: int, current_debt: int, principal: int) -> RepaymentSplit:
    """
    Split a payment into interest and principal portions.

        interest  = min(amount, max(0, current_debt - principal))
        principal = min(amount - interest, principal)

    Any excess above current_debt is in neither portion.

    Example:
        split = calculate_repayment_split(1000, 1050, 1000)
        # split.interest_portion == 50, split.principal_portion == 950
    """
    if amount < 0:
        raise ValueError(f"amount cannot be negative, got {amount}")
    interest = min(amount, max(0, current_debt - principal))
    principal_part = min(amount - interest, principal)
    return RepaymentSplit(principal_portion=principal_part, interest_portion=interest)


def calculate_seizure(debt_in_tokens: int, bonus_percent: int, balance: int) -> SeizurePlan:
    """
    Collateral to seize for debt_in_tokens worth of debt.

        bonus = debt_in_tokens * bonus_percent // 100
        total = min(debt_in_tokens + bonus, balance)
    """
    bonus = debt_in_tokens * bonus_percent // PERCENT_PRECISION
    wanted = debt_in_tokens + bonus
    if wanted > balance:
        return SeizurePlan(debt_in_tokens=debt_in_tokens, bonus=bonus, total=balance, capped=True)
    return SeizurePlan(debt_in_tokens=debt_in_tokens, bonus=bonus, total=wanted, capped=False)


def compute_seizure(view: EngineView, user: str, asset: str, debt_to_cover: int) -> SeizurePlan:
    """Size the seizure for covering debt_to_cover of user's debt with asset at the current price."""
    debt_in_tokens = compute_amount_from_usd(view, asset, debt_to_cover)
    return calculate_seizure(
        debt_in_tokens,
        view.config.liquidation_bonus_percent,
        view.get_collateral_balance(user, asset),
    )
