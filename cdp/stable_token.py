"""
stable_token.py - The stable unit of account

The stable token lives in the AssetLedger like any other asset, but only
its minter (the engine) may issue or retire it. Issuance is a move out of
SYSTEM_WALLET; retirement is a move back into it. A transfer rule on the
asset enforces that both carry the minter as the authorizing caller.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional

from .asset_ledger import (
    Asset, AssetLedger, ExecuteResult, TransferRuleViolation,
)
from .core import (
    Move, NotMinter, SYSTEM_WALLET, build_transfer,
)


def minter_only_rule(ledger: AssetLedger, move: Move) -> None:
    """
    Restrict issuance and retirement of an asset to its minter.

    Ordinary holder-to-holder transfers are unrestricted. A move whose
    source or dest is SYSTEM_WALLET must carry metadata['caller'] equal to
    the asset's 'minter' state entry.

    Raises:
        TransferRuleViolation: If the asset has no minter or the caller differs.
    """
    if move.source != SYSTEM_WALLET and move.dest != SYSTEM_WALLET:
        return
    minter = ledger.get_asset(move.asset).state.get('minter')
    if not minter:
        raise TransferRuleViolation(f"{move.asset} has no minter")
    caller = (move.metadata or {}).get('caller')
    if caller != minter:
        raise TransferRuleViolation(f"{move.asset}: {caller} is not the minter")


def create_stable_asset(symbol: str, name: str, minter: str, decimals: int = 18) -> Asset:
    """
    Create the stable-unit asset definition with minter-only issuance.

    Args:
        symbol: Token symbol (e.g. "USDX").
        name: Full name.
        minter: Account allowed to issue and retire (the engine's identity).
        decimals: Decimals of the smallest unit (default: 18).
    """
    return Asset(
        symbol=symbol,
        name=name,
        decimals=decimals,
        transfer_rule=minter_only_rule,
        _frozen_state=(('minter', minter),),
    )


class StableToken:
    """
    Issue/retire interface for the stable unit.

    issue() and retire() report failure by returning False, mirroring a
    token contract that returns a success flag. Calls from anyone but the
    minter raise NotMinter.
    """

    def __init__(self, ledger: AssetLedger, symbol: str):
        self.ledger = ledger
        self.symbol = symbol

    @property
    def minter(self) -> str:
        return self.ledger.get_asset(self.symbol).state.get('minter', '')

    def balance_of(self, account: str) -> int:
        return self.ledger.get_balance(account, self.symbol)

    def total_supply(self) -> int:
        return self.ledger.total_supply(self.symbol)

    def _require_minter(self, caller: str) -> None:
        if caller != self.minter:
            raise NotMinter(f"{caller} is not the minter of {self.symbol}")

    def issue(
        self,
        caller: str,
        recipient: str,
        amount: int,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Issue amount of the stable unit to recipient. Returns True on success."""
        self._require_minter(caller)
        pending = build_transfer(timestamp, [
            Move(amount, self.symbol, SYSTEM_WALLET, recipient, f"issue_{self.symbol}",
                 metadata={'caller': caller})
        ], origin=f"issue:{caller}")
        return self.ledger.execute(pending) == ExecuteResult.APPLIED

    def retire(
        self,
        caller: str,
        amount: int,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Retire amount of the stable unit held by the caller. Returns True on success."""
        self._require_minter(caller)
        pending = build_transfer(timestamp, [
            Move(amount, self.symbol, caller, SYSTEM_WALLET, f"retire_{self.symbol}",
                 metadata={'caller': caller})
        ], origin=f"retire:{caller}")
        return self.ledger.execute(pending) == ExecuteResult.APPLIED

    def __repr__(self):
        return f"StableToken({self.symbol}, minter={self.minter})"
