"""
asset_ledger.py - Multi-Asset Custody Ledger

The AssetLedger models the value-transfer primitive the engine relies on:
moving an amount of an asset between two accounts. Every batch of moves is
validated as a whole and either fully applied or rejected.

Key responsibilities:
    - Maintains account balances per asset (non-negative, except SYSTEM_WALLET)
    - Executes PendingTransfer batches atomically (all moves succeed or all fail)
    - Enforces per-asset transfer rules
    - Invokes receive hooks after a batch is applied (token callbacks)
    - Provides clone()/restore() so callers can checkpoint and roll back
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple, Any
import copy

from .core import (
    Move, PendingTransfer, Positions,
    SYSTEM_WALLET,
    build_transfer,
)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AssetLedgerError(Exception):
    """Base exception for all asset ledger errors."""
    pass


class InsufficientFunds(AssetLedgerError):
    """Raised when a move would take an account balance below zero."""
    pass


class TransferRuleViolation(AssetLedgerError):
    """Raised when a move violates the asset's transfer rule."""
    pass


class AssetNotRegistered(AssetLedgerError):
    """Raised when operating on an asset that has not been registered."""
    pass


class AccountNotRegistered(AssetLedgerError):
    """Raised when operating on an account that has not been registered."""
    pass


class ExecuteResult(Enum):
    """
    Outcome of a transfer execution attempt.

    APPLIED: All moves were validated and applied.
    REJECTED: Validation failed; no move was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# Transfer rules validate a move and raise TransferRuleViolation if invalid.
TransferRule = Callable[["AssetLedger", Move], None]

# Receive hooks run after a batch is applied, once per move credited to the account.
ReceiveHook = Callable[["AssetLedger", Move], None]


# ============================================================================
# ASSETS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    Definition of a transferable asset.

    Attributes:
        symbol: Short identifier (e.g. "WETH", "USDX").
        name: Human-readable name.
        decimals: Number of decimals of the smallest unit.
        transfer_rule: Optional function validating moves of this asset.
        _frozen_state: Immutable key/value state (e.g. the minter identity).
    """
    symbol: str
    name: str
    decimals: int = 18
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> Dict[str, Any]:
        """Return the asset state as a new dict."""
        return dict(self._frozen_state)


def token(symbol: str, name: str, decimals: int = 18) -> Asset:
    """
    Create a plain transferable token.

    Args:
        symbol: Token symbol (e.g. "WETH").
        name: Full name (e.g. "Wrapped Ether").
        decimals: Decimals of the smallest unit (default: 18).
    """
    return Asset(symbol=symbol, name=name, decimals=decimals)


@dataclass(frozen=True, slots=True)
class TransferRecord:
    """
    An applied, immutable record of a transfer batch.

    Attributes:
        moves: Moves that were applied.
        origin: Who built the batch.
        timestamp: When the batch was built.
        exec_id: Unique execution identifier within this ledger.
        sequence_number: Monotonic sequence within the ledger.
    """
    moves: Tuple[Move, ...]
    origin: str
    timestamp: Any
    exec_id: str
    sequence_number: int


class AssetLedger:
    """
    Atomic, validated custody ledger for collateral assets and the stable unit.

    Design Principles:
        - Always validates: balances, registrations and transfer rules are
          checked for the whole batch before any move is applied.
        - Always logs: every applied batch is appended to transfer_log.

    Thread Safety:
        Not thread-safe. Calls are expected to be serialized by the caller.

    Example:
        assets = AssetLedger("custody")
        assets.register_asset(token("WETH", "Wrapped Ether"))
        assets.register_account("alice")
        assets.register_account("vault")
        assets.mint_to("alice", "WETH", 10 * 10 ** 18)

        pending = build_transfer(now, [Move(10 ** 18, "WETH", "alice", "vault", "deposit")])
        result = assets.execute(pending)
    """

    def __init__(self, name: str, verbose: bool = True):
        self.name = name
        self.verbose = verbose
        self.assets: Dict[str, Asset] = {}
        self.registered_accounts: Set[str] = set()
        self.balances: Dict[str, Dict[str, int]] = {}
        self.transfer_log: List[TransferRecord] = []
        self._next_sequence: int = 0
        self._hooks: Dict[str, List[ReceiveHook]] = defaultdict(list)

        # The system wallet issues and retires assets
        self.registered_accounts.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, account: str, asset: str) -> int:
        """
        Get the balance of an asset held by an account.

        Raises:
            AccountNotRegistered: If account is not registered
            AssetNotRegistered: If asset is not registered
        """
        if account not in self.registered_accounts:
            raise AccountNotRegistered(f"Account {account} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return self.balances[account].get(asset, 0)

    def get_asset(self, symbol: str) -> Asset:
        if symbol not in self.assets:
            raise AssetNotRegistered(f"Asset {symbol} not registered")
        return self.assets[symbol]

    def get_positions(self, asset: str) -> Positions:
        """Return all non-zero holdings of an asset, SYSTEM_WALLET excluded."""
        return {
            account: bals[asset]
            for account, bals in self.balances.items()
            if account != SYSTEM_WALLET and bals.get(asset, 0) != 0
        }

    def is_registered(self, account: str) -> bool:
        return account in self.registered_accounts

    def total_supply(self, asset: str) -> int:
        """
        Circulating supply of an asset: the sum of all non-system balances.

        Raises:
            AssetNotRegistered: If asset is not registered
        """
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return sum(
            self.balances[a].get(asset, 0)
            for a in sorted(self.registered_accounts)
            if a != SYSTEM_WALLET
        )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that every asset's balances net to zero across all accounts.

        The system wallet carries the negative of everything issued, so the
        sum over all accounts including it must be exactly zero.

        Returns:
            Dict with 'valid' and 'discrepancies' (asset -> net sum).
        """
        discrepancies = {}
        for symbol in self.assets:
            net = sum(self.balances[a].get(symbol, 0) for a in self.registered_accounts)
            if net != 0:
                discrepancies[symbol] = net
        return {
            'valid': not discrepancies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_account(self, account: str) -> str:
        """
        Register a new account.

        Raises:
            ValueError: If account is already registered
        """
        if account in self.registered_accounts:
            raise ValueError(f"Account {account} already registered")
        self.registered_accounts.add(account)
        self.balances[account] = defaultdict(int)
        return account

    def register_asset(self, asset: Asset) -> None:
        """
        Register a new asset.

        Raises:
            ValueError: If asset symbol is already registered
        """
        if asset.symbol in self.assets:
            raise ValueError(f"Asset {asset.symbol} already registered")
        self.assets[asset.symbol] = asset
        if self.verbose:
            rule_str = f", rule={asset.transfer_rule.__name__}" if asset.transfer_rule else ""
            print(f"📝 Registered: {asset.symbol} ({asset.name}) [{asset.decimals} decimals]{rule_str}")

    def update_asset_state(self, symbol: str, state_updates: Dict[str, Any]) -> None:
        """Merge state_updates into an asset's state (Asset is frozen, so it is replaced)."""
        old = self.get_asset(symbol)
        new_state = {**old.state, **state_updates}
        self.assets[symbol] = replace(old, _frozen_state=tuple(sorted(new_state.items())))

    def add_hook(self, account: str, hook: ReceiveHook) -> None:
        """
        Register a receive hook for an account.

        The hook runs after a batch is applied, once for every move whose
        dest is the account. Exceptions raised by the hook propagate to the
        caller of execute().
        """
        self._hooks[account].append(hook)

    def clear_hooks(self, account: Optional[str] = None) -> None:
        if account is None:
            self._hooks.clear()
        else:
            self._hooks.pop(account, None)

    def mint_to(
        self,
        account: str,
        asset: str,
        quantity: int,
        timestamp: Optional[datetime] = None,
    ) -> ExecuteResult:
        """
        Issue an asset to an account from the system wallet.

        Used to fund accounts with collateral tokens. Assets with a
        transfer rule (the stable unit) reject this unless the rule allows it.
        """
        pending = build_transfer(timestamp, [
            Move(quantity, asset, SYSTEM_WALLET, account, f"mint_{asset}")
        ], origin="mint_to")
        return self.execute(pending)

    # ========================================================================
    # TRANSFER EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        return f"xfer:{self.name}:{sequence:012d}"

    def execute(self, pending: PendingTransfer) -> ExecuteResult:
        """
        Execute a PendingTransfer atomically.

        All moves are validated against registration, transfer rules and
        balance constraints before any is applied. Receive hooks run after
        the batch is applied.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed (nothing applied)
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED [{self.name}]: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        record = TransferRecord(
            moves=pending.moves,
            origin=pending.origin,
            timestamp=pending.timestamp,
            exec_id=self._generate_exec_id(sequence),
            sequence_number=sequence,
        )

        self._execute_moves(record.moves)
        self.transfer_log.append(record)

        if self.verbose:
            moves_str = ", ".join(repr(m) for m in record.moves)
            print(f"✓ APPLIED [{self.name}] {record.exec_id}: {moves_str}")

        for move in record.moves:
            for hook in list(self._hooks.get(move.dest, ())):
                hook(self, move)

        return ExecuteResult.APPLIED

    def _validate_pending(self, pending: PendingTransfer) -> Tuple[bool, str]:
        """
        Validate a pending transfer against all constraints.

        Returns:
            Tuple of (success, reason); reason is empty on success.
        """
        for move in pending.moves:
            if move.asset not in self.assets:
                return False, f"asset not registered: {move.asset}"
            if move.source not in self.registered_accounts:
                return False, f"account not registered: {move.source}"
            if move.dest not in self.registered_accounts:
                return False, f"account not registered: {move.dest}"

            asset = self.assets[move.asset]
            if asset.transfer_rule:
                try:
                    asset.transfer_rule(self, move)
                except TransferRuleViolation as e:
                    return False, str(e)

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.asset)
            key_dst = (move.dest, move.asset)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        # SYSTEM_WALLET is exempt - it can hold any balance
        for (account, symbol), delta in net.items():
            if account == SYSTEM_WALLET:
                continue
            proposed = self.balances[account][symbol] + delta
            if proposed < 0:
                return False, f"{account} {symbol}: {proposed} < 0"

        return True, ""

    def _execute_moves(self, moves) -> None:
        for move in moves:
            self.balances[move.source][move.asset] -= move.quantity
            self.balances[move.dest][move.asset] += move.quantity

    # ========================================================================
    # CHECKPOINTING
    # ========================================================================

    def clone(self) -> AssetLedger:
        """
        Create a deep copy of this ledger's balances, assets and log.

        Hooks are shared by reference, not copied.
        """
        cloned = AssetLedger.__new__(AssetLedger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned.assets = dict(self.assets)
        cloned.registered_accounts = self.registered_accounts.copy()
        cloned.balances = {
            account: defaultdict(int, bals) for account, bals in self.balances.items()
        }
        cloned.transfer_log = list(self.transfer_log)
        cloned._next_sequence = self._next_sequence
        cloned._hooks = self._hooks
        return cloned

    def restore(self, checkpoint: AssetLedger) -> None:
        """
        Restore balances, assets and log in place from a clone().

        Used to roll back every transfer made since the checkpoint.
        """
        self.assets = dict(checkpoint.assets)
        self.registered_accounts = checkpoint.registered_accounts.copy()
        self.balances = {
            account: defaultdict(int, bals) for account, bals in checkpoint.balances.items()
        }
        self.transfer_log = list(checkpoint.transfer_log)
        self._next_sequence = checkpoint._next_sequence

    def snapshot_balances(self) -> Dict[str, Dict[str, int]]:
        """Return a plain deep copy of all non-zero balances."""
        return copy.deepcopy({
            account: {k: v for k, v in bals.items() if v != 0}
            for account, bals in self.balances.items()
        })
