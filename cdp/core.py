"""
Core types and constants for the collateralized-debt engine.

This module provides the foundational data structures and protocols:
1. Fixed-point constants and the reference protocol parameters
2. Protocols: EngineView for read-only engine access
3. Immutable data structures: CollateralTypeInfo, DebtPosition, EngineConfig,
   Move, PendingTransfer, EngineEvent
4. Exceptions: CdpError and the domain-specific error taxonomy
5. Type aliases and event type constants

All amounts are plain Python ints in the smallest unit of their asset.
USD values and the stable unit use an 18-decimal fixed-point scale.
Division always truncates toward zero.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, Mapping, runtime_checkable
)


# ============================================================================
# FIXED-POINT CONSTANTS
# ============================================================================

# 1.0 in 18-decimal fixed point.
SCALE = 10 ** 18

# Square-root price encoding (Q64.96) and its square.
Q96 = 2 ** 96
Q192 = 2 ** 192

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Largest unsigned 256-bit integer, used as the "no debt" health factor.
MAX_UINT256 = 2 ** 256 - 1


# ============================================================================
# PROTOCOL PARAMETERS
# ============================================================================
#
# The reference deployment keeps these fixed. They are collected into
# EngineConfig so an engine instance carries its own copy.

# 5% simple annual interest, fixed point.
ANNUAL_INTEREST_RATE = 5 * 10 ** 16

# Collateral value must be at least 150% of debt.
LIQUIDATION_THRESHOLD_PERCENT = 150

# Liquidators seize 10% more collateral than the debt they cover.
LIQUIDATION_BONUS_PERCENT = 10

PERCENT_PRECISION = 100
BPS_PRECISION = 10_000

MIN_HEALTH_FACTOR = SCALE
MAX_HEALTH_FACTOR = MAX_UINT256

# Default per-asset threshold recorded in the registry (150%).
DEFAULT_LIQUIDATION_THRESHOLD_BPS = 15_000

# Issuance/retirement counterparty in the asset ledger.
# The system wallet is exempt from balance validation.
SYSTEM_WALLET = "system"


# ============================================================================
# EVENT TYPES
# ============================================================================

# Event type constants (strings, not enum, matching unit type constants).
EVENT_COLLATERAL_DEPOSITED = "COLLATERAL_DEPOSITED"
EVENT_COLLATERAL_REDEEMED = "COLLATERAL_REDEEMED"
EVENT_DEBT_MINTED = "DEBT_MINTED"
EVENT_DEBT_BURNED = "DEBT_BURNED"
EVENT_INTEREST_ACCRUED = "INTEREST_ACCRUED"
EVENT_LIQUIDATED = "LIQUIDATED"
EVENT_COLLATERAL_REGISTERED = "COLLATERAL_REGISTERED"
EVENT_COLLATERAL_UPDATED = "COLLATERAL_UPDATED"
EVENT_THRESHOLD_UPDATED = "THRESHOLD_UPDATED"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset symbol to quantity held by one user.
CollateralBalances = Dict[str, int]

# Mapping from account to quantity held of a single asset.
Positions = Dict[str, int]

# Event payload.
EventData = Mapping[str, Any]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class CdpError(Exception):
    """Base exception for all engine errors. Every CdpError aborts the whole operation."""
    pass


class ZeroAmount(CdpError):
    """Raised when an operation is given a zero amount."""
    pass


class LengthMismatch(CdpError):
    """Raised when parallel configuration lists have different lengths."""
    pass


class InvalidParameter(CdpError):
    """Raised when a configuration value is out of range."""
    pass


class NotAdministrator(CdpError):
    """Raised when a non-administrator calls an administrative operation."""
    pass


class NotMinter(CdpError):
    """Raised when anyone but the engine tries to issue or retire the stable unit."""
    pass


class UnknownAsset(CdpError):
    """Raised when an asset has not been registered as collateral."""
    pass


class TransferFailed(CdpError):
    """Raised when the asset ledger rejects a value transfer."""
    pass


class MintFailed(CdpError):
    """Raised when the stable token reports that issuance failed."""
    pass


class InsufficientCollateral(CdpError):
    """Raised when a withdrawal would take a collateral balance below zero."""
    pass


class PriceUnavailable(CdpError):
    """Raised when the price source returns the zero sentinel for a pool."""
    pass


class ReentrantCall(CdpError):
    """Raised when a mutating entry point is entered while another is in progress."""
    pass


class HealthFactorBroken(CdpError):
    """Raised when an operation would leave a position below the minimum health factor."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"Health factor broken: {health_factor}")


class HealthFactorOk(CdpError):
    """Raised when liquidation is attempted on a position that is not unhealthy."""

    def __init__(self, health_factor: int):
        self.health_factor = health_factor
        super().__init__(f"Health factor ok: {health_factor}")


class HealthFactorNotImproved(CdpError):
    """Raised when a liquidation does not strictly raise the target's health factor."""

    def __init__(self, starting: int, ending: int):
        self.starting = starting
        self.ending = ending
        super().__init__(f"Health factor not improved: {starting} -> {ending}")


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Immutable protocol parameters for one engine instance.

    Defaults reproduce the reference deployment. None of these are
    governable at runtime.
    """
    annual_interest_rate: int = ANNUAL_INTEREST_RATE
    liquidation_threshold_percent: int = LIQUIDATION_THRESHOLD_PERCENT
    liquidation_bonus_percent: int = LIQUIDATION_BONUS_PERCENT
    min_health_factor: int = MIN_HEALTH_FACTOR

    def __post_init__(self):
        if self.annual_interest_rate < 0:
            raise ValueError(f"annual_interest_rate cannot be negative, got {self.annual_interest_rate}")
        if self.liquidation_threshold_percent <= 0:
            raise ValueError(
                f"liquidation_threshold_percent must be positive, got {self.liquidation_threshold_percent}"
            )
        if self.liquidation_bonus_percent < 0:
            raise ValueError(f"liquidation_bonus_percent cannot be negative, got {self.liquidation_bonus_percent}")
        if self.min_health_factor <= 0:
            raise ValueError(f"min_health_factor must be positive, got {self.min_health_factor}")


# ============================================================================
# LEDGER RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralTypeInfo:
    """
    Registry entry for one accepted collateral asset.

    Attributes:
        price_reference_id: Pool whose quoted ratio prices the asset.
            An empty string is the "unset" sentinel.
        asset_is_first_in_pool: Whether the asset is the pool's first asset.
        liquidation_threshold_bps: e.g. 15000 for 150%.
    """
    price_reference_id: str
    asset_is_first_in_pool: bool
    liquidation_threshold_bps: int

    @property
    def is_set(self) -> bool:
        return bool(self.price_reference_id)


UNSET_COLLATERAL_INFO = CollateralTypeInfo(
    price_reference_id="",
    asset_is_first_in_pool=False,
    liquidation_threshold_bps=0,
)


@dataclass(frozen=True, slots=True)
class DebtPosition:
    """
    Per-user debt record.

    Only principal is stored. Interest is derived on demand from
    last_accrual_time and booked into a global counter on accrual.
    """
    principal: int = 0
    last_accrual_time: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.principal, int) or isinstance(self.principal, bool):
            raise ValueError(f"principal must be int, got {type(self.principal)}")
        if self.principal < 0:
            raise ValueError(f"principal cannot be negative, got {self.principal}")


EMPTY_DEBT_POSITION = DebtPosition()


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Immutable notification emitted on every engine state change.

    Consumed by off-chain observers, never by the engine itself.
    """
    event_type: str
    timestamp: datetime
    sequence_number: int
    data: EventData

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.data.items())
        return f"Event#{self.sequence_number}({self.event_type}: {fields})"


# ============================================================================
# VALUE TRANSFERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of an asset between two accounts.

    Attributes:
        quantity: Amount to transfer in the asset's smallest unit (positive int).
        asset: Symbol of the asset being transferred.
        source: Account debited.
        dest: Account credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional extra information (e.g. the authorizing caller).
    """
    quantity: int
    asset: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Move asset cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.asset}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransfer:
    """
    A batch of moves to be applied atomically by the asset ledger.

    Attributes:
        moves: Tuple of transfers, validated and applied together.
        timestamp: Logical time the batch was built.
        origin: Free-form description of who built it (e.g. "engine:mint").
    """
    moves: Tuple[Move, ...]
    timestamp: datetime
    origin: str = "external"

    def is_empty(self) -> bool:
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransfer({len(self.moves)} moves, origin={self.origin})"


def build_transfer(
    timestamp: datetime,
    moves: List[Move],
    origin: str = "external",
) -> PendingTransfer:
    """
    Build a PendingTransfer from a list of moves.

    Example:
        pending = build_transfer(now, [
            Move(10 ** 18, "WETH", "alice", "vault", "deposit")
        ])
        assets.execute(pending)
    """
    return PendingTransfer(moves=tuple(moves), timestamp=timestamp, origin=origin)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class EngineView(Protocol):
    """
    Read-only interface to engine state.

    Pure calculation modules (oracle, interest, solvency, liquidation)
    accept an EngineView and never mutate it. EngineState implements this
    protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time."""
        ...

    @property
    def config(self) -> EngineConfig:
        """Return the protocol parameters."""
        ...

    def get_collateral_info(self, asset: str) -> CollateralTypeInfo:
        """Return registry info, raising UnknownAsset when unregistered."""
        ...

    def list_collateral_assets(self) -> List[str]:
        """Return known collateral assets in registration order."""
        ...

    def get_collateral_balance(self, user: str, asset: str) -> int:
        """Return the user's deposited balance of an asset (0 if none)."""
        ...

    def get_debt_position(self, user: str) -> DebtPosition:
        """Return the user's debt record (empty if none)."""
        ...

    def get_pool_price(self, price_reference_id: str) -> int:
        """Return the raw square-root price for a pool (0 if unavailable)."""
        ...
