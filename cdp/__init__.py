"""
cdp - Collateralized-Debt Engine

Lock volatile collateral, mint a stable unit against it, accrue simple
interest, and liquidate positions whose health factor falls below 1.0.

Usage:
    from cdp import (
        AssetLedger, token, create_stable_asset, StableToken,
        StaticPriceSource, CollateralEngine, SCALE,
    )

    assets = AssetLedger("custody")
    assets.register_asset(token("WETH", "Wrapped Ether"))
    assets.register_asset(create_stable_asset("USDX", "USD Stable", minter="cdp_engine"))
    assets.register_account("alice")
    assets.mint_to("alice", "WETH", 10 * SCALE)

    prices = StaticPriceSource()
    prices.set_unit_price("WETH/USDX", 2000 * SCALE, asset_is_first_in_pool=False)

    engine = CollateralEngine("admin", assets, StableToken(assets, "USDX"), prices)
    engine.register_or_update_collateral("admin", "WETH", "WETH/USDX", False, 15_000)
    engine.deposit_and_mint("alice", "WETH", 10 * SCALE, 10_000 * SCALE)
    engine.health_factor("alice")   # 1.333... * SCALE
"""

# Core types
from .core import (
    EngineView,
    CollateralTypeInfo,
    UNSET_COLLATERAL_INFO,
    DebtPosition,
    EngineConfig,
    EngineEvent,
    Move,
    PendingTransfer,
    build_transfer,
    CdpError,
    ZeroAmount,
    LengthMismatch,
    InvalidParameter,
    NotAdministrator,
    NotMinter,
    UnknownAsset,
    TransferFailed,
    MintFailed,
    InsufficientCollateral,
    HealthFactorBroken,
    HealthFactorOk,
    HealthFactorNotImproved,
    PriceUnavailable,
    ReentrantCall,
    SCALE,
    Q96,
    Q192,
    SECONDS_PER_YEAR,
    ANNUAL_INTEREST_RATE,
    LIQUIDATION_THRESHOLD_PERCENT,
    LIQUIDATION_BONUS_PERCENT,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    SYSTEM_WALLET,
    EVENT_COLLATERAL_DEPOSITED,
    EVENT_COLLATERAL_REDEEMED,
    EVENT_DEBT_MINTED,
    EVENT_DEBT_BURNED,
    EVENT_INTEREST_ACCRUED,
    EVENT_LIQUIDATED,
    EVENT_COLLATERAL_REGISTERED,
    EVENT_COLLATERAL_UPDATED,
    EVENT_THRESHOLD_UPDATED,
)

# Collaborators
from .asset_ledger import (
    AssetLedger,
    Asset,
    ExecuteResult,
    AssetLedgerError,
    InsufficientFunds,
    TransferRuleViolation,
    AssetNotRegistered,
    AccountNotRegistered,
    token,
)
from .stable_token import StableToken, create_stable_asset, minter_only_rule
from .price_source import (
    PriceSource,
    StaticPriceSource,
    TimeSeriesPriceSource,
    encode_sqrt_price_x96,
    generate_price_path,
)

# Calculations
from .registry import CollateralRegistry
from .oracle import (
    mul_div,
    calculate_unit_price,
    calculate_usd_value,
    calculate_amount_from_usd,
    compute_token_price,
    compute_usd_value,
    compute_amount_from_usd,
)
from .interest import (
    calculate_pending_interest,
    calculate_current_debt,
    compute_current_debt,
    accrue_interest,
)
from .solvency import (
    calculate_health_factor,
    compute_collateral_value,
    compute_health_factor,
    assert_healthy,
    is_healthy,
)
from .liquidation import (
    RepaymentSplit,
    SeizurePlan,
    LiquidationResult,
    calculate_repayment_split,
    calculate_seizure,
    compute_seizure,
)

# Engine
from .state import EngineState
from .engine import CollateralEngine

# Stress
from .stress import PositionReport, StressReport, StressRunner, scan_positions, run_price_path


__all__ = [
    # Core
    'EngineView', 'CollateralTypeInfo', 'UNSET_COLLATERAL_INFO', 'DebtPosition',
    'EngineConfig', 'EngineEvent', 'Move', 'PendingTransfer', 'build_transfer',
    # Errors
    'CdpError', 'ZeroAmount', 'LengthMismatch', 'InvalidParameter', 'NotAdministrator',
    'NotMinter', 'UnknownAsset', 'TransferFailed', 'MintFailed', 'InsufficientCollateral',
    'HealthFactorBroken', 'HealthFactorOk', 'HealthFactorNotImproved',
    'PriceUnavailable', 'ReentrantCall',
    # Constants
    'SCALE', 'Q96', 'Q192', 'SECONDS_PER_YEAR', 'ANNUAL_INTEREST_RATE',
    'LIQUIDATION_THRESHOLD_PERCENT', 'LIQUIDATION_BONUS_PERCENT',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'SYSTEM_WALLET',
    # Events
    'EVENT_COLLATERAL_DEPOSITED', 'EVENT_COLLATERAL_REDEEMED', 'EVENT_DEBT_MINTED',
    'EVENT_DEBT_BURNED', 'EVENT_INTEREST_ACCRUED', 'EVENT_LIQUIDATED',
    'EVENT_COLLATERAL_REGISTERED', 'EVENT_COLLATERAL_UPDATED', 'EVENT_THRESHOLD_UPDATED',
    # Asset ledger
    'AssetLedger', 'Asset', 'ExecuteResult', 'AssetLedgerError', 'InsufficientFunds',
    'TransferRuleViolation', 'AssetNotRegistered', 'AccountNotRegistered', 'token',
    # Stable token
    'StableToken', 'create_stable_asset', 'minter_only_rule',
    # Pricing
    'PriceSource', 'StaticPriceSource', 'TimeSeriesPriceSource',
    'encode_sqrt_price_x96', 'generate_price_path',
    # Registry / oracle
    'CollateralRegistry', 'mul_div', 'calculate_unit_price', 'calculate_usd_value',
    'calculate_amount_from_usd', 'compute_token_price', 'compute_usd_value',
    'compute_amount_from_usd',
    # Interest
    'calculate_pending_interest', 'calculate_current_debt', 'compute_current_debt',
    'accrue_interest',
    # Solvency
    'calculate_health_factor', 'compute_collateral_value', 'compute_health_factor',
    'assert_healthy', 'is_healthy',
    # Liquidation
    'RepaymentSplit', 'SeizurePlan', 'LiquidationResult',
    'calculate_repayment_split', 'calculate_seizure', 'compute_seizure',
    # Engine
    'EngineState', 'CollateralEngine',
    # Stress
    'PositionReport', 'StressReport', 'StressRunner', 'scan_positions', 'run_price_path',
]

__version__ = '1.0.0'
