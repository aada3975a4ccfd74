"""
engine.py - CollateralEngine, the collateralized-debt position manager

Users lock registered collateral assets with the engine, mint the stable
unit against them, accrue simple interest on what they minted, and can be
liquidated by anyone once their health factor falls below 1.0.

The engine is the single mutator of EngineState. Every mutating entry
point runs inside _operation(), which:

    1. rejects reentry (ReentrantCall)
    2. stages a clone of the engine state and checkpoints the asset ledger
    3. runs the operation against the staged state
    4. on success swaps the staged state in; on any exception restores the
       asset ledger checkpoint, discards the staged state and re-raises

so every operation is all-or-nothing, transfers included.

Control flow of a user operation:
    accrue interest -> mutate ledgers -> check solvency (redeem and mint)

Example:
    engine = CollateralEngine("admin", assets, stable, prices,
                              initial_time=datetime(2025, 1, 1))
    engine.register_or_update_collateral("admin", "WETH", "WETH/USDX", False, 15_000)
    engine.deposit_and_mint("alice", "WETH", 10 * SCALE, 2000 * SCALE)
    engine.health_factor("alice")
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, List, Optional, Sequence, Tuple

from .asset_ledger import AssetLedger, ExecuteResult
from .core import (
    CollateralTypeInfo, DebtPosition, EngineConfig, EngineEvent, Move,
    ZeroAmount, InvalidParameter, LengthMismatch, NotAdministrator,
    TransferFailed, MintFailed, InsufficientCollateral,
    HealthFactorOk, HealthFactorNotImproved, ReentrantCall,
    EVENT_COLLATERAL_DEPOSITED, EVENT_COLLATERAL_REDEEMED,
    EVENT_DEBT_MINTED, EVENT_DEBT_BURNED, EVENT_LIQUIDATED,
    EVENT_COLLATERAL_REGISTERED, EVENT_COLLATERAL_UPDATED, EVENT_THRESHOLD_UPDATED,
    build_transfer,
)
from .interest import accrue_interest, calculate_current_debt, compute_current_debt
from .liquidation import (
    LiquidationResult, RepaymentSplit, calculate_repayment_split, compute_seizure,
)
from .oracle import compute_amount_from_usd, compute_token_price, compute_usd_value
from .price_source import PriceSource
from .solvency import assert_healthy, compute_collateral_value, compute_health_factor
from .stable_token import StableToken
from .state import EngineState


class CollateralEngine:
    """
    Collateral/debt ledger with interest accrual, solvency checks and liquidation.

    The first argument of every mutating entry point is the caller's
    identity. Collateral is held by the engine's custody account in the
    asset ledger; the same account is the stable token's minter.

    Args:
        admin: Identity allowed to configure collateral.
        assets: Asset ledger holding collateral tokens and the stable unit.
        stable: Stable token whose minter is custody_account.
        price_source: Source of pool sqrt prices.
        config: Protocol parameters (defaults to the reference values).
        custody_account: Engine's account in the asset ledger.
        initial_time: Starting logical time.
        collateral_assets, price_reference_ids, assets_first_in_pool,
        liquidation_thresholds_bps: Optional parallel lists of initial
            collateral configuration.
        verbose: Print operation results.
    """

    def __init__(
        self,
        admin: str,
        assets: AssetLedger,
        stable: StableToken,
        price_source: PriceSource,
        config: Optional[EngineConfig] = None,
        custody_account: str = "cdp_engine",
        initial_time: Optional[datetime] = None,
        collateral_assets: Optional[Sequence[str]] = None,
        price_reference_ids: Optional[Sequence[str]] = None,
        assets_first_in_pool: Optional[Sequence[bool]] = None,
        liquidation_thresholds_bps: Optional[Sequence[int]] = None,
        verbose: bool = True,
    ):
        if not admin or not admin.strip():
            raise InvalidParameter("admin cannot be empty")

        self.admin = admin
        self.assets = assets
        self.stable = stable
        self.custody_account = custody_account
        self.verbose = verbose
        self._locked = False
        self._state = EngineState(
            config or EngineConfig(),
            price_source,
            initial_time or datetime(2025, 1, 1),
        )

        if not assets.is_registered(custody_account):
            assets.register_account(custody_account)

        lists = [collateral_assets, price_reference_ids, assets_first_in_pool, liquidation_thresholds_bps]
        if any(lst is not None for lst in lists):
            lengths = {len(lst or ()) for lst in lists}
            if len(lengths) != 1:
                raise LengthMismatch(
                    f"collateral configuration lists differ in length: {[len(lst or ()) for lst in lists]}"
                )
            for asset, ref, first, bps in zip(*(lst or () for lst in lists)):
                self._register(self._state, asset, ref, first, bps)

    # ========================================================================
    # OPERATION FRAME
    # ========================================================================

    @contextmanager
    def _operation(self, description: str) -> Iterator[EngineState]:
        """Run one mutating operation atomically against a staged state."""
        if self._locked:
            raise ReentrantCall(f"{description} called during another operation")
        self._locked = True
        staged = self._state.clone()
        checkpoints = [(ledger, ledger.clone()) for ledger in self._ledgers()]
        try:
            yield staged
        except Exception as e:
            for ledger, checkpoint in checkpoints:
                ledger.restore(checkpoint)
            if self.verbose:
                print(f"✗ REJECTED [engine] {description}: {type(e).__name__}: {e}")
            raise
        else:
            self._state = staged
            if self.verbose:
                print(f"✓ APPLIED [engine] {description}")
        finally:
            self._locked = False

    def _ledgers(self) -> List[AssetLedger]:
        if self.stable.ledger is self.assets:
            return [self.assets]
        return [self.assets, self.stable.ledger]

    def _transfer(self, state: EngineState, asset: str, source: str, dest: str, amount: int, op: str) -> None:
        pending = build_transfer(state.current_time, [
            Move(amount, asset, source, dest, f"cdp_{op}")
        ], origin=f"engine:{op}")
        if self.assets.execute(pending) != ExecuteResult.APPLIED:
            raise TransferFailed(f"{op}: {amount} {asset} {source}→{dest} rejected")

    @staticmethod
    def _require_amount(amount: int, name: str = "amount") -> None:
        if amount == 0:
            raise ZeroAmount(f"{name} must be non-zero")
        if amount < 0:
            raise InvalidParameter(f"{name} cannot be negative, got {amount}")

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise NotAdministrator(f"{caller} is not the administrator")

    # ========================================================================
    # STEPS (run against a staged state)
    # ========================================================================

    def _register(
        self,
        state: EngineState,
        asset: str,
        price_reference_id: str,
        asset_is_first_in_pool: bool,
        liquidation_threshold_bps: int,
    ) -> bool:
        is_new = state.registry.register_or_update(
            asset, price_reference_id, asset_is_first_in_pool, liquidation_threshold_bps
        )
        state.emit(
            EVENT_COLLATERAL_REGISTERED if is_new else EVENT_COLLATERAL_UPDATED,
            asset=asset,
            price_reference_id=price_reference_id,
            asset_is_first_in_pool=bool(asset_is_first_in_pool),
            liquidation_threshold_bps=liquidation_threshold_bps,
        )
        return is_new

    def _deposit(self, state: EngineState, user: str, asset: str, amount: int) -> None:
        self._require_amount(amount)
        state.get_collateral_info(asset)
        state.set_collateral_balance(user, asset, state.get_collateral_balance(user, asset) + amount)
        self._transfer(state, asset, user, self.custody_account, amount, "deposit")
        state.emit(EVENT_COLLATERAL_DEPOSITED, user=user, asset=asset, amount=amount)

    def _redeem(self, state: EngineState, user: str, recipient: str, asset: str, amount: int) -> None:
        accrue_interest(state, user)
        self._require_amount(amount)
        state.get_collateral_info(asset)
        balance = state.get_collateral_balance(user, asset)
        if amount > balance:
            raise InsufficientCollateral(f"{user} holds {balance} {asset}, cannot redeem {amount}")
        state.set_collateral_balance(user, asset, balance - amount)
        self._transfer(state, asset, self.custody_account, recipient, amount, "redeem")
        state.emit(EVENT_COLLATERAL_REDEEMED, **{'from': user, 'to': recipient, 'asset': asset, 'amount': amount})

    def _mint(self, state: EngineState, user: str, amount: int) -> None:
        accrue_interest(state, user)
        self._require_amount(amount)
        position = state.get_debt_position(user)
        state.set_debt_position(user, replace(position, principal=position.principal + amount))
        state.total_principal += amount
        assert_healthy(state, user)
        if not self.stable.issue(self.custody_account, user, amount, state.current_time):
            raise MintFailed(f"stable issuance of {amount} to {user} failed")
        state.emit(EVENT_DEBT_MINTED, user=user, amount=amount)

    def _burn(self, state: EngineState, on_behalf_of: str, payer: str, amount: int) -> RepaymentSplit:
        accrue_interest(state, on_behalf_of)
        self._require_amount(amount)
        position = state.get_debt_position(on_behalf_of)
        current_debt = calculate_current_debt(position, state.config.annual_interest_rate, state.current_time)
        split = calculate_repayment_split(amount, current_debt, position.principal)

        remaining = position.principal - split.principal_portion
        if remaining == 0:
            state.set_debt_position(on_behalf_of, DebtPosition())
        else:
            state.set_debt_position(on_behalf_of, replace(position, principal=remaining))
        state.total_principal -= split.principal_portion
        state.total_interest_accrued -= split.interest_portion

        symbol = self.stable.symbol
        self._transfer(state, symbol, payer, self.custody_account, amount, "repay")
        if not self.stable.retire(self.custody_account, amount, state.current_time):
            raise TransferFailed(f"retiring {amount} {symbol} failed")

        state.emit(
            EVENT_DEBT_BURNED,
            on_behalf_of=on_behalf_of,
            payer=payer,
            amount=amount,
            principal_portion=split.principal_portion,
            interest_portion=split.interest_portion,
        )
        return split

    # ========================================================================
    # USER OPERATIONS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset: str, amount: int) -> None:
        """
        Lock amount of asset with the engine.

        Raises:
            ZeroAmount, UnknownAsset, TransferFailed
        """
        with self._operation(f"deposit_collateral({caller}, {asset}, {amount})") as state:
            self._deposit(state, caller, asset, amount)

    def redeem_collateral(self, caller: str, asset: str, amount: int) -> None:
        """
        Withdraw amount of asset back to the caller.

        Raises:
            ZeroAmount, UnknownAsset, InsufficientCollateral, TransferFailed,
            HealthFactorBroken
        """
        with self._operation(f"redeem_collateral({caller}, {asset}, {amount})") as state:
            self._redeem(state, caller, caller, asset, amount)
            assert_healthy(state, caller)

    def mint_debt(self, caller: str, amount: int) -> None:
        """
        Mint amount of the stable unit against the caller's collateral.

        Raises:
            ZeroAmount, HealthFactorBroken, PriceUnavailable, MintFailed
        """
        with self._operation(f"mint_debt({caller}, {amount})") as state:
            self._mint(state, caller, amount)

    def deposit_and_mint(self, caller: str, asset: str, collateral_amount: int, mint_amount: int) -> None:
        """Deposit collateral and mint against it in one atomic operation."""
        with self._operation(
            f"deposit_and_mint({caller}, {asset}, {collateral_amount}, {mint_amount})"
        ) as state:
            self._deposit(state, caller, asset, collateral_amount)
            self._mint(state, caller, mint_amount)

    def repay_debt(self, caller: str, amount: int) -> RepaymentSplit:
        """
        Repay amount of the caller's debt with the caller's stable units.

        Interest is paid first, then principal. The full amount is pulled
        and retired even when it exceeds the debt. No solvency check.

        Raises:
            ZeroAmount, TransferFailed
        """
        with self._operation(f"repay_debt({caller}, {amount})") as state:
            return self._burn(state, caller, caller, amount)

    def repay_and_redeem(self, caller: str, asset: str, collateral_amount: int, repay_amount: int) -> RepaymentSplit:
        """Repay debt, then redeem collateral, in one atomic operation."""
        with self._operation(
            f"repay_and_redeem({caller}, {asset}, {collateral_amount}, {repay_amount})"
        ) as state:
            split = self._burn(state, caller, caller, repay_amount)
            self._redeem(state, caller, caller, asset, collateral_amount)
            assert_healthy(state, caller)
            return split

    def liquidate(self, caller: str, user: str, asset: str, debt_to_cover: int) -> LiquidationResult:
        """
        Cover debt_to_cover of an unhealthy user's debt in exchange for
        collateral worth that much plus the liquidation bonus.

        The seizure is capped at the user's balance of the asset. The
        user's health factor must strictly improve.

        Raises:
            ZeroAmount, UnknownAsset, HealthFactorOk, HealthFactorNotImproved,
            PriceUnavailable, TransferFailed
        """
        with self._operation(f"liquidate({caller}, {user}, {asset}, {debt_to_cover})") as state:
            self._require_amount(debt_to_cover, "debt_to_cover")
            state.get_collateral_info(asset)
            accrue_interest(state, user)

            starting = compute_health_factor(state, user)
            if starting >= state.config.min_health_factor:
                raise HealthFactorOk(starting)

            plan = compute_seizure(state, user, asset, debt_to_cover)
            if plan.total > 0:
                state.set_collateral_balance(
                    user, asset, state.get_collateral_balance(user, asset) - plan.total
                )
                self._transfer(state, asset, self.custody_account, caller, plan.total, "liquidate")

            split = self._burn(state, user, caller, debt_to_cover)

            ending = compute_health_factor(state, user)
            if ending <= starting:
                raise HealthFactorNotImproved(starting, ending)

            state.emit(
                EVENT_LIQUIDATED,
                user=user,
                liquidator=caller,
                asset=asset,
                collateral_seized=plan.total,
                debt_covered=debt_to_cover,
            )
            return LiquidationResult(
                user=user,
                liquidator=caller,
                asset=asset,
                debt_covered=debt_to_cover,
                collateral_seized=plan.total,
                bonus=plan.bonus,
                capped=plan.capped,
                principal_portion=split.principal_portion,
                interest_portion=split.interest_portion,
                starting_health_factor=starting,
                ending_health_factor=ending,
            )

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def register_or_update_collateral(
        self,
        caller: str,
        asset: str,
        price_reference_id: str,
        asset_is_first_in_pool: bool,
        liquidation_threshold_bps: int,
    ) -> bool:
        """
        Accept a new collateral asset or overwrite an existing one.

        Returns:
            True if the asset was newly registered.

        Raises:
            NotAdministrator, InvalidParameter
        """
        self._require_admin(caller)
        with self._operation(f"register_or_update_collateral({asset}, {price_reference_id})") as state:
            return self._register(
                state, asset, price_reference_id, asset_is_first_in_pool, liquidation_threshold_bps
            )

    def update_liquidation_threshold(self, caller: str, asset: str, liquidation_threshold_bps: int) -> None:
        """
        Raises:
            NotAdministrator, UnknownAsset, InvalidParameter
        """
        self._require_admin(caller)
        with self._operation(f"update_liquidation_threshold({asset}, {liquidation_threshold_bps})") as state:
            state.registry.update_threshold(asset, liquidation_threshold_bps)
            state.emit(EVENT_THRESHOLD_UPDATED, asset=asset, liquidation_threshold_bps=liquidation_threshold_bps)

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._state.current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the engine's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
            ReentrantCall: If called during an operation
        """
        if self._locked:
            raise ReentrantCall("advance_time called during an operation")
        self._state.set_current_time(new_time)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    @property
    def state(self) -> EngineState:
        """The committed engine state. Treat as read-only."""
        return self._state

    @property
    def config(self) -> EngineConfig:
        return self._state.config

    @property
    def events(self) -> List[EngineEvent]:
        return list(self._state.event_log)

    def current_debt(self, user: str) -> int:
        """Principal plus interest pending since the last accrual."""
        return compute_current_debt(self._state, user)

    def health_factor(self, user: str) -> int:
        return compute_health_factor(self._state, user)

    def liquidation_health_factor(self, user: str) -> int:
        """
        Health factor liquidate() would start from: the user's pending
        interest is accrued on a scratch copy of the state first, which
        books it to the global counter and leaves principal as the debt.
        """
        scratch = self._state.clone()
        accrue_interest(scratch, user)
        return compute_health_factor(scratch, user)

    def is_liquidatable(self, user: str) -> bool:
        """Whether liquidate() would accept the user's position right now."""
        return self.liquidation_health_factor(user) < self._state.config.min_health_factor

    def collateral_value(self, user: str) -> int:
        return compute_collateral_value(self._state, user)

    def user_collateral(self, user: str, asset: str) -> int:
        return self._state.get_collateral_balance(user, asset)

    def user_debt_info(self, user: str) -> Tuple[int, Optional[datetime]]:
        """(principal, last_accrual_time)"""
        position = self._state.get_debt_position(user)
        return position.principal, position.last_accrual_time

    def known_collateral_assets(self) -> List[str]:
        return self._state.list_collateral_assets()

    def collateral_type_info(self, asset: str) -> CollateralTypeInfo:
        return self._state.get_collateral_info(asset)

    def total_debt(self) -> Tuple[int, int]:
        """(total_principal, total_interest_accrued)"""
        return self._state.total_principal, self._state.total_interest_accrued

    def token_price(self, asset: str) -> int:
        return compute_token_price(self._state, asset)

    def usd_value(self, asset: str, amount: int) -> int:
        return compute_usd_value(self._state, asset, amount)

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return compute_amount_from_usd(self._state, asset, usd_amount)

    def annual_interest_rate(self) -> int:
        return self._state.config.annual_interest_rate

    def list_users(self) -> List[str]:
        return self._state.list_users()

    def verify_aggregates(self):
        return self._state.verify_aggregates()

    def __repr__(self):
        return f"CollateralEngine(admin={self.admin}, {self._state!r})"
