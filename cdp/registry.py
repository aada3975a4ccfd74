"""
registry.py - Collateral Registry

Tracks which assets are accepted as collateral and how each one is priced.
Known assets form an append-only list in registration order; an entry can
be overwritten but never removed.

Administrative checks and event emission happen at the engine boundary.
The registry itself only validates and stores.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, List

from .core import (
    CollateralTypeInfo, InvalidParameter, UnknownAsset,
)


class CollateralRegistry:
    """
    Mapping asset -> CollateralTypeInfo plus the ordered list of known assets.

    Example:
        registry = CollateralRegistry()
        registry.register_or_update("WETH", "WETH/USDX", False, 15_000)
        registry.info("WETH").price_reference_id   # 'WETH/USDX'
    """

    def __init__(self):
        self._info: Dict[str, CollateralTypeInfo] = {}
        self._known: List[str] = []

    def register_or_update(
        self,
        asset: str,
        price_reference_id: str,
        asset_is_first_in_pool: bool,
        liquidation_threshold_bps: int,
    ) -> bool:
        """
        Record (or overwrite) the configuration of a collateral asset.

        Returns:
            True if the asset was newly added, False if it was updated.

        Raises:
            InvalidParameter: Empty asset/price reference or non-positive threshold.
        """
        if not asset or not asset.strip():
            raise InvalidParameter("asset cannot be empty")
        if not price_reference_id or not price_reference_id.strip():
            raise InvalidParameter(f"{asset}: price_reference_id cannot be empty")
        if liquidation_threshold_bps <= 0:
            raise InvalidParameter(
                f"{asset}: liquidation_threshold_bps must be positive, got {liquidation_threshold_bps}"
            )

        is_new = asset not in self._info
        self._info[asset] = CollateralTypeInfo(
            price_reference_id=price_reference_id,
            asset_is_first_in_pool=bool(asset_is_first_in_pool),
            liquidation_threshold_bps=liquidation_threshold_bps,
        )
        if is_new:
            self._known.append(asset)
        return is_new

    def update_threshold(self, asset: str, liquidation_threshold_bps: int) -> None:
        """
        Change only the liquidation threshold of a registered asset.

        Raises:
            UnknownAsset: If the asset was never registered.
            InvalidParameter: If the threshold is not positive.
        """
        current = self.info(asset)
        if liquidation_threshold_bps <= 0:
            raise InvalidParameter(
                f"{asset}: liquidation_threshold_bps must be positive, got {liquidation_threshold_bps}"
            )
        self._info[asset] = replace(current, liquidation_threshold_bps=liquidation_threshold_bps)

    def info(self, asset: str) -> CollateralTypeInfo:
        """
        Raises:
            UnknownAsset: If there is no entry, or the entry is the unset sentinel.
        """
        entry = self._info.get(asset)
        if entry is None or not entry.is_set:
            raise UnknownAsset(f"Collateral asset not registered: {asset}")
        return entry

    def is_known(self, asset: str) -> bool:
        return asset in self._info

    def known_assets(self) -> List[str]:
        return list(self._known)

    def clone(self) -> CollateralRegistry:
        cloned = CollateralRegistry()
        cloned._info = dict(self._info)
        cloned._known = list(self._known)
        return cloned

    def __len__(self) -> int:
        return len(self._known)

    def __repr__(self):
        return f"CollateralRegistry({', '.join(self._known)})"
