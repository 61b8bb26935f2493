"""Routing Table -- asset class to preferred/fallback venue.

One preference per asset class exists from construction onwards. Entries are
updated in place when venues register or when a caller sets a preference;
they are never added or deleted.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import logging

from src.venues.config import AssetClass

logger = logging.getLogger(__name__)


@dataclass
class RoutingPreference:
    """Where orders for an asset class go."""
    asset_class: AssetClass
    preferred_venue_id: Optional[str] = None
    fallback_venue_id: Optional[str] = None
    split_orders: bool = False  # stored only

    def to_dict(self) -> dict:
        return {
            "asset_class": self.asset_class.value,
            "preferred_venue_id": self.preferred_venue_id,
            "fallback_venue_id": self.fallback_venue_id,
            "split_orders": self.split_orders,
        }


class RoutingTable:
    """Asset-class routing preferences.

    Example:
        table = RoutingTable()
        table.update_for_venue("alpaca-main", [AssetClass.STOCK], is_primary=True)
        table.get(AssetClass.STOCK).preferred_venue_id  # "alpaca-main"
    """

    def __init__(self) -> None:
        self._prefs: dict[AssetClass, RoutingPreference] = {
            ac: RoutingPreference(asset_class=ac) for ac in AssetClass
        }

    def get(self, asset_class: AssetClass) -> RoutingPreference:
        return self._prefs[AssetClass(asset_class)]

    def all(self) -> list[RoutingPreference]:
        return list(self._prefs.values())

    def update_for_venue(
        self,
        venue_id: str,
        asset_classes: Iterable[AssetClass],
        is_primary: bool = False,
    ) -> list[AssetClass]:
        """Make a newly registered venue preferred where it should be.

        A class takes the venue as preferred when it has no preferred venue
        yet, or when the venue is primary.

        Returns:
            Asset classes whose preferred venue changed.
        """
        changed = []
        for ac in asset_classes:
            pref = self._prefs[AssetClass(ac)]
            if pref.preferred_venue_id is None or is_primary:
                if pref.preferred_venue_id != venue_id:
                    pref.preferred_venue_id = venue_id
                    changed.append(pref.asset_class)
        if changed:
            logger.debug(f"{venue_id} preferred for {[ac.value for ac in changed]}")
        return changed

    def set_preference(
        self,
        asset_class: AssetClass,
        preferred_venue_id: Optional[str],
        fallback_venue_id: Optional[str] = None,
        split_orders: bool = False,
    ) -> RoutingPreference:
        """Replace the preference for one asset class."""
        pref = self._prefs[AssetClass(asset_class)]
        pref.preferred_venue_id = preferred_venue_id
        pref.fallback_venue_id = fallback_venue_id
        pref.split_orders = split_orders
        logger.info(f"Routing preference set for {pref.asset_class.value}")
        return pref

    def forget_venue(self, venue_id: str) -> None:
        """Clear every reference to a removed venue."""
        for pref in self._prefs.values():
            if pref.preferred_venue_id == venue_id:
                pref.preferred_venue_id = None
            if pref.fallback_venue_id == venue_id:
                pref.fallback_venue_id = None

    def to_dict(self) -> dict:
        return {ac.value: pref.to_dict() for ac, pref in self._prefs.items()}
