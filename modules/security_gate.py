"""
security_gate.py
----------------
Hard cap on realised risk: realized_risk <= max_risk_multiple × target.

On a breach the gate looks for a "mini" listing of the same instrument
and re-sizes against it; if none fits the trade is rejected. Instruments
listed under `risk_cap_exemptions` in config/instruments.json skip the cap.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from models.errors import MarketDataUnavailable, RiskExceeded, SizingAborted
from models.market import MarketSnapshot
from models.trade_outcome import SizingResult
from modules.broker.base import BaseBroker
from modules.market_data import MarketDataGate
from modules.position_sizer import PositionSizer
from utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class GateDecision:
    sizing: SizingResult
    snapshot: MarketSnapshot
    exempt: bool = False
    downsized: bool = False


def is_mini_market(market: dict) -> bool:
    epic = market.get("epic") or ""
    name = (market.get("instrumentName") or "").lower()
    return "mini" in name or "MINI" in epic or "CEAM" in epic


class SecurityGate:
    def __init__(
        self,
        sizer: PositionSizer,
        market_data: MarketDataGate,
        broker: BaseBroker,
        exemptions: Iterable[str] = (),
        max_risk_multiple: float = 3.0,
        floor_warning_ratio: float = 1.5,
    ):
        self.sizer = sizer
        self.market_data = market_data
        self.broker = broker
        self.exemptions = {e.upper() for e in exemptions}
        self.max_risk_multiple = max_risk_multiple
        self.floor_warning_ratio = floor_warning_ratio

    def cap(self, target_risk: float) -> float:
        return self.max_risk_multiple * target_risk

    def enforce(
        self,
        sizing: SizingResult,
        snapshot: MarketSnapshot,
        *,
        symbol: str,
        direction: Optional[str] = None,
        search_term: str = "",
        signal_price: Optional[float] = None,
        price_bounds: Optional[Tuple[float, float]] = None,
    ) -> GateDecision:
        """Return the accepted sizing (possibly on a mini venue) or raise."""
        if sizing.aborted:
            raise SizingAborted(snapshot.venue_id, sizing.abort_reason or "sizing aborted")

        target = sizing.target_risk
        if symbol.upper() in self.exemptions:
            if sizing.realized_risk > self.cap(target):
                logger.warning(
                    "⚠️ %s is exempt from the risk cap: %.2f vs cap %.2f",
                    symbol, sizing.realized_risk, self.cap(target),
                )
            return GateDecision(sizing=sizing, snapshot=snapshot, exempt=True)

        if sizing.realized_risk <= self.cap(target):
            self._warn_floor(sizing, snapshot.venue_id)
            return GateDecision(sizing=sizing, snapshot=snapshot)

        logger.warning(
            "🛡️ %s: risk %.2f exceeds cap %.2f, looking for a mini variant",
            snapshot.venue_id, sizing.realized_risk, self.cap(target),
        )
        decision = self._try_mini(
            snapshot, target, direction=direction, search_term=search_term or symbol,
            signal_price=signal_price, price_bounds=price_bounds,
        )
        if decision is not None:
            return decision
        raise RiskExceeded(snapshot.venue_id, sizing.realized_risk, self.cap(target))

    def _warn_floor(self, sizing: SizingResult, venue_id: str) -> None:
        if sizing.floor_forced and sizing.realized_risk > self.floor_warning_ratio * sizing.target_risk:
            logger.warning(
                "⚠️ %s: minimum deal size forces risk %.2f (target %.2f)",
                venue_id, sizing.realized_risk, sizing.target_risk,
            )

    def mini_candidates(self, search_term: str, exclude: str) -> List[dict]:
        markets = self.broker.search(f"{search_term} Mini")
        return [m for m in markets if is_mini_market(m) and m.get("epic") and m["epic"] != exclude]

    def _try_mini(
        self,
        snapshot: MarketSnapshot,
        target: float,
        *,
        direction: Optional[str],
        search_term: str,
        signal_price: Optional[float],
        price_bounds: Optional[Tuple[float, float]],
    ) -> Optional[GateDecision]:
        for market in self.mini_candidates(search_term, snapshot.venue_id):
            try:
                mini = self.market_data.fetch(market["epic"])
            except MarketDataUnavailable as exc:
                logger.debug("⏭️ mini %s skipped: %s", market["epic"], exc)
                continue
            if not mini.tradable:
                continue
            resized = self.sizer.size(
                mini, target, direction=direction,
                signal_price=signal_price, price_bounds=price_bounds,
            )
            if resized.aborted or resized.realized_risk > self.cap(target):
                continue
            logger.info(
                "✅ Down-sized to %s: %s contracts, risk %.2f",
                mini.venue_id, resized.contracts, resized.realized_risk,
            )
            self._warn_floor(resized, mini.venue_id)
            return GateDecision(sizing=resized, snapshot=mini, downsized=True)
        return None
