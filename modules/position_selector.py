"""
position_selector.py
--------------------
Picks which open position a CLOSE / SL / TP signal refers to.

Matching goes primary venue id -> fallback venue id -> name aliases.
With several candidates, level updates first drop positions the new
level cannot apply to, then:
  * CLOSE picks the highest live P&L (bank the best gain),
  * SL/TP updates pick the lowest (most urgent exposure).
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from models.instrument import ResolvedInstrument
from models.market import OpenPosition
from models.signal import SignalType
from modules.instrument_resolver import InstrumentResolver
from modules.market_data import to_number
from utils.logger import setup_logger

logger = setup_logger(__name__)

_SAME_LEVEL_TOLERANCE = 1e-9


def parse_position(item: dict) -> OpenPosition:
    """IG /positions (v2) row -> OpenPosition."""
    pos = item.get("position") or {}
    market = item.get("market") or {}
    created = pos.get("createdDateUTC") or pos.get("createdDate")
    try:
        created_at = datetime.fromisoformat(created) if created else None
    except ValueError:
        created_at = None
    return OpenPosition(
        deal_id=pos.get("dealId", ""),
        venue_id=market.get("epic", ""),
        direction=(pos.get("direction") or "BUY").upper(),
        size=to_number(pos.get("size")) or 0.0,
        open_level=to_number(pos.get("level") or pos.get("openLevel")) or 0.0,
        stop_level=to_number(pos.get("stopLevel")),
        limit_level=to_number(pos.get("limitLevel")),
        currency_code=pos.get("currency", ""),
        instrument_name=market.get("instrumentName", ""),
        bid=to_number(market.get("bid")),
        offer=to_number(market.get("offer")),
        live_pnl=to_number(pos.get("profit")),
        created_at=created_at,
    )


def parse_positions(items: Iterable[dict]) -> List[OpenPosition]:
    return [parse_position(i) for i in items]


def align_level_scale(level: float, reference: Optional[float]) -> float:
    """
    Chat levels are sometimes quoted 100x or 10x off the venue's scale
    (oil in dollars vs cents). Snap them onto the reference price.
    """
    if not reference or not level:
        return level
    ratio = reference / level
    if 80 < ratio < 120:
        scaled = level * 100
    elif 8 < ratio < 12:
        scaled = level * 10
    elif 0.008 < ratio < 0.012:
        scaled = level / 100
    else:
        return level
    logger.info("🔧 Level %s rescaled to %s (market %s)", level, scaled, reference)
    return scaled


def stop_is_compatible(position: OpenPosition, level: float) -> bool:
    if position.stop_level is not None and abs(position.stop_level - level) < _SAME_LEVEL_TOLERANCE:
        return False
    if position.direction == "BUY":
        return position.bid is not None and level < position.bid
    return position.offer is not None and level > position.offer


def limit_is_compatible(position: OpenPosition, level: float) -> bool:
    if position.limit_level is not None and abs(position.limit_level - level) < _SAME_LEVEL_TOLERANCE:
        return False
    if position.direction == "BUY":
        return position.offer is not None and level > position.offer
    return position.bid is not None and level < position.bid


class PositionSelector:
    def __init__(self, resolver: Optional[InstrumentResolver] = None):
        self.resolver = resolver

    def aliases_for(self, resolved: ResolvedInstrument) -> List[str]:
        names = {resolved.canonical_symbol.lower(), resolved.display_name.lower()}
        if self.resolver is not None:
            names.update(a.lower() for a in self.resolver.position_aliases(resolved.canonical_symbol))
        return sorted(n for n in names if n)

    def match(self, positions: List[OpenPosition], resolved: ResolvedInstrument) -> List[OpenPosition]:
        found = [p for p in positions if p.venue_id == resolved.venue_id]
        if found:
            return found
        if resolved.fallback is not None:
            found = [p for p in positions if p.venue_id == resolved.fallback.venue_id]
            if found:
                return found
        aliases = self.aliases_for(resolved)
        found = [
            p for p in positions
            if any(alias in p.instrument_name.lower() for alias in aliases)
        ]
        if found:
            logger.debug("🔗 %s matched by name: %s", resolved.canonical_symbol, [p.deal_id for p in found])
        return found

    @staticmethod
    def _narrow(pool: List[OpenPosition], keep, level: Optional[float], label: str) -> List[OpenPosition]:
        if level is None:
            return pool
        narrowed = [p for p in pool if keep(p, level)]
        if not narrowed:
            logger.warning("⚠️ No position compatible with %s %s, using all %d", label, level, len(pool))
            return pool
        return narrowed

    def select(
        self,
        candidates: List[OpenPosition],
        action: SignalType,
        *,
        stop_level: Optional[float] = None,
        limit_level: Optional[float] = None,
    ) -> Optional[OpenPosition]:
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        pool = self._narrow(candidates, stop_is_compatible, stop_level, "SL")
        pool = self._narrow(pool, limit_is_compatible, limit_level, "TP")

        def pnl(p: OpenPosition) -> float:
            value = p.pnl
            return value if value is not None else 0.0

        chosen = max(pool, key=pnl) if action is SignalType.POSITION_CLOSE else min(pool, key=pnl)
        logger.info(
            "🎯 %s: picked %s (P&L %.2f) from %d candidate(s)",
            action.value, chosen.deal_id, pnl(chosen), len(candidates),
        )
        return chosen
