"""
position_tracker.py
-------------------
Local dealId -> metadata map for positions this bot opened. The venue
stays the source of truth for the positions themselves; this only keeps
what the venue does not tell us (when and why a deal was opened).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class TrackedDeal:
    deal_id: str
    venue_id: str
    instrument: str
    direction: str
    size: float
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    signal_text: str = ""


class PositionTracker:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._deals: Dict[str, TrackedDeal] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------ #
    # Store contract
    # ------------------------------------------------------------------ #
    def get(self, deal_id: str) -> Optional[TrackedDeal]:
        return self._deals.get(deal_id)

    def set(self, deal: TrackedDeal) -> None:
        self._deals[deal.deal_id] = deal

    def expire(self, deal_id: str) -> None:
        self._deals.pop(deal_id, None)

    # ------------------------------------------------------------------ #
    # Event hooks
    # ------------------------------------------------------------------ #
    def on_open(
        self,
        deal_id: str,
        *,
        venue_id: str,
        instrument: str,
        direction: str,
        size: float,
        signal_text: str = "",
    ) -> TrackedDeal:
        deal = TrackedDeal(
            deal_id=deal_id,
            venue_id=venue_id,
            instrument=instrument,
            direction=direction,
            size=size,
            opened_at=self._clock(),
            signal_text=signal_text,
        )
        self.set(deal)
        logger.debug("[Tracker] opened %s %s %s x%s", deal_id, instrument, direction, size)
        return deal

    def on_close(self, deal_id: str) -> None:
        if deal_id in self._deals:
            logger.debug("[Tracker] closed %s", deal_id)
        self.expire(deal_id)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def created_at(self, deal_id: str) -> Optional[datetime]:
        deal = self.get(deal_id)
        return deal.opened_at if deal else None

    def snapshot(self) -> Dict[str, dict]:
        return {k: asdict(v) for k, v in self._deals.items()}

    def __len__(self) -> int:
        return len(self._deals)
