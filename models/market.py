# --------------------------------------------------------------------
# models/market.py
# Live venue data. Snapshots are fetched fresh per decision and never
# persisted; OpenPosition rows are owned by the brokerage.
# --------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional


@dataclass(frozen=True)
class MarketSnapshot:
    venue_id: str
    name: str
    bid: Optional[float]
    offer: Optional[float]
    status: str
    tradable: bool
    margin_factor: Optional[float]   # as reported: ratio (<1) or percent (>=1)
    currency_code: str
    min_deal_size: float
    deal_increment: float
    instrument_type: str = ""
    expiry: str = "-"
    contract_size: Optional[float] = None
    pip_value: Optional[float] = None
    one_pip_means: Optional[str] = None

    def price_for(self, direction: Optional[str]) -> Optional[float]:
        """BUY fills at the offer, SELL at the bid, no direction -> mid."""
        if direction == "BUY":
            return self.offer
        if direction == "SELL":
            return self.bid
        if self.bid is None or self.offer is None:
            return self.bid or self.offer
        return (self.bid + self.offer) / 2


@dataclass
class OpenPosition:
    deal_id: str
    venue_id: str
    direction: Literal["BUY", "SELL"]
    size: float
    open_level: float
    stop_level: Optional[float] = None
    limit_level: Optional[float] = None
    currency_code: str = ""
    instrument_name: str = ""
    bid: Optional[float] = None
    offer: Optional[float] = None
    live_pnl: Optional[float] = None     # venue-reported, authoritative
    created_at: Optional[datetime] = None

    def estimated_pnl(self) -> Optional[float]:
        """Price-delta P&L in quote currency from the current bid/offer."""
        if self.direction == "BUY":
            if self.bid is None:
                return None
            return (self.bid - self.open_level) * self.size
        if self.offer is None:
            return None
        return (self.open_level - self.offer) * self.size

    @property
    def pnl(self) -> Optional[float]:
        return self.live_pnl if self.live_pnl is not None else self.estimated_pnl()
