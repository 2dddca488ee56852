"""
market_data.py
--------------
Turns a venue id into a validated `MarketSnapshot`.

A market is tradable only when the venue says TRADEABLE *and* both bid and
offer are present. When the venue id does not resolve at all, one symbol
search is made for a replacement. Prices are never invented: a missing
quote raises `MarketDataUnavailable` for this attempt.
"""
from __future__ import annotations

import re
from typing import Optional

from models.errors import MarketDataUnavailable
from models.instrument import ResolvedInstrument
from models.market import MarketSnapshot
from modules.broker.base import BaseBroker
from utils.logger import setup_logger

logger = setup_logger(__name__)

EQUITY_PREFIXES = ("UA.", "UB.", "UC.", "UD.")
ISO_CURRENCIES = frozenset({
    "EUR", "USD", "GBP", "JPY", "CHF", "AUD", "CAD", "NZD", "SEK", "NOK",
    "DKK", "PLN", "HUF", "CZK", "TRY", "ZAR", "MXN", "SGD", "HKD", "CNH",
})
_PAIR_SEGMENT_RE = re.compile(r"^[A-Z]{6}$")
WEEKEND_MARKERS = (".SUN", ".WKND", ".IGN")


def to_number(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(str(value).replace(",", "."))
    except ValueError:
        return None


def is_equity_like(venue_id: str, instrument_type: str = "") -> bool:
    return instrument_type == "SHARES" or venue_id.startswith(EQUITY_PREFIXES)


def is_weekend_venue(venue_id: str, name: str = "") -> bool:
    """Weekend listings only take limit orders."""
    return any(m in venue_id for m in WEEKEND_MARKERS) or "weekend" in name.lower()


def currency_pair_segment(venue_id: str) -> Optional[str]:
    """'CS.D.GBPJPY.MINI.IP' -> 'GBPJPY'; None for non-FX venue ids."""
    parts = venue_id.split(".")
    if len(parts) < 3:
        return None
    seg = parts[2]
    if _PAIR_SEGMENT_RE.match(seg) and seg[:3] in ISO_CURRENCIES and seg[3:] in ISO_CURRENCIES:
        return seg
    return None


def is_currency_pair(venue_id: str, instrument_type: str = "") -> bool:
    return instrument_type == "CURRENCIES" or currency_pair_segment(venue_id) is not None


def parse_market(raw: dict, hints: Optional[ResolvedInstrument] = None) -> MarketSnapshot:
    """IG /markets/{epic} payload -> MarketSnapshot."""
    instrument = raw.get("instrument") or {}
    snap = raw.get("snapshot") or {}
    rules = raw.get("dealingRules") or {}

    venue_id = instrument.get("epic") or ""
    instrument_type = instrument.get("type") or ""
    bid = to_number(snap.get("bid"))
    offer = to_number(snap.get("offer"))
    status = snap.get("marketStatus") or "UNKNOWN"

    currencies = instrument.get("currencies") or []
    default_ccy = next((c for c in currencies if c.get("isDefault")), None)
    currency = ((default_ccy or (currencies[0] if currencies else {})).get("code")) or ""

    min_deal = to_number((rules.get("minDealSize") or {}).get("value"))
    if min_deal is None or min_deal <= 0:
        min_deal = (hints.min_deal_size if hints else None) or 1.0

    if is_equity_like(venue_id, instrument_type):
        increment = 1.0
    else:
        increment = (hints.deal_increment if hints else None) or min_deal
    if increment <= 0:
        increment = 1.0

    return MarketSnapshot(
        venue_id=venue_id,
        name=instrument.get("name") or venue_id,
        bid=bid,
        offer=offer,
        status=status,
        tradable=status == "TRADEABLE" and bool(bid) and bool(offer),
        margin_factor=to_number(instrument.get("marginFactor")),
        currency_code=currency,
        min_deal_size=min_deal,
        deal_increment=increment,
        instrument_type=instrument_type,
        expiry=instrument.get("expiry") or "-",
        contract_size=to_number(instrument.get("contractSize")),
        pip_value=to_number(instrument.get("valueOfOnePip")),
        one_pip_means=instrument.get("onePipMeans"),
    )


class MarketDataGate:
    def __init__(self, broker: BaseBroker):
        self.broker = broker

    def find_replacement(self, term: str, exclude: str = "") -> Optional[str]:
        markets = [m for m in self.broker.search(term) if m.get("epic") and m["epic"] != exclude]
        if not markets:
            return None
        # cash listings first, then whatever is currently open
        markets.sort(key=lambda m: (
            "CASH" not in m["epic"],
            m.get("marketStatus") != "TRADEABLE",
        ))
        return markets[0]["epic"]

    def fetch(
        self,
        venue_id: str,
        *,
        search_term: Optional[str] = None,
        hints: Optional[ResolvedInstrument] = None,
    ) -> MarketSnapshot:
        raw = self.broker.quote(venue_id)
        if not raw and search_term:
            replacement = self.find_replacement(search_term, exclude=venue_id)
            if replacement:
                logger.info("🔎 %s did not resolve, using search result %s", venue_id, replacement)
                raw = self.broker.quote(replacement)
        if not raw:
            raise MarketDataUnavailable(venue_id, "venue did not resolve")

        snapshot = parse_market(raw, hints)
        if not snapshot.venue_id:
            raise MarketDataUnavailable(venue_id, "malformed market payload")
        if not snapshot.tradable:
            logger.info(
                "⏭️ %s not tradable (status=%s bid=%s offer=%s)",
                snapshot.venue_id, snapshot.status, snapshot.bid, snapshot.offer,
            )
        return snapshot
