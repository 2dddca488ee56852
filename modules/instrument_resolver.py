"""
instrument_resolver.py
----------------------
Maps the instrument word of a signal ("GOLD", "EUR/USD", "TSLA") to a
brokerage venue id using the static table in config/instruments.json.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from models.instrument import (
    InstrumentMapping,
    InstrumentTable,
    ResolvedInstrument,
    VenueFallback,
)
from utils.logger import setup_logger

logger = setup_logger(__name__)

TICKER_RE = re.compile(r"^[A-Z]{2,6}$")
_MINI_SUFFIX_RE = re.compile(r"\s+Mini$", re.IGNORECASE)


def normalize_name(name: str) -> str:
    """'eur/usd ' -> 'EURUSD', 'S&P 500' -> 'S&P500'."""
    return re.sub(r"\s+", "", (name or "").replace("/", "")).upper()


def load_instrument_table(path: str | Path) -> InstrumentTable:
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    table = InstrumentTable.model_validate(raw)
    logger.info("✅ Loaded %d instrument mappings from %s", len(table.instruments), path)
    return table


class InstrumentResolver:
    """
    Read-only lookup over an `InstrumentTable`.

    `resolve()` always returns a fresh ResolvedInstrument, so the caller can
    overwrite its venue id without touching the table.
    """

    def __init__(
        self,
        table: InstrumentTable,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.table = table
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._index: Dict[str, str] = {}
        for symbol, mapping in table.instruments.items():
            self._index[normalize_name(symbol)] = symbol
            for alias in mapping.aliases:
                self._index.setdefault(normalize_name(alias), symbol)

    @classmethod
    def from_file(cls, path: str | Path, clock: Optional[Callable[[], datetime]] = None):
        return cls(load_instrument_table(path), clock=clock)

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #
    def lookup(self, name: str) -> Optional[Tuple[str, InstrumentMapping]]:
        symbol = self._index.get(normalize_name(name))
        if symbol is None:
            return None
        return symbol, self.table.instruments[symbol]

    def canonical(self, name: str) -> str:
        found = self.lookup(name)
        return found[0] if found else normalize_name(name)

    def is_weekend(self, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        return now.weekday() >= 5

    def price_bounds(self, symbol: str) -> Optional[Tuple[float, float]]:
        return self.table.price_bounds.get(self.canonical(symbol))

    def position_aliases(self, symbol: str) -> List[str]:
        return list(self.table.position_aliases.get(self.canonical(symbol), []))

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #
    def resolve(self, name: str, now: Optional[datetime] = None) -> Optional[ResolvedInstrument]:
        """
        Return the venue for `name`, or None when there is no mapping and
        the name does not even look like a ticker.

        Weekend: a fallback tagged `weekend` becomes the venue and the
        regular venue becomes the fallback; margin/size hints stay.
        Unknown tickers get a synthesized, disabled venue id.
        """
        found = self.lookup(name)
        if found is None:
            return self._synthesize(normalize_name(name))

        symbol, mapping = found
        resolved = ResolvedInstrument(
            canonical_symbol=symbol,
            venue_id=mapping.venue_id,
            display_name=mapping.display_name,
            expiry=mapping.expiry,
            margin_percent_hint=mapping.margin_percent,
            contract_size_hint=mapping.contract_size,
            min_deal_size=mapping.min_deal_size,
            deal_increment=mapping.deal_increment,
            fallback=mapping.fallback,
            search_term=mapping.search_term or _MINI_SUFFIX_RE.sub("", mapping.display_name),
            disabled=mapping.disabled,
        )

        fb = mapping.fallback
        if fb is not None and fb.weekend and self.is_weekend(now):
            logger.info("📅 Weekend: %s -> %s", mapping.venue_id, fb.venue_id)
            resolved = resolved.model_copy(update={
                "venue_id": fb.venue_id,
                "display_name": fb.display_name,
                "expiry": fb.expiry,
                "fallback": VenueFallback(
                    venue_id=mapping.venue_id,
                    display_name=mapping.display_name,
                    expiry=mapping.expiry,
                ),
                "weekend_substituted": True,
            })
        return resolved

    def _synthesize(self, ticker: str) -> Optional[ResolvedInstrument]:
        if not TICKER_RE.match(ticker):
            logger.info("⏭️ No venue mapping for %r", ticker)
            return None
        prefix = next(
            (p for letters, p in self.table.ticker_buckets.items() if ticker[0] in letters),
            None,
        )
        if prefix is None:
            return None
        venue_id = f"{prefix}.D.{ticker}.CASH.IP"
        logger.warning("⚠️ Unknown ticker %s -> %s (disabled)", ticker, venue_id)
        return ResolvedInstrument(
            canonical_symbol=ticker,
            venue_id=venue_id,
            display_name=ticker,
            search_term=ticker,
            disabled=True,
        )
