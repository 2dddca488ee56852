from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from modules.broker.base import BaseBroker
from modules.exchange_rates import ExchangeRateService
from modules.instrument_resolver import InstrumentResolver
from utils.ttl_cache import TTLStore

INSTRUMENTS_JSON = Path(__file__).resolve().parent.parent / "config" / "instruments.json"

WEDNESDAY = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)
SATURDAY = datetime(2025, 10, 18, 12, 0, tzinfo=timezone.utc)


# ------------------------- Payload builders ------------------------- #

def market_payload(
    epic: str,
    *,
    bid: Optional[float],
    offer: Optional[float],
    status: str = "TRADEABLE",
    currency: str = "EUR",
    margin: Optional[float] = 5,
    name: Optional[str] = None,
    min_size: Optional[float] = 0.1,
    contract_size: Optional[float] = None,
    instrument_type: str = "",
    expiry: str = "-",
) -> dict:
    """IG /markets/{epic} (v3) shaped response."""
    return {
        "instrument": {
            "epic": epic,
            "name": name or epic,
            "type": instrument_type,
            "expiry": expiry,
            "marginFactor": margin,
            "contractSize": contract_size,
            "currencies": [{"code": currency, "isDefault": True}],
        },
        "snapshot": {"bid": bid, "offer": offer, "marketStatus": status},
        "dealingRules": {"minDealSize": {"value": min_size}} if min_size else {},
    }


def position_payload(
    deal_id: str,
    epic: str,
    *,
    direction: str = "BUY",
    size: float = 1.0,
    level: float,
    bid: float,
    offer: float,
    profit: Optional[float] = None,
    stop: Optional[float] = None,
    limit: Optional[float] = None,
    name: str = "",
    created: Optional[str] = None,
) -> dict:
    """IG /positions (v2) row."""
    position = {
        "dealId": deal_id,
        "direction": direction,
        "size": size,
        "level": level,
        "stopLevel": stop,
        "limitLevel": limit,
        "currency": "EUR",
        "profit": profit,
    }
    if created:
        position["createdDateUTC"] = created
    return {
        "position": position,
        "market": {"epic": epic, "instrumentName": name or epic, "bid": bid, "offer": offer},
    }


# ------------------------- Fake brokerage ------------------------- #

class FakeBroker(BaseBroker):
    """In-memory venue: quotes, searches and deals come from plain dicts."""

    def __init__(self):
        self.markets: Dict[str, dict] = {}
        self.search_results: Dict[str, List[dict]] = {}
        self.positions: List[dict] = []
        self.rejections: Dict[str, str] = {}
        self.update_response: Optional[dict] = None

        self.authenticated = False
        self.quotes: List[str] = []
        self.searches: List[str] = []
        self.orders: List[dict] = []
        self.closes: List[dict] = []
        self.updates: List[dict] = []
        self._confirms: Dict[str, dict] = {}

    def _deal(self, venue_id: Optional[str]) -> dict:
        ref = f"REF{len(self._confirms) + 1}"
        reason = self.rejections.get(venue_id or "")
        if reason:
            self._confirms[ref] = {"dealReference": ref, "dealStatus": "REJECTED", "reason": reason}
        else:
            self._confirms[ref] = {
                "dealReference": ref,
                "dealStatus": "ACCEPTED",
                "dealId": f"DEAL{len(self._confirms) + 1}",
            }
        return {"dealReference": ref}

    def authenticate(self) -> None:
        self.authenticated = True

    def quote(self, venue_id):
        self.quotes.append(venue_id)
        return self.markets.get(venue_id)

    def search(self, term):
        self.searches.append(term)
        return list(self.search_results.get(term, []))

    def open_positions(self):
        return list(self.positions)

    def place_order(self, venue_id, direction, size, *, expiry="-", currency_code=None,
                    order_type="MARKET", level=None):
        self.orders.append({
            "epic": venue_id, "direction": direction, "size": size, "expiry": expiry,
            "currency": currency_code, "order_type": order_type, "level": level,
        })
        return self._deal(venue_id)

    def close_order(self, deal_id, direction, size, *, venue_id=None, expiry="-"):
        self.closes.append({"deal_id": deal_id, "direction": direction, "size": size, "epic": venue_id})
        return self._deal(venue_id)

    def update_levels(self, deal_id, stop_level=None, limit_level=None):
        self.updates.append({"deal_id": deal_id, "stop": stop_level, "limit": limit_level})
        if self.update_response is not None:
            return self.update_response
        return self._deal(None)

    def confirm(self, deal_reference):
        return self._confirms.get(deal_reference, {"dealStatus": "UNKNOWN"})


# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def resolver():
    return InstrumentResolver.from_file(INSTRUMENTS_JSON, clock=lambda: WEDNESDAY)


@pytest.fixture
def weekend_resolver():
    return InstrumentResolver.from_file(INSTRUMENTS_JSON, clock=lambda: SATURDAY)


@pytest.fixture
def fx():
    """Rates pre-seeded in the cache so no HTTP call is ever made."""
    store = TTLStore(ttl=3600)
    store.set("JPY", 0.00555)
    store.set("USD", 0.92)
    store.set("GBP", 1.17)
    return ExchangeRateService(home_currency="EUR", store=store, session=MagicMock())
