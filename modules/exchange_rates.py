"""
exchange_rates.py
-----------------
Converts venue quote currencies into the account's home currency.
Live rates come from the frankfurter.app API; when it is unreachable a
static table keeps sizing alive with a warning.
"""
from __future__ import annotations

from typing import Dict, Optional

import requests

from utils.logger import setup_logger
from utils.ttl_cache import TTLStore

logger = setup_logger(__name__)

FRANKFURTER_URL = "https://api.frankfurter.app/latest"

# units of EUR per 1 unit of currency
FALLBACK_RATES_EUR: Dict[str, float] = {
    "USD": 0.92,
    "GBP": 1.17,
    "JPY": 0.0062,
    "CHF": 1.05,
    "AUD": 0.61,
    "CAD": 0.68,
    "CNY": 0.13,
    "HKD": 0.12,
    "NZD": 0.56,
    "SEK": 0.089,
    "NOK": 0.087,
    "DKK": 0.13,
}


class ExchangeRateService:
    def __init__(
        self,
        home_currency: str = "EUR",
        store: Optional[TTLStore] = None,
        api_url: str = FRANKFURTER_URL,
        session=None,
    ):
        self.home_currency = home_currency.upper()
        self.store = store if store is not None else TTLStore(ttl=300)
        self.api_url = api_url
        self.session = session or requests

    def _fetch(self, currency: str) -> float:
        resp = self.session.get(
            self.api_url, params={"from": currency, "to": self.home_currency}
        )
        resp.raise_for_status()
        data = resp.json()
        return float(data["rates"][self.home_currency])

    def _fallback(self, currency: str) -> float:
        if self.home_currency == "EUR":
            rate = FALLBACK_RATES_EUR.get(currency)
        else:
            src = 1.0 if currency == "EUR" else FALLBACK_RATES_EUR.get(currency)
            dst = FALLBACK_RATES_EUR.get(self.home_currency)
            rate = src / dst if src and dst else None
        if rate is None:
            logger.warning("⚠️ No rate for %s -> %s, assuming 1.0", currency, self.home_currency)
            return 1.0
        return rate

    def rate_to_home(self, currency: Optional[str]) -> float:
        """How many home-currency units one unit of `currency` is worth."""
        currency = (currency or self.home_currency).upper()
        if currency == self.home_currency:
            return 1.0

        cached = self.store.get(currency)
        if cached is not None:
            return cached

        try:
            rate = self._fetch(currency)
            logger.debug("💱 1 %s = %.6f %s (live)", currency, rate, self.home_currency)
        except (requests.RequestException, KeyError, TypeError, ValueError) as exc:
            rate = self._fallback(currency)
            logger.warning(
                "⚠️ Live FX lookup failed for %s (%s); using fallback %.6f",
                currency, exc, rate,
            )
        self.store.set(currency, rate)
        return rate

    def convert(self, amount: float, currency: Optional[str]) -> float:
        return amount * self.rate_to_home(currency)
