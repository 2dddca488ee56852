"""
modules/broker/base.py
----------------------
Interface every brokerage backend must implement. Payloads use the IG
REST shapes (market details, positions, confirms); `market_data` and
`position_selector` parse them into domain objects.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional


class BaseBroker(ABC):

    @abstractmethod
    def authenticate(self) -> None:
        """Open (or refresh) the trading session."""
        raise NotImplementedError

    @abstractmethod
    def quote(self, venue_id: str) -> Optional[dict]:
        """Market details for one venue, or None when the venue is unknown."""
        raise NotImplementedError

    @abstractmethod
    def search(self, term: str) -> List[dict]:
        raise NotImplementedError

    @abstractmethod
    def open_positions(self) -> List[dict]:
        raise NotImplementedError

    @abstractmethod
    def place_order(
        self,
        venue_id: str,
        direction: str,
        size: float,
        *,
        expiry: str = "-",
        currency_code: Optional[str] = None,
        order_type: str = "MARKET",
        level: Optional[float] = None,
    ) -> dict:
        """Submit an opening order; returns the raw response (dealReference)."""
        raise NotImplementedError

    @abstractmethod
    def close_order(
        self,
        deal_id: str,
        direction: str,
        size: float,
        *,
        venue_id: Optional[str] = None,
        expiry: str = "-",
    ) -> dict:
        """Close `size` of the position; `direction` is the position's own side."""
        raise NotImplementedError

    @abstractmethod
    def update_levels(
        self,
        deal_id: str,
        stop_level: Optional[float] = None,
        limit_level: Optional[float] = None,
    ) -> dict:
        raise NotImplementedError

    @abstractmethod
    def confirm(self, deal_reference: str) -> dict:
        """Final deal status: {'dealStatus': 'ACCEPTED'|'REJECTED', 'reason', 'dealId'}."""
        raise NotImplementedError
