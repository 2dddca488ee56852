# --------------------------------------------------------------------
# models/errors.py
# Failure categories raised inside the signal pipeline. All of them except
# BrokerTransportError are caught by SignalHandler and turned into a
# TradeOutcome; transport failures bubble up to the message handler.
# --------------------------------------------------------------------
from __future__ import annotations

from typing import Optional


class SignalError(Exception):
    """Base class for every pipeline failure that maps to an audit record."""


class ParseAmbiguous(SignalError):
    """No trading intent could be recognised in the message text."""


class MarketDataUnavailable(SignalError):
    def __init__(self, venue_id: str, msg: str = "market data unavailable"):
        super().__init__(f"{venue_id}: {msg}")
        self.venue_id = venue_id
        self.msg = msg


class SizingAborted(SignalError):
    """
    Raised when the size cannot be trusted (undeterminable multiplier,
    implausible price with no safe fallback). Nothing was sent to the venue.
    """
    def __init__(self, venue_id: str, reason: str):
        super().__init__(f"{venue_id}: {reason}")
        self.venue_id = venue_id
        self.reason = reason


class RiskExceeded(SignalError):
    """
    Raised when realised risk breaches the security cap and no mini
    variant brings it back under the cap.
    """
    def __init__(self, venue_id: str, realized_risk: float, cap: float):
        super().__init__(
            f"{venue_id}: realised risk {realized_risk:.2f} exceeds cap {cap:.2f}"
        )
        self.venue_id = venue_id
        self.realized_risk = realized_risk
        self.cap = cap


class VenueRejected(SignalError):
    def __init__(self, venue_id: str, reason: str, deal_reference: Optional[str] = None):
        super().__init__(f"{venue_id}: deal rejected ({reason})")
        self.venue_id = venue_id
        self.reason = reason
        self.deal_reference = deal_reference

    @property
    def insufficient_funds(self) -> bool:
        return "INSUFFICIENT_FUNDS" in (self.reason or "").upper()


class NoMatchingPosition(SignalError):
    def __init__(self, instrument: str):
        super().__init__(f"No open position found for {instrument}")
        self.instrument = instrument


class BrokerTransportError(Exception):
    """Network-level failure talking to the brokerage (not a SignalError)."""
