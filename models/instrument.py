"""
models/instrument.py
--------------------
Shape of config/instruments.json plus the per-trade resolved copy.
The loaded table is frozen; the resolver hands out ResolvedInstrument
copies that callers may update (e.g. after a symbol search found a
replacement venue).
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class VenueFallback(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue_id: str
    display_name: str
    expiry: str = "-"
    weekend: bool = False


class InstrumentMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue_id: str
    display_name: str
    expiry: str = "-"
    margin_percent: Optional[float] = Field(default=None, gt=0)
    contract_size: Optional[float] = Field(default=None, gt=0)
    min_deal_size: Optional[float] = Field(default=None, gt=0)
    deal_increment: Optional[float] = Field(default=None, gt=0)
    fallback: Optional[VenueFallback] = None
    aliases: List[str] = Field(default_factory=list)
    search_term: Optional[str] = None
    disabled: bool = False


class InstrumentTable(BaseModel):
    model_config = ConfigDict(frozen=True)

    instruments: Dict[str, InstrumentMapping]
    ticker_buckets: Dict[str, str] = Field(default_factory=dict)
    risk_cap_exemptions: List[str] = Field(default_factory=list)
    price_bounds: Dict[str, Tuple[float, float]] = Field(default_factory=dict)
    position_aliases: Dict[str, List[str]] = Field(default_factory=dict)


class ResolvedInstrument(BaseModel):
    """Scratch copy handed to one signal's pipeline run."""

    canonical_symbol: str
    venue_id: str
    display_name: str
    expiry: str = "-"
    margin_percent_hint: Optional[float] = None
    contract_size_hint: Optional[float] = None
    min_deal_size: Optional[float] = None
    deal_increment: Optional[float] = None
    fallback: Optional[VenueFallback] = None
    search_term: str = ""
    disabled: bool = False
    weekend_substituted: bool = False

    @property
    def venue_ids(self) -> List[str]:
        ids = [self.venue_id]
        if self.fallback:
            ids.append(self.fallback.venue_id)
        return ids
