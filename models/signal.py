from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

Direction = Literal["BUY", "SELL"]
OptionType = Literal["CALL", "PUT"]
CloseResult = Literal["GEWINN", "VERLUST", "MANUAL_CLOSE"]


class SignalType(str, Enum):
    POSITION_OPEN = "POSITION_OPEN"
    POSITION_CLOSE = "POSITION_CLOSE"
    SL_UPDATE = "SL_UPDATE"
    TP_UPDATE = "TP_UPDATE"
    UNKNOWN = "UNKNOWN"


class TradeSignal(BaseModel):
    """One classified chat message. Frozen: created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    type: SignalType = SignalType.UNKNOWN
    direction: Optional[Direction] = None
    instrument: str = ""
    entry_price: Optional[float] = Field(default=None, gt=0)
    stop_loss: Optional[float] = Field(default=None, gt=0)
    take_profit: Optional[float] = Field(default=None, gt=0)
    option_type: Optional[OptionType] = None
    strike_price: Optional[float] = None
    profit: Optional[float] = None
    close_result: Optional[CloseResult] = None
    timeframe: Optional[str] = None
    raw_text: str = ""
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("instrument")
    @classmethod
    def normalize_instrument(cls, v):
        return v.strip().upper()

    @property
    def is_actionable(self) -> bool:
        return self.type is not SignalType.UNKNOWN

    def data(self) -> dict:
        """Everything except the raw text and arrival time."""
        return self.model_dump(exclude={"raw_text", "received_at"})
