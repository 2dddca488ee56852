# --------------------------------------------------------------------
# models/trade_outcome.py
# Records produced while a signal is processed. TradeOutcome is the one
# audit record per signal; it is what NotifierHub and the audit log see.
# --------------------------------------------------------------------
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import List, Literal, Optional


@dataclass
class SizingResult:
    contracts: float = 0.0
    margin_per_contract: float = 0.0
    realized_risk: float = 0.0
    target_risk: float = 0.0
    aborted: bool = False
    abort_reason: Optional[str] = None
    price_used: Optional[float] = None
    margin_rate: Optional[float] = None
    fx_rate: Optional[float] = None
    contract_multiplier: Optional[float] = None
    deal_increment: Optional[float] = None
    price_mismatch: bool = False
    floor_forced: bool = False
    boosted: bool = False

    @classmethod
    def abort(cls, reason: str, target_risk: float = 0.0) -> "SizingResult":
        return cls(aborted=True, abort_reason=reason, target_risk=target_risk)


@dataclass
class ExecutionAttempt:
    stage: str
    venue_id: str
    outcome: str
    failure_reason: Optional[str] = None
    size: Optional[float] = None


@dataclass
class ExecutionResult:
    success: bool
    stage: str
    venue_id: Optional[str] = None
    display_name: Optional[str] = None
    deal_reference: Optional[str] = None
    deal_id: Optional[str] = None
    sizing: Optional[SizingResult] = None
    attempts: List[ExecutionAttempt] = field(default_factory=list)
    message: str = ""


@dataclass
class TradeOutcome:
    status: Literal["success", "error", "info"]
    message: str
    signal_type: str = "UNKNOWN"
    instrument: str = ""
    direction: Optional[str] = None
    size: Optional[float] = None
    realized_risk: Optional[float] = None
    venue_id: Optional[str] = None
    deal_id: Optional[str] = None
    action: Optional[str] = None         # OPEN / CLOSE / UPDATE_LEVELS
    profit: Optional[float] = None       # realised P&L quoted in a close message
    attempts: List[ExecutionAttempt] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
