"""
trade_retry.py
--------------
Opening orders go through an explicit state machine:

    PRIMARY -> FALLBACK -> SEARCH_ALTERNATIVES -> {SUCCESS, EXHAUSTED}

`next_stage()` is the whole transition table and has no side effects.
`TradeRetryController` runs the attempts and records every one of them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from models.errors import (
    MarketDataUnavailable,
    RiskExceeded,
    SizingAborted,
    VenueRejected,
)
from models.instrument import ResolvedInstrument
from models.market import MarketSnapshot
from models.signal import TradeSignal
from models.trade_outcome import ExecutionAttempt, ExecutionResult, SizingResult
from modules.broker.base import BaseBroker
from modules.market_data import MarketDataGate, is_weekend_venue
from modules.position_sizer import PositionSizer
from modules.position_tracker import PositionTracker
from modules.security_gate import SecurityGate
from utils.logger import setup_logger

logger = setup_logger(__name__)

MAX_ALTERNATIVES = 5


class ExecutionStage(str, Enum):
    PRIMARY = "PRIMARY"
    FALLBACK = "FALLBACK"
    SEARCH_ALTERNATIVES = "SEARCH_ALTERNATIVES"
    SUCCESS = "SUCCESS"
    EXHAUSTED = "EXHAUSTED"


class AttemptOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    NOT_TRADABLE = "NOT_TRADABLE"
    MARKET_DATA_UNAVAILABLE = "MARKET_DATA_UNAVAILABLE"
    SIZING_ABORTED = "SIZING_ABORTED"
    RISK_REJECTED = "RISK_REJECTED"
    REJECTED = "REJECTED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    NO_CANDIDATES = "NO_CANDIDATES"


TERMINAL_STAGES = frozenset({ExecutionStage.SUCCESS, ExecutionStage.EXHAUSTED})
# verdicts about the mapped instrument itself; only a search candidate may be skipped
INSTRUMENT_VERDICTS = frozenset({AttemptOutcome.SIZING_ABORTED, AttemptOutcome.RISK_REJECTED})


@dataclass(frozen=True)
class RetryContext:
    has_fallback: bool
    alternatives_left: Optional[int] = None   # None: not searched yet


def next_stage(stage: ExecutionStage, outcome: AttemptOutcome, ctx: RetryContext) -> ExecutionStage:
    if stage in TERMINAL_STAGES:
        return stage
    if outcome is AttemptOutcome.SUCCESS:
        return ExecutionStage.SUCCESS
    if outcome is AttemptOutcome.INSUFFICIENT_FUNDS:
        return ExecutionStage.EXHAUSTED
    if outcome in INSTRUMENT_VERDICTS and stage is not ExecutionStage.SEARCH_ALTERNATIVES:
        return ExecutionStage.EXHAUSTED
    if stage is ExecutionStage.PRIMARY and ctx.has_fallback:
        return ExecutionStage.FALLBACK
    if ctx.alternatives_left is None or ctx.alternatives_left > 0:
        return ExecutionStage.SEARCH_ALTERNATIVES
    return ExecutionStage.EXHAUSTED


def relevance_score(market: dict, term: str) -> int:
    name = (market.get("instrumentName") or "").lower()
    epic = market.get("epic") or ""
    term = term.lower()
    score = 0
    if name == term:
        score += 100
    if "all sessions" in name:
        score += 50
    if "CASH" in epic:
        score += 20
    if market.get("instrumentType") in ("SHARES", "INDICES", "CURRENCIES"):
        score += 30
    if any(word in name for word in ("leverage", "etp", "factor")):
        score -= 50
    if "mini" in name or "MINI" in epic or "CEAM" in epic:
        score += 40
    return score


@dataclass
class _AttemptReport:
    outcome: AttemptOutcome
    reason: Optional[str] = None
    snapshot: Optional[MarketSnapshot] = None
    sizing: Optional[SizingResult] = None
    deal_reference: Optional[str] = None
    deal_id: Optional[str] = None


class TradeRetryController:
    def __init__(
        self,
        broker: BaseBroker,
        market_data: MarketDataGate,
        sizer: PositionSizer,
        gate: SecurityGate,
        tracker: Optional[PositionTracker] = None,
        max_alternatives: int = MAX_ALTERNATIVES,
    ):
        self.broker = broker
        self.market_data = market_data
        self.sizer = sizer
        self.gate = gate
        self.tracker = tracker
        self.max_alternatives = max_alternatives

    # ------------------------------------------------------------------ #
    # Alternatives
    # ------------------------------------------------------------------ #
    def find_alternatives(self, term: str, tried: List[str]) -> List[dict]:
        scored = []
        for market in self.broker.search(term):
            epic = market.get("epic")
            name = (market.get("instrumentName") or "").lower()
            if not epic or epic in tried:
                continue
            if "short" in name and "short" not in term.lower():
                continue
            if market.get("marketStatus") != "TRADEABLE" or not market.get("bid") or not market.get("offer"):
                continue
            scored.append((relevance_score(market, term), market))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        picked = [m for _, m in scored[: self.max_alternatives]]
        logger.info("🔎 %d alternative(s) for %r: %s", len(picked), term, [m["epic"] for m in picked])
        return picked

    # ------------------------------------------------------------------ #
    # One attempt
    # ------------------------------------------------------------------ #
    def _attempt(
        self,
        stage: ExecutionStage,
        venue_id: str,
        expiry: str,
        signal: TradeSignal,
        resolved: ResolvedInstrument,
        target_risk: float,
        price_bounds: Optional[Tuple[float, float]],
    ) -> _AttemptReport:
        searching = stage is ExecutionStage.SEARCH_ALTERNATIVES
        check_price = None if signal.option_type else signal.entry_price

        try:
            snapshot = self.market_data.fetch(
                venue_id,
                search_term=resolved.search_term if stage is ExecutionStage.PRIMARY else None,
                hints=None if searching else resolved,
            )
        except MarketDataUnavailable as exc:
            return _AttemptReport(AttemptOutcome.MARKET_DATA_UNAVAILABLE, str(exc))

        if not snapshot.tradable:
            return _AttemptReport(AttemptOutcome.NOT_TRADABLE, f"market {snapshot.status}", snapshot)

        sizing = self.sizer.size(
            snapshot, target_risk,
            direction=signal.direction,
            signal_price=check_price,
            hints=None if searching else resolved,
            price_bounds=price_bounds,
        )
        try:
            decision = self.gate.enforce(
                sizing, snapshot,
                symbol=resolved.canonical_symbol,
                direction=signal.direction,
                search_term=resolved.search_term,
                signal_price=check_price,
                price_bounds=price_bounds,
            )
        except SizingAborted as exc:
            return _AttemptReport(AttemptOutcome.SIZING_ABORTED, exc.reason, snapshot, sizing)
        except RiskExceeded as exc:
            return _AttemptReport(AttemptOutcome.RISK_REJECTED, str(exc), snapshot, sizing)

        snapshot, sizing = decision.snapshot, decision.sizing
        if snapshot.expiry and snapshot.expiry != "-":
            expiry = snapshot.expiry
        try:
            reference, deal_id = self._place(snapshot, signal.direction, sizing.contracts, expiry)
        except VenueRejected as exc:
            outcome = AttemptOutcome.INSUFFICIENT_FUNDS if exc.insufficient_funds else AttemptOutcome.REJECTED
            return _AttemptReport(outcome, exc.reason, snapshot, sizing, exc.deal_reference)

        if self.tracker is not None and deal_id:
            self.tracker.on_open(
                deal_id,
                venue_id=snapshot.venue_id,
                instrument=resolved.canonical_symbol,
                direction=signal.direction,
                size=sizing.contracts,
                signal_text=signal.raw_text,
            )
        return _AttemptReport(AttemptOutcome.SUCCESS, None, snapshot, sizing, reference, deal_id)

    def _place(self, snapshot: MarketSnapshot, direction: str, size: float, expiry: str) -> Tuple[str, Optional[str]]:
        weekend = is_weekend_venue(snapshot.venue_id, snapshot.name)
        resp = self.broker.place_order(
            snapshot.venue_id,
            direction,
            size,
            expiry=expiry,
            currency_code=snapshot.currency_code or None,
            order_type="LIMIT" if weekend else "MARKET",
            level=snapshot.price_for(direction) if weekend else None,
        )
        reference = resp.get("dealReference")
        if not reference:
            raise VenueRejected(snapshot.venue_id, resp.get("errorCode") or "no deal reference")

        confirmation = self.broker.confirm(reference)
        status = confirmation.get("dealStatus")
        if status != "ACCEPTED":
            reason = confirmation.get("reason") or status or "UNKNOWN"
            raise VenueRejected(snapshot.venue_id, reason, reference)
        logger.info("✅ Deal %s accepted on %s", confirmation.get("dealId"), snapshot.venue_id)
        return reference, confirmation.get("dealId")

    # ------------------------------------------------------------------ #
    # Cascade
    # ------------------------------------------------------------------ #
    def execute(
        self,
        signal: TradeSignal,
        resolved: ResolvedInstrument,
        target_risk: float,
        price_bounds: Optional[Tuple[float, float]] = None,
    ) -> ExecutionResult:
        has_fallback = resolved.fallback is not None
        trail: List[ExecutionAttempt] = []
        tried: List[str] = []
        alternatives: Optional[List[dict]] = None
        last: Optional[_AttemptReport] = None
        stage = ExecutionStage.PRIMARY

        while stage not in TERMINAL_STAGES:
            if stage is ExecutionStage.PRIMARY:
                venue_id, name, expiry = resolved.venue_id, resolved.display_name, resolved.expiry
            elif stage is ExecutionStage.FALLBACK:
                fb = resolved.fallback
                venue_id, name, expiry = fb.venue_id, fb.display_name, fb.expiry
            else:
                if alternatives is None:
                    alternatives = self.find_alternatives(resolved.search_term, tried)
                if not alternatives:
                    stage = next_stage(stage, AttemptOutcome.NO_CANDIDATES, RetryContext(has_fallback, 0))
                    continue
                market = alternatives.pop(0)
                venue_id, name, expiry = market["epic"], market.get("instrumentName", ""), market.get("expiry", "-")

            logger.info("▶️ %s attempt on %s (%s)", stage.value, venue_id, name)
            tried.append(venue_id)
            last = self._attempt(stage, venue_id, expiry, signal, resolved, target_risk, price_bounds)
            trail.append(ExecutionAttempt(
                stage=stage.value,
                venue_id=last.snapshot.venue_id if last.snapshot else venue_id,
                outcome=last.outcome.value,
                failure_reason=last.reason,
                size=last.sizing.contracts if last.sizing and not last.sizing.aborted else None,
            ))
            if last.outcome is not AttemptOutcome.SUCCESS:
                logger.warning("❌ %s on %s: %s (%s)", stage.value, venue_id, last.outcome.value, last.reason)
            if last.snapshot and last.snapshot.venue_id not in tried:
                tried.append(last.snapshot.venue_id)

            ctx = RetryContext(has_fallback, None if alternatives is None else len(alternatives))
            stage = next_stage(stage, last.outcome, ctx)

        if stage is ExecutionStage.SUCCESS:
            return ExecutionResult(
                success=True,
                stage=trail[-1].stage,
                venue_id=last.snapshot.venue_id,
                display_name=last.snapshot.name,
                deal_reference=last.deal_reference,
                deal_id=last.deal_id,
                sizing=last.sizing,
                attempts=trail,
                message=f"Opened {signal.direction} {last.sizing.contracts} {last.snapshot.name}",
            )

        reason = last.reason if last else "no venue attempted"
        return ExecutionResult(
            success=False,
            stage=ExecutionStage.EXHAUSTED.value,
            sizing=last.sizing if last else None,
            attempts=trail,
            message=f"All venues exhausted after {len(trail)} attempt(s): {reason}",
        )
