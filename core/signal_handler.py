"""
core/signal_handler.py
----------------------
`SignalHandler.interpret_and_act()` is the single entry point of the
engine: raw chat text in, one `TradeOutcome` audit record out.

    classify -> resolve -> OPEN:  retry cascade (market data, sizing, gate)
                        -> other: open positions -> select -> close/adjust

Every pipeline failure is converted to an outcome here. Only transport
errors (`BrokerTransportError`) escape to the caller.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from models.errors import NoMatchingPosition, ParseAmbiguous, SignalError, VenueRejected
from models.instrument import ResolvedInstrument
from models.market import OpenPosition
from models.signal import SignalType, TradeSignal
from models.trade_outcome import TradeOutcome
from modules.broker.base import BaseBroker
from modules.close_evaluator import evaluate_close
from modules.instrument_resolver import InstrumentResolver
from modules.position_selector import PositionSelector, align_level_scale, parse_positions
from modules.position_tracker import PositionTracker
from modules.signal_journal import SignalJournal
from modules.signal_parser import parse_signal
from modules.trade_retry import TradeRetryController
from utils.logger import setup_logger

logger = setup_logger(__name__)


def _received_at(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if ts > 10**12:
        ts /= 1000
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class SignalHandler:
    def __init__(
        self,
        *,
        resolver: InstrumentResolver,
        broker: BaseBroker,
        controller: TradeRetryController,
        selector: Optional[PositionSelector] = None,
        tracker: Optional[PositionTracker] = None,
        journal: Optional[SignalJournal] = None,
        risk_amount: float = 50.0,
        trading_enabled: bool = True,
    ):
        self.resolver = resolver
        self.broker = broker
        self.controller = controller
        self.selector = selector or PositionSelector(resolver)
        self.tracker = tracker or PositionTracker()
        self.journal = journal
        self.risk_amount = risk_amount
        self.trading_enabled = trading_enabled

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def interpret_and_act(self, raw_text: str, metadata: Optional[Dict[str, Any]] = None) -> TradeOutcome:
        metadata = metadata or {}
        signal = parse_signal(raw_text, _received_at(metadata.get("timestamp")))
        if self.journal is not None:
            self.journal.add(signal)

        try:
            if not signal.is_actionable:
                raise ParseAmbiguous("No trading intent recognised")
            outcome = self._dispatch(signal)
        except ParseAmbiguous as exc:
            logger.debug("⏭️ %s: %r", exc, (raw_text or "")[:60])
            outcome = TradeOutcome(status="info", message=str(exc))
        except NoMatchingPosition as exc:
            logger.warning("❌ %s", exc)
            outcome = self._outcome(signal, "error", str(exc))
        except SignalError as exc:
            logger.error("❌ %s %s failed: %s", signal.type.value, signal.instrument, exc)
            outcome = self._outcome(signal, "error", str(exc))

        logger.info("📝 [%s] %s %s: %s", outcome.status, outcome.signal_type, outcome.instrument, outcome.message)
        return outcome

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #
    @staticmethod
    def _outcome(signal: TradeSignal, status: str, message: str, **extra) -> TradeOutcome:
        fields = {
            "signal_type": signal.type.value,
            "instrument": signal.instrument,
            "direction": signal.direction,
            "profit": signal.profit,
        }
        fields.update(extra)
        return TradeOutcome(status=status, message=message, **fields)

    def _dispatch(self, signal: TradeSignal) -> TradeOutcome:
        resolved = self.resolver.resolve(signal.instrument)
        if resolved is None:
            return self._outcome(signal, "error", f"No venue mapping for {signal.instrument}")
        if resolved.disabled:
            return self._outcome(
                signal, "error",
                f"{signal.instrument} is not enabled for auto-trading ({resolved.venue_id})",
                venue_id=resolved.venue_id,
            )
        if not self.trading_enabled:
            return self._outcome(signal, "info", "Trading disabled, signal logged only",
                                 instrument=resolved.canonical_symbol)

        if signal.type is SignalType.POSITION_OPEN:
            return self._open(signal, resolved)

        positions = parse_positions(self.broker.open_positions())
        candidates = self.selector.match(positions, resolved)
        if not candidates:
            raise NoMatchingPosition(signal.instrument)
        for p in candidates:
            if p.created_at is None:
                p.created_at = self.tracker.created_at(p.deal_id)

        if signal.type is SignalType.POSITION_CLOSE:
            return self._close(signal, resolved, candidates)
        return self._update_level(signal, resolved, candidates)

    # ------------------------------------------------------------------ #
    # Open path
    # ------------------------------------------------------------------ #
    def _open(self, signal: TradeSignal, resolved: ResolvedInstrument) -> TradeOutcome:
        if signal.direction is None:
            return self._outcome(signal, "error", "Open signal without direction")

        result = self.controller.execute(
            signal, resolved, self.risk_amount,
            price_bounds=self.resolver.price_bounds(resolved.canonical_symbol),
        )
        sizing = result.sizing
        return self._outcome(
            signal,
            "success" if result.success else "error",
            result.message,
            instrument=resolved.canonical_symbol,
            size=sizing.contracts if sizing and not sizing.aborted else None,
            realized_risk=sizing.realized_risk if sizing and not sizing.aborted else None,
            venue_id=result.venue_id,
            deal_id=result.deal_id,
            action="OPEN",
            attempts=result.attempts,
        )

    # ------------------------------------------------------------------ #
    # Close / update path
    # ------------------------------------------------------------------ #
    def _confirm(self, resp: dict, position: OpenPosition) -> dict:
        reference = resp.get("dealReference")
        if not reference:
            raise VenueRejected(position.venue_id, resp.get("errorCode") or "no deal reference")
        confirmation = self.broker.confirm(reference)
        if confirmation.get("dealStatus") != "ACCEPTED":
            reason = confirmation.get("reason") or confirmation.get("dealStatus") or "UNKNOWN"
            raise VenueRejected(position.venue_id, reason, reference)
        return confirmation

    def _close(self, signal: TradeSignal, resolved: ResolvedInstrument, candidates) -> TradeOutcome:
        position = self.selector.select(candidates, SignalType.POSITION_CLOSE)
        decision = evaluate_close(position)
        common = {
            "instrument": resolved.canonical_symbol,
            "direction": position.direction,
            "size": position.size,
            "venue_id": position.venue_id,
            "deal_id": position.deal_id,
        }

        if decision.action == "ADJUST":
            limit = decision.limit_level if decision.limit_level is not None else position.limit_level
            resp = self.broker.update_levels(position.deal_id, decision.stop_level, limit)
            try:
                self._confirm(resp, position)
            except VenueRejected as exc:
                logger.error("❌ Protective update for %s failed: %s", position.deal_id, exc.reason)
                return self._outcome(
                    signal, "error", f"Position in loss; protective update failed: {exc.reason}",
                    action="UPDATE_LEVELS", **common,
                )
            return self._outcome(
                signal, "success",
                f"Position in loss ({decision.pnl:.2f}), kept open with SL {decision.stop_level} "
                f"TP {limit}",
                action="UPDATE_LEVELS", **common,
            )

        resp = self.broker.close_order(
            position.deal_id, position.direction, position.size, venue_id=position.venue_id
        )
        self._confirm(resp, position)
        self.tracker.on_close(position.deal_id)
        return self._outcome(
            signal, "success", f"Closed {position.direction} {position.size} {position.instrument_name}",
            action="CLOSE", **common,
        )

    def _update_level(self, signal: TradeSignal, resolved: ResolvedInstrument, candidates) -> TradeOutcome:
        is_stop = signal.type is SignalType.SL_UPDATE
        requested = signal.stop_loss if is_stop else signal.take_profit
        reference = candidates[0].bid or candidates[0].offer
        level = align_level_scale(requested, reference)

        position = self.selector.select(
            candidates, signal.type,
            stop_level=level if is_stop else None,
            limit_level=None if is_stop else level,
        )
        stop = level if is_stop else position.stop_level
        limit = position.limit_level if is_stop else level
        resp = self.broker.update_levels(position.deal_id, stop, limit)
        self._confirm(resp, position)
        label = "SL" if is_stop else "TP"
        return self._outcome(
            signal, "success", f"{label} of {position.deal_id} set to {level}",
            instrument=resolved.canonical_symbol,
            direction=position.direction,
            size=position.size,
            venue_id=position.venue_id,
            deal_id=position.deal_id,
            action="UPDATE_LEVELS",
        )
