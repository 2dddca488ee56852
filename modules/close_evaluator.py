"""
close_evaluator.py
------------------
A CLOSE alert is only obeyed while the position is not under water.
A losing position gets a tighter bracket instead: a protective stop
~4% beyond the current price and a target ~0.5% beyond the entry.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional

from models.market import OpenPosition
from utils.logger import setup_logger

logger = setup_logger(__name__)

ADVERSE_STOP_DISTANCE = 0.04
RECOVERY_TARGET_DISTANCE = 0.005


@dataclass
class CloseDecision:
    action: Literal["CLOSE", "ADJUST"]
    pnl: Optional[float]
    stop_level: Optional[float] = None
    limit_level: Optional[float] = None


def _round_like(value: float, reference: float) -> float:
    exponent = Decimal(str(reference)).normalize().as_tuple().exponent
    return round(value, min(5, max(2, -exponent)))


def evaluate_close(
    position: OpenPosition,
    stop_distance: float = ADVERSE_STOP_DISTANCE,
    target_distance: float = RECOVERY_TARGET_DISTANCE,
) -> CloseDecision:
    pnl = position.pnl
    if pnl is None or pnl >= 0:
        return CloseDecision(action="CLOSE", pnl=pnl)

    entry = position.open_level
    if position.direction == "BUY":
        current = position.bid or entry
        stop = current * (1 - stop_distance)
        limit = entry * (1 + target_distance)
        limit_ok = limit > (position.offer or current)
    else:
        current = position.offer or entry
        stop = current * (1 + stop_distance)
        limit = entry * (1 - target_distance)
        limit_ok = limit < (position.bid or current)

    decision = CloseDecision(
        action="ADJUST",
        pnl=pnl,
        stop_level=_round_like(stop, current),
        limit_level=_round_like(limit, current) if limit_ok else None,
    )
    logger.info(
        "🛑 %s under water (%.2f): keep open, SL %s TP %s",
        position.deal_id, pnl, decision.stop_level, decision.limit_level,
    )
    return decision
