"""
position_sizer.py
-----------------
Contract count for a fixed home-currency risk budget.

    margin_per_contract = price × margin_rate × fx_rate × contract_multiplier
    contracts_raw       = target_risk / margin_per_contract

The live venue price drives the size. The signal's own price only
cross-checks it.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from models.instrument import ResolvedInstrument
from models.market import MarketSnapshot
from models.trade_outcome import SizingResult
from modules.exchange_rates import ExchangeRateService
from modules.market_data import currency_pair_segment, is_currency_pair, is_equity_like
from utils.logger import setup_logger

logger = setup_logger(__name__)

_PIP_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_EPS = 1e-9

# venue-id naming -> units per contract for FX pairs without pip metadata
FX_MULTIPLIER_BY_SUFFIX = {
    "MINI": 10_000.0,
    "CEAM": 10_000.0,
    "CFD": 100_000.0,
    "TODAY": 100_000.0,
}


@dataclass
class SizingParameters:
    boost_threshold: float = 0.8          # add one increment below 80% of target
    min_margin_ratio: float = 0.01        # implied leverage guard
    equity_margin_floor: float = 0.20
    max_contracts: float = 100.0
    price_deviation_limit: float = 0.5
    default_margin_rate: float = 0.05


# ------------------------------------------------------------------ #
# Input derivation
# ------------------------------------------------------------------ #
def normalize_margin_rate(value: Optional[float]) -> Optional[float]:
    """IG reports 5 (percent) for some markets and 0.05 for others."""
    if value is None or value <= 0:
        return None
    return value / 100.0 if value >= 1 else value


def contract_multiplier(snapshot: MarketSnapshot, size_hint: Optional[float] = None) -> Optional[float]:
    """
    Units of underlying per contract, or None when an FX venue gives no
    usable information (never guessed for currency pairs).
    """
    if snapshot.pip_value and snapshot.one_pip_means:
        m = _PIP_NUMBER_RE.search(snapshot.one_pip_means)
        if m:
            pip = float(m.group(1))
            if "cent" in snapshot.one_pip_means.lower():
                pip *= 0.01
            if pip > 0:
                return snapshot.pip_value / pip

    if snapshot.contract_size:
        return snapshot.contract_size

    if is_currency_pair(snapshot.venue_id, snapshot.instrument_type):
        if currency_pair_segment(snapshot.venue_id):
            for part in snapshot.venue_id.split(".")[3:]:
                if part in FX_MULTIPLIER_BY_SUFFIX:
                    return FX_MULTIPLIER_BY_SUFFIX[part]
        return None

    return size_hint or 1.0


def increment_decimals(increment: float) -> int:
    exponent = Decimal(str(increment)).normalize().as_tuple().exponent
    return max(0, -exponent)


def round_to_increment(raw: float, increment: float) -> float:
    """Nearest step for whole-unit increments, otherwise always up."""
    steps = raw / increment
    if increment >= 1:
        steps = math.floor(steps + 0.5)
    else:
        steps = math.ceil(steps - _EPS)
    return steps * increment


# ------------------------------------------------------------------ #
# Engine
# ------------------------------------------------------------------ #
class PositionSizer:
    def __init__(self, fx: ExchangeRateService, params: Optional[SizingParameters] = None):
        self.fx = fx
        self.params = params or SizingParameters()

    def _reference_price(
        self,
        snapshot: MarketSnapshot,
        direction: Optional[str],
        signal_price: Optional[float],
        price_bounds: Optional[Tuple[float, float]],
    ) -> Tuple[Optional[float], bool, Optional[str]]:
        """(price to size with, mismatch flag, abort reason)"""
        live = snapshot.price_for(direction)
        if not live or live <= 0:
            return None, False, "market data unavailable: no live price"
        if not signal_price:
            return live, False, None

        deviation = abs(live - signal_price) / signal_price
        if deviation <= self.params.price_deviation_limit:
            return live, False, None

        if price_bounds is not None:
            low, high = price_bounds
            if not low <= live <= high:
                return None, False, f"live price {live} outside plausible range {low}-{high}"
            logger.warning("⚠️ %s: signal price %s far from live %s, live within bounds",
                           snapshot.venue_id, signal_price, live)
            return live, False, None

        logger.warning(
            "⚠️ %s: live price %s deviates %.0f%% from signal %s, sizing on signal price",
            snapshot.venue_id, live, deviation * 100, signal_price,
        )
        return signal_price, True, None

    def size(
        self,
        snapshot: MarketSnapshot,
        target_risk: float,
        *,
        direction: Optional[str] = None,
        signal_price: Optional[float] = None,
        hints: Optional[ResolvedInstrument] = None,
        price_bounds: Optional[Tuple[float, float]] = None,
    ) -> SizingResult:
        p = self.params
        venue = snapshot.venue_id
        if target_risk <= 0:
            return SizingResult.abort("target risk must be positive", target_risk)

        price, mismatch, reason = self._reference_price(snapshot, direction, signal_price, price_bounds)
        if reason:
            logger.warning("❌ Sizing aborted for %s: %s", venue, reason)
            return SizingResult.abort(reason, target_risk)

        multiplier = contract_multiplier(snapshot, hints.contract_size_hint if hints else None)
        if multiplier is None:
            reason = "contract multiplier undeterminable for currency pair"
            logger.warning("❌ Sizing aborted for %s: %s", venue, reason)
            return SizingResult.abort(reason, target_risk)

        fx_rate = self.fx.rate_to_home(snapshot.currency_code)

        margin_rate = normalize_margin_rate(snapshot.margin_factor)
        if margin_rate is None and hints is not None:
            margin_rate = normalize_margin_rate(hints.margin_percent_hint)
        if margin_rate is None:
            margin_rate = p.default_margin_rate
            logger.warning("⚠️ %s: no margin factor, assuming %.0f%%", venue, margin_rate * 100)

        equity = is_equity_like(venue, snapshot.instrument_type)
        if equity and margin_rate < p.min_margin_ratio:
            logger.warning(
                "⚠️ %s: margin %.4f%% implausible for a share, using %.0f%%",
                venue, margin_rate * 100, p.equity_margin_floor * 100,
            )
            margin_rate = p.equity_margin_floor

        margin_per_contract = price * margin_rate * fx_rate * multiplier
        if margin_per_contract <= 0:
            return SizingResult.abort("non-positive margin per contract", target_risk)

        increment = 1.0 if equity or snapshot.deal_increment <= 0 else snapshot.deal_increment
        decimals = increment_decimals(increment)
        # venue minimum lifted onto the increment grid
        min_deal = round(math.ceil(snapshot.min_deal_size / increment - _EPS) * increment, decimals)

        raw = target_risk / margin_per_contract
        contracts = round_to_increment(raw, increment)
        contracts = round(min(max(contracts, min_deal), p.max_contracts), decimals)
        realized = contracts * margin_per_contract

        boosted = False
        if realized < p.boost_threshold * target_risk and contracts + increment <= p.max_contracts + _EPS:
            contracts = round(contracts + increment, decimals)
            realized = contracts * margin_per_contract
            boosted = True

        floor_forced = raw < min_deal and abs(contracts - min_deal) < _EPS

        logger.info(
            "📐 %s: %.5f × %.4f × %.6f × %g = %.2f/contract; raw %.4f -> %s (risk %.2f / target %.2f)",
            venue, price, margin_rate, fx_rate, multiplier, margin_per_contract,
            raw, contracts, realized, target_risk,
        )
        return SizingResult(
            contracts=contracts,
            margin_per_contract=margin_per_contract,
            realized_risk=realized,
            target_risk=target_risk,
            price_used=price,
            margin_rate=margin_rate,
            fx_rate=fx_rate,
            contract_multiplier=multiplier,
            deal_increment=increment,
            price_mismatch=mismatch,
            floor_forced=floor_forced,
            boosted=boosted,
        )
