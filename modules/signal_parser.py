"""
signal_parser.py
----------------
Turns free-text trading alerts (German trading-room phrasing) into
`TradeSignal` objects.

Rules are tried in order and the first one that matches wins:

    1. OPEN                ICH KAUFE GOLD (EK: 4122.39)
    2. OPEN + embedded TP  ICH KAUFE DAX ... UND SETZE TP AUF 24500
    3. OPEN + embedded SL  ICH VERKAUFE BITCOIN EK: 83931 UND SETZE SL AUF 85000
    4. CLOSE               ICH SCHLIEßE GOLD❗861€ GEWINN / ICH SCHLIEßE GOLD
    5. SL update           Ich setze den SL bei GOLD auf 4100 / GOLD SL: 4100
    6. TP update           Ich setze den TP bei GOLD auf 4200 / GOLD TP AUF 4200
    7. LIVE TREND          free-form block, scanned line by line
    8. anything else       UNKNOWN

`parse_signal` never raises; garbage in gives an UNKNOWN signal out.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from models.signal import SignalType, TradeSignal
from utils.logger import setup_logger

logger = setup_logger(__name__)

_F = re.IGNORECASE
_NUM = r"(\d+(?:[.,]\d+)?)"
_AMOUNT = r"(\d+(?:[.,]\d+)*)"
_INSTR = r"([A-Z0-9ÄÖÜ][A-Z0-9ÄÖÜ&/]*)"
_LEG = r"(?:\s+(CALL|PUT)\s+(\d+(?:[.,]\d+)?))?"
_VERB = r"ICH\s+(KAUFE|VERKAUFE)\s+"
_CLOSE_VERB = r"ICH\s+SCHLIE(?:ß|SS|S)E\s+"

OPEN_RE = re.compile(_VERB + _INSTR + _LEG + r"\s*\(\s*EK:?\s*" + _NUM + r"\s*\)", _F)
OPEN_TP_RE = re.compile(
    _VERB + _INSTR + _LEG + r"(?:.*?EK:?\s*" + _NUM + r")?.*?UND\s+SETZE\s+TP\s+AUF\s+" + _NUM,
    _F | re.S,
)
OPEN_SL_RE = re.compile(
    _VERB + _INSTR + _LEG + r"(?:.*?EK:?\s*" + _NUM + r")?.*?UND\s+SETZE\s+SL\s+AUF\s+" + _NUM,
    _F | re.S,
)
CLOSE_PNL_RE = re.compile(
    _CLOSE_VERB + _INSTR + _LEG + r".*?" + _AMOUNT + r"\s*€\s*(GEWINN|VERLUST)", _F | re.S
)
CLOSE_RE = re.compile(_CLOSE_VERB + _INSTR + _LEG, _F)


def _level_update_patterns(kind: str) -> List[re.Pattern]:
    return [
        re.compile(
            r"(?:ICH\s+SETZE\s+DEN\s+)?\b" + kind + r"\s+(?:BEI\s+)?" + _INSTR + _LEG
            + r"\s+AUF\s+" + _NUM,
            _F,
        ),
        # short form only at the very start of the message, on one line
        re.compile(
            r"^\s*" + _INSTR + _LEG + r"[ \t]+" + kind + r"(?:[ \t]*:|[ \t]+AUF)?[ \t]*" + _NUM,
            _F,
        ),
    ]


SL_UPDATE_RES = _level_update_patterns("SL")
TP_UPDATE_RES = _level_update_patterns("TP")

# levels attached to an OPEN message on their own lines ("SL: 4100")
_EMBEDDED_SL_RE = re.compile(r"\b(?:SL|STOP[\s-]?LOSS)\s*(?::|AUF)\s*" + _NUM, _F)
_EMBEDDED_TP_RE = re.compile(r"\b(?:TP\d?|TAKE[\s-]?PROFIT|ZIEL)\s*(?::|AUF)\s*" + _NUM, _F)

# LIVE TREND free-form tokens
_TREND_MARKER = "LIVE TREND"
_TREND_SYMBOL_RE = re.compile(r"\b([A-Z]{2,}/[A-Z]{2,})\b|\b([A-Z]{3,}USDT?)\b")
_TREND_BUY_RE = re.compile(r"\b(BUY|LONG|KAUFEN?)\b", _F)
_TREND_SELL_RE = re.compile(r"\b(SELL|SHORT|VERKAUFEN?)\b", _F)
_TREND_PRICE_RE = re.compile(r"(?:\bEK\b|\bPREIS\b|\bPRICE\b|\bENTRY\b|@|\bBEI\b):?\s*" + _NUM, _F)
_TREND_TARGET_RE = re.compile(r"\b(?:TARGET|ZIEL|TP\d?)\b:?\s*" + _NUM, _F)
_TREND_STOP_RE = re.compile(r"\b(?:STOP[\s-]?LOSS|SL)\b:?\s*" + _NUM, _F)
_TREND_TF_RE = re.compile(r"\b(?:TIMEFRAME|ZEITRAHMEN|TF)\b:?\s*(\w+)", _F)

# instruments the venue quotes in cents: 73.50 in chat means 7350
OIL_FAMILY = frozenset({"BRENT", "OIL", "WTI", "UKOIL", "USOIL", "CRUDE", "ÖL"})
OIL_SCALE_THRESHOLD = 1000.0
OIL_SCALE_FACTOR = 100.0


# ------------------------------------------------------------------ #
# Number helpers
# ------------------------------------------------------------------ #
def to_float(token: Optional[str]) -> Optional[float]:
    """'4122,39' and '4122.39' both give 4122.39."""
    if token is None:
        return None
    return float(token.replace(",", "."))


def parse_amount(token: str) -> float:
    """Euro amounts may use dot thousands grouping: '3.343' is 3343."""
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", token):
        return float(token.replace(".", ""))
    if "." in token and "," in token:
        return float(token.replace(".", "").replace(",", "."))
    return to_float(token)


def scale_price(instrument: str, value: Optional[float]) -> Optional[float]:
    if value is None or instrument not in OIL_FAMILY:
        return value
    if value < OIL_SCALE_THRESHOLD:
        return round(value * OIL_SCALE_FACTOR, 6)
    return value


def _direction(verb: str, option_type: Optional[str]) -> str:
    if option_type:
        return "BUY" if option_type.upper() == "CALL" else "SELL"
    return "SELL" if verb.upper() == "VERKAUFE" else "BUY"


def _leg(option_type: Optional[str], strike: Optional[str]) -> Dict:
    if not option_type:
        return {}
    return {"option_type": option_type.upper(), "strike_price": to_float(strike)}


# ------------------------------------------------------------------ #
# Rules (each returns the signal fields or None)
# ------------------------------------------------------------------ #
def _match_open(text: str) -> Optional[Dict]:
    m = OPEN_RE.search(text)
    if not m:
        return None
    verb, instrument, opt, strike, entry = m.groups()
    fields = {
        "type": SignalType.POSITION_OPEN,
        "instrument": instrument,
        "direction": _direction(verb, opt),
        "entry_price": to_float(entry),
        **_leg(opt, strike),
    }
    sl = _EMBEDDED_SL_RE.search(text, m.end())
    tp = _EMBEDDED_TP_RE.search(text, m.end())
    if sl:
        fields["stop_loss"] = to_float(sl.group(1))
    if tp:
        fields["take_profit"] = to_float(tp.group(1))
    return fields


def _open_with_level(pattern: re.Pattern, level_field: str) -> Callable[[str], Optional[Dict]]:
    def rule(text: str) -> Optional[Dict]:
        m = pattern.search(text)
        if not m:
            return None
        verb, instrument, opt, strike, entry, level = m.groups()
        return {
            "type": SignalType.POSITION_OPEN,
            "instrument": instrument,
            "direction": _direction(verb, opt),
            "entry_price": to_float(entry),
            level_field: to_float(level),
            **_leg(opt, strike),
        }
    return rule


def _match_close(text: str) -> Optional[Dict]:
    m = CLOSE_PNL_RE.search(text)
    if m:
        instrument, opt, strike, amount, result = m.groups()
        profit = parse_amount(amount)
        result = result.upper()
        return {
            "type": SignalType.POSITION_CLOSE,
            "instrument": instrument,
            "profit": -profit if result == "VERLUST" else profit,
            "close_result": result,
            **_leg(opt, strike),
        }
    m = CLOSE_RE.search(text)
    if m:
        instrument, opt, strike = m.groups()
        return {
            "type": SignalType.POSITION_CLOSE,
            "instrument": instrument,
            "close_result": "MANUAL_CLOSE",
            **_leg(opt, strike),
        }
    return None


def _level_update(patterns: List[re.Pattern], kind: SignalType, level_field: str):
    def rule(text: str) -> Optional[Dict]:
        for pattern in patterns:
            m = pattern.search(text)
            if m:
                instrument, opt, strike, level = m.groups()
                return {
                    "type": kind,
                    "instrument": instrument,
                    level_field: to_float(level),
                    **_leg(opt, strike),
                }
        return None
    return rule


def _match_live_trend(text: str) -> Optional[Dict]:
    if _TREND_MARKER not in text.upper():
        return None

    found: Dict = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if "instrument" not in found:
            m = _TREND_SYMBOL_RE.search(line)
            if m:
                found["instrument"] = m.group(1) or m.group(2)
        if "direction" not in found:
            if _TREND_SELL_RE.search(line):
                found["direction"] = "SELL"
            elif _TREND_BUY_RE.search(line):
                found["direction"] = "BUY"
        for key, pattern in (
            ("entry_price", _TREND_PRICE_RE),
            ("take_profit", _TREND_TARGET_RE),
            ("stop_loss", _TREND_STOP_RE),
        ):
            if key not in found:
                m = pattern.search(line)
                if m:
                    found[key] = to_float(m.group(1))
        if "timeframe" not in found:
            m = _TREND_TF_RE.search(line)
            if m:
                found["timeframe"] = m.group(1)

    if "instrument" not in found or "direction" not in found:
        logger.debug("⏭️ LIVE TREND without symbol/direction: %r", text[:80])
        return None
    found["type"] = SignalType.POSITION_OPEN
    return found


_RULES: List[Callable[[str], Optional[Dict]]] = [
    _match_open,
    _open_with_level(OPEN_TP_RE, "take_profit"),
    _open_with_level(OPEN_SL_RE, "stop_loss"),
    _match_close,
    _level_update(SL_UPDATE_RES, SignalType.SL_UPDATE, "stop_loss"),
    _level_update(TP_UPDATE_RES, SignalType.TP_UPDATE, "take_profit"),
    _match_live_trend,
]


# ------------------------------------------------------------------ #
# Public API
# ------------------------------------------------------------------ #
def parse_signal(text: Optional[str], received_at: Optional[datetime] = None) -> TradeSignal:
    """Classify one chat message. Always returns a TradeSignal."""
    extra = {"received_at": received_at} if received_at else {}
    raw = text or ""
    if not raw.strip():
        return TradeSignal(raw_text=raw, **extra)

    try:
        for rule in _RULES:
            fields = rule(raw)
            if fields is None:
                continue
            instrument = fields["instrument"].upper()
            fields["instrument"] = instrument
            for key in ("entry_price", "stop_loss", "take_profit"):
                fields[key] = scale_price(instrument, fields.get(key))
            signal = TradeSignal(raw_text=raw, **fields, **extra)
            logger.debug("📥 %s %s %s", signal.type.value, signal.instrument, signal.direction or "")
            return signal
    except Exception:  # noqa: BLE001 (classifier must not raise)
        logger.exception("Signal classification failed for %r", raw[:80])

    return TradeSignal(raw_text=raw, **extra)
