"""
signal_journal.py
-----------------
Bounded in-memory history of classified signals, with pandas-based
summaries for the end-of-run report. Nothing is written to disk.
"""
from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List

import pandas as pd

from models.signal import SignalType, TradeSignal

_COLUMNS = ["received_at", "type", "instrument", "direction", "entry_price", "profit"]


class SignalJournal:
    def __init__(self, max_size: int = 100):
        self._signals: Deque[TradeSignal] = deque(maxlen=max_size)

    def add(self, signal: TradeSignal) -> None:
        self._signals.append(signal)

    def recent(self, n: int = 10) -> List[TradeSignal]:
        return list(self._signals)[-n:][::-1]

    def by_instrument(self, instrument: str) -> List[TradeSignal]:
        instrument = instrument.upper()
        return [s for s in self._signals if s.instrument == instrument]

    def __len__(self) -> int:
        return len(self._signals)

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #
    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "received_at": s.received_at,
                "type": s.type.value,
                "instrument": s.instrument,
                "direction": s.direction,
                "entry_price": s.entry_price,
                "profit": s.profit,
            }
            for s in self._signals
        ]
        return pd.DataFrame(rows, columns=_COLUMNS)

    def stats(self) -> Dict[str, object]:
        df = self.to_frame()
        actionable = df[df["type"] != SignalType.UNKNOWN.value]
        return {
            "total": int(len(df)),
            "by_type": df["type"].value_counts().to_dict(),
            "by_direction": actionable["direction"].dropna().value_counts().to_dict(),
            "by_instrument": actionable["instrument"].replace("", pd.NA).dropna().value_counts().to_dict(),
            "realized_profit": float(df["profit"].dropna().sum()) if not df.empty else 0.0,
        }

    def summary_report(self) -> str:
        st = self.stats()
        lines = [
            "📊 SIGNAL SUMMARY",
            f"Total messages: {st['total']}",
        ]
        for kind, count in st["by_type"].items():
            lines.append(f"  {kind}: {count}")
        if st["by_direction"]:
            lines.append("Directions: " + ", ".join(f"{k} {v}" for k, v in st["by_direction"].items()))
        if st["by_instrument"]:
            top = list(st["by_instrument"].items())[:5]
            lines.append("Top instruments: " + ", ".join(f"{k} ({v})" for k, v in top))
        lines.append(f"Reported P&L: {st['realized_profit']:.2f}€")
        return "\n".join(lines)
