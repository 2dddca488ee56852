"""
notifiers/hub.py
----------------
Fan-out layer that owns the back-end notifiers and turns each
`TradeOutcome` audit record into a chat message.
"""
from __future__ import annotations
from typing import Dict, List, Optional

from models.trade_outcome import TradeOutcome
from notifiers.base import BaseNotifier
from notifiers.telegram import TelegramNotifier
from utils.event_bus import subscribe
from utils.logger import setup_logger

logger = setup_logger(__name__)

_STATUS_ICON = {"success": "✅", "error": "❌", "info": "ℹ️"}


class NotifierHub:
    """Collects active back-ends based on config and broadcasts messages."""

    def __init__(self, cfg: Dict, backends: Optional[List[BaseNotifier]] = None) -> None:
        self.backends: List[BaseNotifier] = list(backends or [])
        self.notify_info = bool(cfg.get("TELEGRAM", {}).get("notify_info", False))

        tg_cfg = cfg.get("TELEGRAM", {})
        if backends is None and tg_cfg.get("token") and tg_cfg.get("chat_id"):
            self.backends.append(
                TelegramNotifier(token=tg_cfg["token"], chat_id=tg_cfg["chat_id"])
            )
        if not self.backends:
            logger.info("NotifierHub has no back-ends; notifications disabled")

    def register(self) -> "NotifierHub":
        subscribe("trade_outcome", self.send_trade_outcome)
        return self

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def broadcast(self, text: str) -> None:
        for backend in self.backends:
            try:
                await backend.send(text)
            except Exception:  # noqa: BLE001 (keep hub robust)
                logger.exception("[NotifierHub] back-end %s failed", backend.__class__.__name__)

    async def send_trade_outcome(self, outcome: TradeOutcome) -> None:
        if outcome.status == "info" and not self.notify_info:
            return
        await self.broadcast(self.format_outcome(outcome))
        if self.is_profitable_close(outcome):
            await self.broadcast(self.format_profit(outcome))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def is_profitable_close(outcome: TradeOutcome) -> bool:
        return (
            outcome.status == "success"
            and outcome.action == "CLOSE"
            and outcome.profit is not None
            and outcome.profit > 0
        )

    @staticmethod
    def format_outcome(o: TradeOutcome) -> str:
        icon = _STATUS_ICON.get(o.status, "•")
        head = f"{icon} <b>{o.signal_type}</b> {o.instrument or '-'}"
        if o.direction:
            head += f" {o.direction}"
        lines = [head]
        if o.size is not None:
            risk = f" · risk {o.realized_risk:.2f}€" if o.realized_risk is not None else ""
            lines.append(f"Size {o.size}{risk}")
        if o.venue_id:
            lines.append(f"Venue {o.venue_id}")
        lines.append(o.message)
        return "\n".join(lines)

    @staticmethod
    def format_profit(o: TradeOutcome) -> str:
        return f"🎉💰 {o.instrument} closed with {o.profit:,.2f}€ profit!"
