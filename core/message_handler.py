"""
message_handler.py
==================
Adapter between the chat feed and the signal engine. Inbound payloads are
schema-checked, filtered by chat, handed to `SignalHandler`, and the
resulting audit record is published on the event bus.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from core.signal_handler import SignalHandler
from models.errors import BrokerTransportError
from models.trade_outcome import TradeOutcome
from utils.event_bus import publish
from utils.logger import setup_logger

logger = setup_logger(__name__)

# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
_REQUIRED_KEYS: List[str] = [
    "text",     # raw message body
    "chatId",   # source chat / channel
]
_OPTIONAL_KEYS: List[str] = ["senderId", "timestamp"]


def _validate_schema(payload: Dict[str, Any]) -> bool:
    """Strictly validate the incoming payload schema.

    Checks:
    1. Payload is a dict with the required keys.
    2. `text` is a string.
    3. `chatId` is a str/int.
    4. `timestamp`, when present, is numeric (epoch s or ms).
    """
    if not isinstance(payload, dict):
        logger.warning("❌ Payload must be dict: %r", payload)
        return False

    for key in _REQUIRED_KEYS:
        if key not in payload:
            logger.warning("❌ Missing key '%s' in payload: %s", key, payload)
            return False

    if not isinstance(payload["text"], str):
        logger.warning("❌ 'text' must be str: %r", payload["text"])
        return False

    if not isinstance(payload["chatId"], (str, int)):
        logger.warning("❌ Invalid chatId: %r", payload["chatId"])
        return False

    ts = payload.get("timestamp")
    if ts is not None:
        try:
            float(ts)
        except (TypeError, ValueError):
            logger.warning("❌ Non-numeric timestamp: %r", ts)
            return False

    return True

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def handle_message(
    data: Dict[str, Any],
    handler: SignalHandler,
    *,
    target_chats: Optional[Iterable[str]] = None,
    publish_fn: Callable[[str, object], Awaitable[Any]] = publish,
) -> Optional[TradeOutcome]:
    """Process one inbound chat message.

    Parameters
    ----------
    data
        ``{"text", "chatId", "senderId"?, "timestamp"?}``
    handler
        The wired signal engine.
    target_chats
        When given, messages from any other chat are skipped.
    publish_fn
        Dependency-injection hook for unit-testing.

    Returns the audit record, or None when the message was skipped or the
    brokerage could not be reached.
    """
    if not _validate_schema(data):
        logger.debug("⏭️ Invalid payload skipped.")
        return None

    chat_id = str(data["chatId"])
    allowed = {str(c) for c in (target_chats or [])}
    if allowed and chat_id not in allowed:
        logger.debug("⏭️ Message from non-target chat %s skipped", chat_id)
        return None

    metadata = {key: data.get(key) for key in ("chatId", *_OPTIONAL_KEYS)}
    logger.debug("📥 Message from %s: %r", chat_id, data["text"][:80])

    # --------------------------------------------------------------------
    # Main processing; transport failures drop this signal only
    # --------------------------------------------------------------------
    try:
        outcome = handler.interpret_and_act(data["text"], metadata)
    except BrokerTransportError:
        logger.exception("[MESSAGE_HANDLER] brokerage unreachable, signal dropped")
        return None

    await publish_fn("trade_outcome", outcome)
    return outcome
