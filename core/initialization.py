"""
core/initialization.py
----------------------
Loads configuration from .env and wires all runtime components with simple
dependency-injection (DI) overrides.
"""

from __future__ import annotations

import os
import logging
from typing import Dict, List, Optional

from dotenv import load_dotenv

from core.signal_handler import SignalHandler
from modules.broker.ig_client import IGClient
from modules.exchange_rates import FRANKFURTER_URL, ExchangeRateService
from modules.instrument_resolver import InstrumentResolver
from modules.market_data import MarketDataGate
from modules.position_selector import PositionSelector
from modules.position_sizer import PositionSizer, SizingParameters
from modules.position_tracker import PositionTracker
from modules.security_gate import SecurityGate
from modules.signal_journal import SignalJournal
from modules.trade_retry import TradeRetryController
from notifiers.hub import NotifierHub
from utils.config_manager import ConfigManager
from utils.event_bus import subscribe
from utils.logger import log_audit_record, setup_logger
from utils.ttl_cache import TTLStore


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "")
    return float(raw) if raw.strip() else default


def _env_list(key: str) -> List[str]:
    return [c.strip() for c in os.getenv(key, "").split(",") if c.strip()]


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a structured config dict.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    conf: Dict[str, object] = {
        "IG_API": {
            "api_key": os.getenv("IG_API_KEY"),
            "username": os.getenv("IG_USERNAME"),
            "password": os.getenv("IG_PASSWORD"),
            "account_id": os.getenv("IG_ACCOUNT_ID") or None,
            "demo": _env_bool("IG_DEMO", True),
        },
        "TRADING": {
            "enabled": _env_bool("TRADING_ENABLED", False),
            "risk_amount": _env_float("FIXED_RISK_AMOUNT", 50.0),
            "home_currency": os.getenv("HOME_CURRENCY", "EUR"),
            "max_risk_multiple": _env_float("MAX_RISK_MULTIPLE", 3.0),
            "boost_threshold": _env_float("BOOST_THRESHOLD", 0.8),
            "min_margin_ratio": _env_float("MIN_MARGIN_RATIO", 0.01),
            "equity_margin_floor": _env_float("EQUITY_MARGIN_FLOOR", 0.20),
            "max_contracts": _env_float("MAX_CONTRACTS", 100),
            "price_deviation_limit": _env_float("PRICE_DEVIATION_LIMIT", 0.5),
            "confirm_attempts": int(_env_float("CONFIRM_ATTEMPTS", 3)),
            "confirm_delay": _env_float("CONFIRM_DELAY", 2.0),
            "max_alternatives": int(_env_float("MAX_ALTERNATIVES", 5)),
        },
        "FX": {
            "cache_ttl": _env_float("FX_CACHE_TTL", 300),
            "api_url": os.getenv("FX_API_URL", FRANKFURTER_URL),
        },
        "TELEGRAM": {
            "token": os.getenv("TELEGRAM_TOKEN"),
            "chat_id": os.getenv("TELEGRAM_CHAT_ID"),
            "target_chats": _env_list("TELEGRAM_TARGET_CHATS"),
            "notify_info": _env_bool("TELEGRAM_NOTIFY_INFO", False),
        },
        "INSTRUMENTS": {
            "path": os.getenv("INSTRUMENTS_PATH", "config/instruments.json"),
        },
    }

    log.debug("Trading enabled: %s", conf["TRADING"]["enabled"])
    log.debug("Target chats: %s", conf["TELEGRAM"]["target_chats"])
    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[object] = None
    ) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"logger", "broker", "resolver", "fx", "notifier_hub", "journal", "tracker"}
    """
    overrides = overrides or {}
    cfg = ConfigManager(config)

    # 1) Logger
    logger = overrides.get("logger") or logger or setup_logger(__name__)

    # 2) Broker session
    broker = overrides.get("broker")
    if broker is None:
        ig = cfg.get_ig_credentials()
        broker = IGClient(
            api_key=ig.get("api_key") or "",
            username=ig.get("username") or "",
            password=ig.get("password") or "",
            account_id=ig.get("account_id"),
            demo=bool(ig.get("demo", True)),
            confirm_attempts=int(cfg.get_trading("confirm_attempts", 3)),
            confirm_delay=float(cfg.get_trading("confirm_delay", 2.0)),
        )

    # 3) Reference data: instrument table + exchange rates
    resolver = overrides.get("resolver") or InstrumentResolver.from_file(cfg.get_instruments_path())
    fx = overrides.get("fx")
    if fx is None:
        fx = ExchangeRateService(
            home_currency=cfg.get_home_currency(),
            store=TTLStore(ttl=cfg.get_fx_cache_ttl()),
            api_url=cfg.section("FX").get("api_url") or FRANKFURTER_URL,
        )

    # 4) Sizing, gate and retry pipeline
    params = SizingParameters(
        boost_threshold=float(cfg.get_trading("boost_threshold", 0.8)),
        min_margin_ratio=float(cfg.get_trading("min_margin_ratio", 0.01)),
        equity_margin_floor=float(cfg.get_trading("equity_margin_floor", 0.20)),
        max_contracts=float(cfg.get_trading("max_contracts", 100)),
        price_deviation_limit=float(cfg.get_trading("price_deviation_limit", 0.5)),
    )
    market_data = MarketDataGate(broker)
    sizer = PositionSizer(fx, params)
    gate = SecurityGate(
        sizer,
        market_data,
        broker,
        exemptions=resolver.table.risk_cap_exemptions,
        max_risk_multiple=float(cfg.get_trading("max_risk_multiple", 3.0)),
    )
    tracker = overrides.get("tracker") or PositionTracker()
    controller = TradeRetryController(
        broker,
        market_data,
        sizer,
        gate,
        tracker=tracker,
        max_alternatives=int(cfg.get_trading("max_alternatives", 5)),
    )

    # 5) Signal handler
    journal = overrides.get("journal") or SignalJournal()
    handler = SignalHandler(
        resolver=resolver,
        broker=broker,
        controller=controller,
        selector=PositionSelector(resolver),
        tracker=tracker,
        journal=journal,
        risk_amount=cfg.get_risk_amount(),
        trading_enabled=cfg.is_trading_enabled(),
    )

    # 6) Audit + notifications on the event bus
    subscribe("trade_outcome", log_audit_record)
    notifier_hub = overrides.get("notifier_hub") or NotifierHub(config)
    notifier_hub.register()

    logger.info("✅ Broker initialized: %s", broker.__class__.__name__)
    logger.info("✅ Instrument table loaded: %d symbols", len(resolver.table.instruments))
    logger.info("✅ Risk amount %.2f %s, trading %s",
                cfg.get_risk_amount(), cfg.get_home_currency(),
                "ENABLED" if cfg.is_trading_enabled() else "DISABLED")

    return {
        "logger": logger,
        "broker": broker,
        "resolver": resolver,
        "fx": fx,
        "controller": controller,
        "tracker": tracker,
        "journal": journal,
        "handler": handler,
        "notifier_hub": notifier_hub,
    }
