import os
from unittest.mock import MagicMock

import pytest

from core.initialization import initialize_components, load_configuration
from core.signal_handler import SignalHandler
from utils.config_manager import ConfigManager
from utils.config_validator import validate_config

_ENV_KEYS = [
    "IG_API_KEY", "IG_USERNAME", "IG_PASSWORD", "IG_ACCOUNT_ID", "IG_DEMO",
    "TRADING_ENABLED", "FIXED_RISK_AMOUNT", "HOME_CURRENCY", "MAX_RISK_MULTIPLE",
    "BOOST_THRESHOLD", "MIN_MARGIN_RATIO", "EQUITY_MARGIN_FLOOR", "MAX_CONTRACTS",
    "PRICE_DEVIATION_LIMIT", "CONFIRM_ATTEMPTS", "CONFIRM_DELAY", "MAX_ALTERNATIVES",
    "FX_CACHE_TTL", "FX_API_URL", "TELEGRAM_TOKEN", "TELEGRAM_CHAT_ID",
    "TELEGRAM_TARGET_CHATS", "TELEGRAM_NOTIFY_INFO", "INSTRUMENTS_PATH",
]

# ------------------------- Fixtures ------------------------- #

@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


@pytest.fixture
def env_file(tmp_path, clean_env):
    path = tmp_path / "config.env"
    path.write_text(
        "IG_API_KEY=key\n"
        "IG_USERNAME=user\n"
        "IG_PASSWORD=pass\n"
        "IG_DEMO=false\n"
        "TRADING_ENABLED=true\n"
        "FIXED_RISK_AMOUNT=75\n"
        "TELEGRAM_TARGET_CHATS=-1001, -1002\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def config(tmp_path, clean_env):
    return load_configuration(str(tmp_path / "missing.env"))

# ------------------------- Configuration ------------------------- #

def test_load_configuration_from_env_file(env_file):
    conf = load_configuration(env_file)

    assert conf["IG_API"]["api_key"] == "key"
    assert conf["IG_API"]["demo"] is False
    assert conf["TRADING"]["enabled"] is True
    assert conf["TRADING"]["risk_amount"] == 75.0
    assert conf["TELEGRAM"]["target_chats"] == ["-1001", "-1002"]
    validate_config(conf)


def test_defaults(config):
    cfg = ConfigManager(config)

    assert not cfg.is_trading_enabled()
    assert cfg.get_risk_amount() == 50.0
    assert cfg.get_home_currency() == "EUR"
    assert cfg.get_instruments_path() == "config/instruments.json"
    assert cfg.get_fx_cache_ttl() == 300
    assert cfg.get_target_chats() == []
    assert config["TRADING"]["max_risk_multiple"] == 3.0
    validate_config(config)


def test_validator_rejects_missing_section(config):
    del config["INSTRUMENTS"]

    with pytest.raises(ValueError):
        validate_config(config)


def test_validator_requires_credentials_when_trading(config):
    config["TRADING"]["enabled"] = True

    with pytest.raises(ValueError, match="IG_API"):
        validate_config(config)


@pytest.mark.parametrize("key, value, error", [
    ("risk_amount", -5, TypeError),
    ("risk_amount", "50", TypeError),
    ("max_risk_multiple", 0.5, ValueError),
    ("max_contracts", 0, ValueError),
])
def test_validator_rejects_bad_trading_values(config, key, value, error):
    config["TRADING"][key] = value

    with pytest.raises(error):
        validate_config(config)

# ------------------------- Wiring ------------------------- #

def test_initialize_components_wires_handler(config, broker, resolver):
    hub = MagicMock()

    components = initialize_components(
        config, overrides={"broker": broker, "resolver": resolver, "notifier_hub": hub}
    )

    handler = components["handler"]
    assert isinstance(handler, SignalHandler)
    assert handler.broker is broker
    assert handler.risk_amount == 50.0
    assert handler.trading_enabled is False
    assert components["controller"].gate.exemptions == {"BITCOIN"}
    hub.register.assert_called_once()
