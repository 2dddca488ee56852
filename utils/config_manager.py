from typing import Any, Dict, List


class ConfigManager:
    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    def get_ig_credentials(self) -> Dict[str, Any]:
        return self.section("IG_API")

    def get_trading(self, key: str, default: Any = None) -> Any:
        return self.section("TRADING").get(key, default)

    def is_trading_enabled(self) -> bool:
        return bool(self.get_trading("enabled", False))

    def get_risk_amount(self) -> float:
        return float(self.get_trading("risk_amount", 50.0))

    def get_home_currency(self) -> str:
        return (self.get_trading("home_currency") or "EUR").upper()

    def get_instruments_path(self) -> str:
        return self.section("INSTRUMENTS").get("path") or "config/instruments.json"

    def get_fx_cache_ttl(self) -> float:
        return float(self.section("FX").get("cache_ttl", 300))

    def get_target_chats(self) -> List[str]:
        return self.section("TELEGRAM").get("target_chats") or []
