def validate_config(config: dict):
    required_keys = [
        "IG_API",
        "TRADING",
        "INSTRUMENTS",
    ]

    missing = [k for k in required_keys if k not in config or not config[k]]
    if missing:
        raise ValueError(f"Missing required configuration keys: {missing}")

    ig = config["IG_API"]
    if not isinstance(ig, dict):
        raise TypeError("IG_API must be a dictionary.")
    if config["TRADING"].get("enabled"):
        absent = [k for k in ("api_key", "username", "password") if not ig.get(k)]
        if absent:
            raise ValueError(f"Trading is enabled but IG_API is missing: {absent}")

    trading = config["TRADING"]
    risk = trading.get("risk_amount")
    if not isinstance(risk, (int, float)) or risk <= 0:
        raise TypeError("TRADING.risk_amount must be a positive number.")

    multiple = trading.get("max_risk_multiple", 3.0)
    if not isinstance(multiple, (int, float)) or multiple < 1:
        raise ValueError("TRADING.max_risk_multiple must be >= 1.")

    max_contracts = trading.get("max_contracts", 100)
    if not isinstance(max_contracts, (int, float)) or max_contracts <= 0:
        raise ValueError("TRADING.max_contracts must be positive.")

    if not isinstance(config["INSTRUMENTS"].get("path"), str):
        raise TypeError("INSTRUMENTS.path must be a string.")

    targets = config.get("TELEGRAM", {}).get("target_chats", [])
    if not isinstance(targets, list):
        raise TypeError("TELEGRAM.target_chats must be a list.")
