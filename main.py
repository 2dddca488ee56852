
import asyncio
import json
import sys
from typing import Dict, Optional, TextIO

from core.initialization import initialize_components, load_configuration
from core.message_handler import handle_message
from utils.config_validator import validate_config
from utils.logger import setup_logger


def _to_payload(line: str, default_chat: str) -> Optional[Dict]:
    """A feed line is either a JSON payload or the bare message text."""
    line = line.strip()
    if not line:
        return None
    if line.startswith("{"):
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            pass
    return {"text": line, "chatId": default_chat}


async def run_bot(stream: TextIO = sys.stdin, env_path: str = "config.env") -> None:
    """
    Entrypoint coroutine for the signal bot.

    Loads and validates the configuration, wires the components and feeds
    every inbound message line through the handler, one at a time. At end
    of input the signal journal summary is logged.
    """
    config = load_configuration(env_path)
    validate_config(config)

    logger = setup_logger("SignalBot", to_console=True)
    components = initialize_components(config, logger=logger)
    handler = components["handler"]
    target_chats = config["TELEGRAM"]["target_chats"]
    default_chat = target_chats[0] if target_chats else "local"

    if config["TRADING"]["enabled"]:
        components["broker"].authenticate()

    logger.info("🚀 Signal bot listening for messages")
    while True:
        line = await asyncio.to_thread(stream.readline)
        if not line:
            break
        payload = _to_payload(line, default_chat)
        if payload is None:
            continue
        await handle_message(payload, handler, target_chats=target_chats)

    logger.info("📊 Signal summary\n%s", components["journal"].summary_report())


def main():
    source = open(sys.argv[1], encoding="utf-8") if len(sys.argv) > 1 else sys.stdin
    try:
        asyncio.run(run_bot(source))
    except KeyboardInterrupt:
        print("👋 Bot stopped by user")
    except Exception as e:
        print(f"❌ Bot terminated due to error: {e}")
        raise SystemExit(1)
    finally:
        if source is not sys.stdin:
            source.close()

if __name__ == "__main__":
    main()
