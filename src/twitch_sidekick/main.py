"""Main entry point for twitch-sidekick."""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import SecretStr

from twitch_sidekick.config import Config, load_config
from twitch_sidekick.orchestrator import BotOrchestrator


def setup_logging(debug: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from libraries
    for name in ("httpx", "httpcore", "aiohttp", "pydle"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_secrets_from_env(config: Config) -> Config:
    """Fill secrets from the conventional environment variables if not in config."""
    # pydantic-settings only reads the SIDEKICK_ prefixed names
    if not config.llm.anthropic_api_key:
        key = os.getenv("ANTHROPIC_API_KEY")
        if key:
            config.llm.anthropic_api_key = SecretStr(key)

    if not config.llm.google_api_key:
        # Support both GOOGLE_API_KEY and GEMINI_API_KEY
        key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        if key:
            config.llm.google_api_key = SecretStr(key)

    twitch_vars = {
        "oauth_token": "TWITCH_OAUTH_TOKEN",
        "client_id": "TWITCH_CLIENT_ID",
        "access_token": "TWITCH_ACCESS_TOKEN",
    }
    for attr, var in twitch_vars.items():
        value = os.getenv(var)
        if value and not getattr(config.twitch, attr):
            setattr(config.twitch, attr, SecretStr(value))

    return config


async def async_main(
    config_path: str | None = None,
    debug: bool = False,
    debug_ai: bool = False,
) -> None:
    """Async main entry point."""
    setup_logging(debug)
    logger = logging.getLogger(__name__)

    # Load .env file if present
    load_dotenv()

    config = load_config(config_path)
    config = load_secrets_from_env(config)

    if debug_ai:
        from twitch_sidekick.core.logging import set_ai_debug
        set_ai_debug(True)
        logger.info("AI debug logging enabled - full prompts and replies will be logged")

    logger.info("Starting Twitch Sidekick...")
    logger.info(f"Username: {config.twitch.username}")
    logger.info(f"Channels: {', '.join(config.twitch.channels)}")

    orchestrator = BotOrchestrator(config)

    try:
        await orchestrator.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        await orchestrator.stop()


def main() -> None:
    """Main entry point (sync wrapper)."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Twitch Sidekick: AI chat companion, gameplay observer and auto-clipper",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--debug-ai",
        action="store_true",
        help="Log full prompts and replies for all completion calls",
    )

    args = parser.parse_args()

    asyncio.run(async_main(
        config_path=args.config,
        debug=args.debug,
        debug_ai=args.debug_ai,
    ))


if __name__ == "__main__":
    main()
