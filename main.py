#!/usr/bin/env python3
"""
Quiz Journey - Main Entry Point

Runs the Discord quiz bot, or the generation proxy that holds the Gemini
API key. Configure both in config.json; secrets can also come from the
environment or a .env file.

Usage:
    python main.py          # run the Discord bot
    python main.py proxy    # run the generation proxy

Environment Variables:
    DISCORD_BOT_TOKEN: Discord bot token (overrides config.json)
    QUIZ_PROXY_URL: URL of the proxy's /api/generate endpoint (overrides config.json)
    API_KEY: Gemini API key, used by the proxy only
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from quiz_journey.bot import setup_logging


def load_config(path="config.json"):
    """Load configuration from config.json file."""
    config_path = Path(path)

    if not config_path.exists():
        print(f"❌ Error: {config_path} not found!")
        print("Please copy config.json and configure your settings.")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"❌ Error: Invalid JSON in {config_path}: {e}")
        sys.exit(1)
    except OSError as e:
        print(f"❌ Error loading {config_path}: {e}")
        sys.exit(1)


def get_bot_token(config):
    """Get bot token from environment variable or config file."""
    token = os.getenv('DISCORD_BOT_TOKEN')
    if token:
        return token

    token = config.get('bot', {}).get('token')
    if not token or token == "YOUR_DISCORD_BOT_TOKEN_HERE":
        print("❌ Error: Discord bot token not configured!")
        print("Either:")
        print("  1. Set DISCORD_BOT_TOKEN environment variable")
        print("  2. Update the 'token' field in config.json")
        sys.exit(1)

    return token


def setup_logging_from_config(config, log_name="bot"):
    """Set up logging based on configuration."""
    log_config = config.get('logging', {})
    setup_logging(
        level=log_config.get('level', 'INFO'),
        log_directory=log_config.get('log_directory', './logs/')
    )
    logging.getLogger(__name__).info(f"Logging initialised for {log_name}")


async def run_bot_with_config(config):
    """Run the bot with configuration."""
    from quiz_journey.bot import run_bot
    await run_bot(get_bot_token(config), config)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Quiz Journey Discord bot and generation proxy")
    parser.add_argument("command", nargs="?", choices=["bot", "proxy"], default="bot")
    parser.add_argument("--config", default="config.json", help="Path to config.json")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    load_dotenv()
    config = load_config(args.config)

    if args.command == "proxy":
        setup_logging_from_config(config, "proxy")
        from quiz_journey.proxy import run_proxy
        run_proxy(config)
        return

    setup_logging_from_config(config, "bot")
    try:
        print("🤖 Starting Quiz Journey bot...")
        asyncio.run(run_bot_with_config(config))
    except KeyboardInterrupt:
        print("\n👋 Bot stopped by user")


def proxy_main():
    main(["proxy", *sys.argv[1:]])


if __name__ == "__main__":
    main()
