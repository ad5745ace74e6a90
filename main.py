#!/usr/bin/env python3
"""
Flag Quiz Bot - entry point.

Usage:
    python main.py [path/to/config.json]

The configuration file defaults to ./config.json. The bot token is read from
the DISCORD_BOT_TOKEN environment variable when set, otherwise from the
"bot.token" entry of the configuration file. The "quiz" section sets the
starting difficulty, the pause before the next flag and the catalog file.
"""

import asyncio
import sys
import os
import json
import logging
from pathlib import Path

DEFAULT_CONFIG_PATH = "config.json"
TOKEN_PLACEHOLDER = "YOUR_DISCORD_BOT_TOKEN_HERE"


def fail(*lines):
    """Print an error report and exit."""
    print(f"❌ {lines[0]}")
    for line in lines[1:]:
        print(f"   {line}")
    sys.exit(1)


def load_config(config_path):
    """Read the JSON configuration file."""
    if not config_path.is_file():
        fail(f"Configuration file {config_path} not found.",
             "Create it from the config.json shipped with the bot and add your token.")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        fail(f"{config_path} is not valid JSON: {e}")
    except OSError as e:
        fail(f"Cannot read {config_path}: {e}")

    if not isinstance(config, dict):
        fail(f"{config_path} must contain a JSON object.")
    return config


def get_bot_token(config):
    """Resolve the bot token, preferring the environment."""
    token = os.getenv('DISCORD_BOT_TOKEN') or config.get('bot', {}).get('token')
    if not token or token == TOKEN_PLACEHOLDER:
        fail("No Discord bot token configured.",
             "Set DISCORD_BOT_TOKEN or fill in \"bot.token\" in the configuration file.")
    return token


def setup_logging_from_config(config):
    """Log to the console and to <log_directory>/bot.log."""
    log_config = config.get('logging', {})
    level_name = str(log_config.get('level', 'INFO')).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    log_directory = Path(log_config.get('log_directory', './logs/'))
    log_directory.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_directory / "bot.log", encoding='utf-8')
        ]
    )

    # discord.py is chatty at INFO
    for name in ('discord', 'discord.http', 'discord.gateway'):
        logging.getLogger(name).setLevel(logging.WARNING)

    if level_name != logging.getLevelName(log_level):
        logging.getLogger(__name__).warning(f"Unknown log level {level_name}, using INFO")


async def main(config_path):
    config = load_config(config_path)
    setup_logging_from_config(config)
    token = get_bot_token(config)

    from flag_quiz.bot import run_bot
    await run_bot(token, config)


if __name__ == "__main__":
    path = Path(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CONFIG_PATH)
    print("🌍 Starting Flag Quiz Bot...")
    try:
        asyncio.run(main(path))
    except KeyboardInterrupt:
        print("\n👋 Flag Quiz Bot stopped")
