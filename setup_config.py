#!/usr/bin/env python3
# Area: Shared
"""
Live Battle Engine - Configuration Setup Script
===============================================

Interactive script to generate config.json and .env files.

Usage:
    python setup_config.py
"""

import json
from pathlib import Path


def prompt(question: str, default: str = "", required: bool = True) -> str:
    """Prompt user for input with optional default value."""
    if default:
        display = f"{question} [{default}]: "
    else:
        display = f"{question}: "

    while True:
        value = input(display).strip()
        if not value and default:
            return default
        if value:
            return value
        if not required:
            return ""
        print("  This field is required. Please enter a value.")


def prompt_number(question: str, default: str, cast=float):
    """Prompt until the answer parses with ``cast``."""
    while True:
        value = prompt(question, default=default)
        try:
            return cast(value)
        except ValueError:
            print(f"  '{value}' is not a valid number.")


def print_header():
    """Print welcome header."""
    print()
    print("=" * 60)
    print("  Live Battle Engine - Configuration Setup")
    print("=" * 60)
    print()
    print("This script will help you create config.json and .env files.")
    print("Press Enter to accept default values shown in [brackets].")
    print()


def print_section(title: str):
    """Print section header."""
    print()
    print(f"--- {title} ---")
    print()


def get_config_values() -> dict:
    """Interactively collect configuration values."""
    config = {}

    print_section("Timing")
    config["countdown_seconds"] = prompt_number("Countdown before question 1 (seconds)", "3")
    config["reveal_seconds"] = prompt_number("Reveal pause between questions (seconds)", "5")
    paced = prompt("Let the host advance reveals manually? (y/n)", default="n")
    config["host_paced_reveal"] = paced.lower().startswith("y")
    if config["host_paced_reveal"]:
        config["reveal_max_wait_seconds"] = prompt_number(
            "Maximum wait for the host (seconds)", "30"
        )
    config["latency_allowance_ms"] = prompt_number(
        "Client latency allowance (milliseconds)", "1000", cast=int
    )

    print_section("Rooms")
    config["min_participants"] = prompt_number(
        "Players needed to start (2-4)", "2", cast=int
    )

    print_section("Storage and Logging")
    config["db_path"] = prompt("SQLite database path", default="live_battle.db")
    config["log_file"] = prompt("Log file", default="live_battle.log")
    config["log_level"] = prompt("Log level", default="INFO").upper()

    return config


def write_config_json(config: dict, path: Path) -> None:
    """Write config.json file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=4)
    print(f"  Created: {path}")


def write_env_file(config: dict, path: Path) -> None:
    """Write .env file with the settings most often changed per machine."""
    env_mapping = {
        "db_path": "LIVE_BATTLE_DB_PATH",
        "log_file": "LIVE_BATTLE_LOG_FILE",
        "log_level": "LIVE_BATTLE_LOG_LEVEL",
    }

    lines = []
    for config_key, env_key in env_mapping.items():
        if config_key in config and config[config_key]:
            lines.append(f"{env_key}={config[config_key]}")

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    print(f"  Created: {path}")


def main():
    """Main entry point."""
    print_header()

    try:
        config = get_config_values()
    except KeyboardInterrupt:
        print("\n\nSetup cancelled.")
        return 1

    print_section("Generating Files")

    base_path = Path.cwd()
    write_config_json(config, base_path / "config.json")
    write_env_file(config, base_path / ".env")

    print()
    print("=" * 60)
    print("  Setup Complete!")
    print("=" * 60)
    print()
    print("Next steps:")
    print()
    print("  1. Run a demo battle with your settings:")
    print("     python -m live_battle --demo --config config.json")
    print()
    print("  2. Embed BattleArena in your realtime server and subscribe")
    print("     your transport to its events")
    print()
    return 0


if __name__ == "__main__":
    exit(main())
