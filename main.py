#!/usr/bin/env python3
"""
Rulebot - Main Entry Point
==========================

This is the main entry point for Rulebot, a rule-driven Twitch chat bot.
It provides a command-line interface for running the bot and for
inspecting its configuration and state.

Usage:
    python main.py                # Run the bot (same as --run)
    python main.py --web          # Run the bot with the status API
    python main.py --check        # Compile the rules and report
    python main.py --test "hi"    # Dry-run one chat line
    python main.py --status       # Show the saved state
    python main.py --init         # Write a default config
    python main.py --help         # Show help
"""

import os
import sys
import argparse
import asyncio
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from core.config import load_config, create_default_config, Config
from core.logging import setup_logging, get_logger
from core.exceptions import RulebotError
from core.persistence import SnapshotStore
from rules.compiler import load_channels, load_rule_set
from services.dispatcher import format_duration
from services.session import Supervisor
from transport.base import ChatLine
from transport.memory import MemoryTransport

logger = get_logger("main")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Rulebot - Rule-driven Twitch chat bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                      Run the bot
  python main.py --web --port 9000    Run with the status API on port 9000
  python main.py --check              Compile rules and print table sizes
  python main.py --test "hello" bob   Show what the bot would answer bob
  python main.py --status             Print the saved channel state
  python main.py --init               Create a default configuration

Credentials are read from TWITCH_NAME and TWITCH_TOKEN.
        """
    )

    # Mode selection (mutually exclusive)
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--run",
        action="store_true",
        help="Run the bot (default)"
    )
    mode_group.add_argument(
        "--web",
        action="store_true",
        help="Run the bot and serve the status API"
    )
    mode_group.add_argument(
        "--check",
        action="store_true",
        help="Compile the rule files and report"
    )
    mode_group.add_argument(
        "--test",
        nargs="+",
        metavar=("MESSAGE", "USER"),
        help="Dispatch one chat line against the first channel (usage: --test 'hello' [USER])"
    )
    mode_group.add_argument(
        "--status",
        action="store_true",
        help="Show the saved session state"
    )
    mode_group.add_argument(
        "--init",
        action="store_true",
        help="Write a default configuration"
    )

    # Optional arguments
    parser.add_argument(
        "--config",
        type=str,
        metavar="PATH",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the status API (default: from config, 8080)"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for the status API (default: from config, 127.0.0.1)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    return parser.parse_args(argv)


async def run_bot(config: Config, web: bool, debug: bool) -> None:
    """Run the supervisor, and the status API alongside it if enabled."""
    supervisor = Supervisor.from_config(config)
    tasks = [supervisor.run()]

    if web:
        from ui.web.app import create_app, serve_app

        app = create_app(supervisor.state, supervisor.rules, config, debug=debug)
        tasks.append(serve_app(app, config.ui.web_host, config.ui.web_port, debug=debug))

    logger.info(f"Starting {config.app_name} as {config.bot.name or '(anonymous)'}")
    await asyncio.gather(*tasks)


def run_check(config: Config) -> None:
    """Compile the rules and print a summary."""
    rules = load_rule_set(config.paths.config_dir, config.paths.data_dir, config.bot.name)
    rules.validate(passive_messages=config.behavior.passive_messages)
    channels = load_channels(config.paths.config_dir)

    print("\n" + "=" * 50)
    print("Rulebot - Rule Check")
    print("=" * 50 + "\n")

    for name, count in rules.summary().items():
        print(f"  {name.replace('_', ' ').title()}: {count}")

    print(f"\n  Channels: {', '.join(channels) if channels else '(none)'}")
    print("\n  ✓ Rules compiled successfully\n")


async def run_test_message(config: Config, message: str, user: str = "tester") -> None:
    """Dispatch one chat line and print what would be sent."""
    transport = MemoryTransport()
    await transport.connect()

    supervisor = Supervisor.from_config(config, transport_factory=lambda: transport)
    if not supervisor.channels:
        raise RulebotError("No channels configured", {"file": "channels.list"})

    channel = supervisor.channels[0]
    # Dry runs ignore the cooldown so every matching rule is visible
    supervisor.state.channels[channel].reset_cooldown()

    print(f"\nTest Message: {message}")
    print(f"From: {user} in #{channel}")
    print("-" * 50)

    dispatcher = supervisor.build_dispatcher(transport)
    await dispatcher.handle(ChatLine(channel=channel, user=user, text=message))

    if not transport.sent:
        print("\n(no response)")
    for _, text in transport.sent:
        print(f"\n> {text}")
    print()


def run_status_check(config: Config) -> None:
    """Print the saved session state."""
    store = SnapshotStore(config.paths.state_dir, snapshot_name=config.persistence.snapshot_name)

    print("\n" + "=" * 50)
    print("Rulebot - Saved State")
    print("=" * 50 + "\n")
    print(f"  Snapshot: {store.snapshot_path}")

    state = store.read()
    if state is None:
        print("  ✗ No snapshot yet\n")
        return

    print(f"  Ignored users: {len(state.ignores)}")

    for name, channel in sorted(state.channels.items()):
        print(f"\n#{name}")
        print("-" * 30)
        print(f"  Mood: {channel.mood.value}")
        print(f"  Cooldown: {channel.next_message.min:.0f}s-{channel.next_message.max:.0f}s")
        print(f"  Passive interval: {format_duration(channel.next_advice)}")
        print(f"  Topic: {channel.current_topic or '-'}")
        print(f"  Off topic now: {'yes' if channel.off_topic is not None else 'no'}")
        print(f"  Total off topic: {format_duration(channel.total_off_topic)}")

    print()


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        if args.init:
            config_dir = os.path.dirname(args.config) if args.config else None
            config = create_default_config(config_dir)
            print(f"Default configuration written to {config.paths.config_dir}")
            return 0

        config = load_config(args.config)

        # Apply command-line overrides
        if args.debug:
            config.debug = True
        if args.host:
            config.ui.web_host = args.host
        if args.port:
            config.ui.web_port = args.port

        # Setup logging
        setup_logging(
            log_dir=config.paths.log_dir,
            log_level="DEBUG" if args.debug else config.logging.level,
            json_format=config.logging.json,
            console_output=True
        )

        # Route to appropriate mode
        if args.check:
            run_check(config)
        elif args.status:
            run_status_check(config)
        elif args.test:
            message = args.test[0]
            user = args.test[1] if len(args.test) > 1 else "tester"
            asyncio.run(run_test_message(config, message, user))
        else:
            asyncio.run(run_bot(config, args.web or config.ui.web_enabled, args.debug))

        return 0

    except RulebotError as e:
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
