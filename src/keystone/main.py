"""Keystone service entry point.

``keystone`` (or ``python -m keystone``) captures the environment, runs the
bootstrap sequence and serves until shutdown. Any startup failure prints the
cause to stderr and exits with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Mapping
import json
import logging
import sys

from keystone.auth.access import AccessGuard
from keystone.core.exceptions import KeystoneError
from keystone.core.logging_config import setup_logging
from keystone.startup.config_schema import (
    KeystoneConfig,
    LogLevel,
    capture_environment,
)
from keystone.startup.orchestrator import BootstrapSequencer

logger = logging.getLogger(__name__)


def initial_log_level(snapshot: Mapping[str, str]) -> str:
    """Log level to use before the configuration has been validated."""
    try:
        return LogLevel(snapshot.get("LOG_LEVEL") or LogLevel.INFO).value
    except ValueError:
        return LogLevel.INFO.value


async def bootstrap(
    snapshot: Mapping[str, str], *, access_guard: AccessGuard | None = None
) -> None:
    """Start the service and serve until shutdown."""
    sequencer = BootstrapSequencer(snapshot, access_guard=access_guard)
    await sequencer.run()


def check_config(snapshot: Mapping[str, str]) -> int:
    """Validate configuration only and print the startup summary."""
    config, errors = KeystoneConfig.validate_snapshot(snapshot)

    if config is None:
        print("❌ Configuration validation failed:", file=sys.stderr)  # noqa: T201
        for error in errors:
            print(f"  • {error}", file=sys.stderr)  # noqa: T201
        return 1

    print(json.dumps(config.get_startup_summary(), indent=2))  # noqa: T201
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Keystone HTTP service")
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate configuration and exit without binding a listener",
    )
    parser.add_argument(
        "--env-dir",
        default=".",
        help="Directory containing .env files (default: current directory)",
    )
    args = parser.parse_args(argv)

    snapshot = capture_environment(env_dir=args.env_dir)
    setup_logging(initial_log_level(snapshot))

    try:
        if args.check_config:
            return check_config(snapshot)
        asyncio.run(bootstrap(snapshot))
    except KeyboardInterrupt:
        return 130
    except KeystoneError as e:
        print(f"Error starting the application: {e}", file=sys.stderr)  # noqa: T201
        return 1
    except Exception as e:
        logger.exception("Unexpected error during startup")
        print(f"Error starting the application: {e}", file=sys.stderr)  # noqa: T201
        return 1

    return 0


def run() -> None:
    """Console script wrapper."""
    sys.exit(main())


if __name__ == "__main__":
    run()
