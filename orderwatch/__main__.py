"""Orderwatch process entry-point.

Usage:
    python -m orderwatch [--dry-run] [--once] [--log-level LEVEL] [--log-format FORMAT]

Default behaviour is continuous: the engine polls until the poll cycle
exhausts its restart budget, at which point the process exits with
:data:`EXIT_FATAL_RESTART` so its supervisor (systemd, Docker restart
policy, …) starts a fresh process generation.  ``--once`` logs in, runs a
single order check and exits.

Exit codes
----------
* ``0``  — clean shutdown (SIGTERM / Ctrl+C) or successful ``--once``.
* ``1``  — configuration error, rejected credentials or failed ``--once``.
* ``75`` — fatal restart requested (``EX_TEMPFAIL``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Final

from orderwatch.core import configure_logging
from orderwatch.core.exceptions import (
    AuthError,
    ConfigError,
    FatalRestartError,
    OrderwatchError,
)
from orderwatch.core.run_context import RunContext
from orderwatch.core.settings import Settings

#: Exit status asking the process supervisor for a restart.
EXIT_FATAL_RESTART: Final[int] = 75


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="orderwatch",
        description="Watches a restaurant order backend and alerts on pending orders.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log notifications instead of sending them to Telegram.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single order check and exit instead of polling continuously.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"orderwatch: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)
    logger.info("Orderwatch starting up")

    from orderwatch.orchestrator.runner import run_once  # noqa: PLC0415
    from orderwatch.orchestrator.scheduler import run_continuous  # noqa: PLC0415

    try:
        settings = Settings()
    except ValueError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)

    # .env values only become visible once Settings has loaded.
    configure_logging(
        level=args.log_level or settings.log_level,
        fmt=args.log_format or settings.log_format,
        force=True,
    )

    ctx = RunContext(dry_run=args.dry_run or settings.dry_run, once=args.once)
    logger.info("Run context: %s", ctx)

    try:
        if ctx.once:
            logger.info("Running single order check (--once mode).")
            asyncio.run(run_once(ctx=ctx, settings=settings))
        else:
            logger.info("Running in continuous mode (Ctrl+C to stop).")
            asyncio.run(run_continuous(ctx=ctx, settings=settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except AuthError as exc:
        logger.critical("Credentials were rejected: %s", exc)
        sys.exit(1)
    except FatalRestartError as exc:
        logger.critical("%s — exiting for supervisor restart.", exc)
        sys.exit(EXIT_FATAL_RESTART)
    except OrderwatchError as exc:
        logger.critical("Order check failed: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted — exiting.")
        sys.exit(0)
    except asyncio.CancelledError:
        logger.info("Shutdown complete — exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
