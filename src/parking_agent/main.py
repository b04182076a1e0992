"""Entry point for the parking agent."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Optional

import structlog
from pydantic import SecretStr, ValidationError

from .config import Settings
from .dates import extract_calendar_date, is_valid_date_format
from .errors import InvalidDateError
from .models import Outcome, ReservationRequest
from .worker import ReservationWorker

USAGE_EXAMPLE = "Example: parking-agent run 2025-02-17 you@example.com 'password' [parking-code]"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structlog + stdlib logging."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


LOGGER = structlog.get_logger(__name__)


async def run(settings: Settings, request: ReservationRequest) -> Outcome:
    """Execute one reservation run."""
    worker = ReservationWorker(settings, request)
    return await worker.run()


def build_parser() -> argparse.ArgumentParser:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(
        prog="parking-agent",
        description="Poll a resort parking calendar and reserve a date as soon as it opens.",
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Poll for a date and reserve it.")
    run_parser.add_argument("date", nargs="?", help="Target date, YYYY-MM-DD.")
    run_parser.add_argument("email", nargs="?", help="Account email (falls back to EMAIL).")
    run_parser.add_argument("password", nargs="?", help="Account password (falls back to PASSWORD).")
    run_parser.add_argument("parking_code", nargs="?", help="Redeem this parking code instead of paying.")
    run_parser.add_argument("--sms-code", help="Submit this code if an SMS challenge appears after login.")
    run_parser.add_argument(
        "--check-only",
        action="store_true",
        help="Stop once the date is available instead of reserving it.",
    )
    run_parser.add_argument("--devtools", action="store_true", help="Open Chrome devtools.")
    run_parser.add_argument(
        "--attach",
        action="store_true",
        help="Start Chrome with a debugging port and attach to it instead of launching Chromium.",
    )
    run_parser.add_argument("--base-url", help="Resort base URL, e.g. https://reserve.altaparking.com")
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.check_only:
        overrides["make_reservation"] = False
    if args.devtools:
        overrides["devtools"] = True
    if args.attach:
        overrides["attach_to_chrome"] = True
    if args.base_url:
        overrides["base_url"] = args.base_url
    return overrides


def cli(argv: Optional[list[str]] = None) -> int:
    """Console script entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "run" or not args.date:
        print("No date provided. Exiting...")
        parser.print_usage()
        print(USAGE_EXAMPLE)
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not is_valid_date_format(args.date):
        print("Invalid date format. Please use YYYY-MM-DD format. Ex. 2025-02-17", file=sys.stderr)
        return 1

    try:
        settings = Settings(**_settings_overrides(args))
    except ValidationError as exc:
        LOGGER.exception("settings.error", error=str(exc))
        return 1

    email = args.email or settings.email
    password = SecretStr(args.password) if args.password else settings.password
    if not email or not password or not password.get_secret_value():
        print("Missing email or password.", file=sys.stderr)
        print(USAGE_EXAMPLE, file=sys.stderr)
        return 1

    try:
        target = extract_calendar_date(args.date)
    except InvalidDateError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    request = ReservationRequest(
        target=target,
        username=email,
        password=password,
        sms_code=args.sms_code,
        parking_code=args.parking_code,
    )

    try:
        outcome = asyncio.run(run(settings, request))
    except Exception as exc:
        LOGGER.exception("agent.failed", error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    LOGGER.info("agent.complete", date_iso=target.iso, outcome=outcome.value)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli())
