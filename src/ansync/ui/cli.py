from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from ansync.app import list_checkpoints, preview_network, reconcile_networks
from ansync.config import ConfigurationError, configure_logging
from ansync.domain.reconciliation import describe

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Not a number: {value}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Timeout must be positive")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ansync",
        description="Reconcile name-service registry contracts with the registry feed",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Run one reconciliation cycle")
    reconcile.add_argument(
        "--network",
        dest="networks",
        action="append",
        metavar="ID",
        help="Network id to reconcile (repeatable; defaults to every configured network)",
    )
    reconcile.add_argument(
        "--force",
        action="store_true",
        help="Reconcile even when the checkpoint already covers the feed revision",
    )
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and report the ops without submitting transactions",
    )
    reconcile.add_argument(
        "--timeout",
        type=_positive_float,
        help="Whole-cycle timeout in seconds (defaults to ANSYNC_CYCLE_TIMEOUT)",
    )

    diff = subparsers.add_parser("diff", help="Show the ops needed for one network")
    diff.add_argument("--network", required=True, metavar="ID", help="Network id to inspect")

    subparsers.add_parser("checkpoints", help="List stored checkpoints")

    return parser.parse_args(list(argv))


def _run_reconcile(args: argparse.Namespace) -> int:
    summary = reconcile_networks(
        args.networks,
        force=args.force,
        dry_run=args.dry_run,
        timeout=args.timeout,
    )
    if args.dry_run:
        for report in summary:
            for op in report.ops:
                log.info("%s", describe(op))
    return 0 if summary.ok else 1


def _run_diff(args: argparse.Namespace) -> int:
    report = preview_network(args.network)
    if report.error:
        log.error("Could not compute diff for %s: %s", args.network, report.error)
        return 1
    if not report.ops:
        log.info("%s matches the registry feed", args.network)
    for op in report.ops:
        log.info("%s", describe(op))
    return 0


def _run_checkpoints() -> int:
    checkpoints = list_checkpoints()
    if not checkpoints:
        log.info("No checkpoints stored yet")
    for checkpoint in checkpoints:
        log.info(
            "%s: revision %s (updated %s)",
            checkpoint.network_id,
            checkpoint.revision,
            checkpoint.updated_at.isoformat(),
        )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "reconcile":
            exit_code = _run_reconcile(parsed_args)
        elif parsed_args.command == "diff":
            exit_code = _run_diff(parsed_args)
        elif parsed_args.command == "checkpoints":
            exit_code = _run_checkpoints()
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(1)

    sys.exit(exit_code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
