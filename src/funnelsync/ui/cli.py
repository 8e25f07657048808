from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from funnelsync.app import handle_intake_event, sync
from funnelsync.config import configure_logging
from funnelsync.domain.sync import SyncKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid integer: {value}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be positive: {value}")
    return number


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile gym prospects with conversions")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-candidate decisions and HTTP requests",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Reconcile prospects against the platforms")
    sync_parser.add_argument(
        "kind",
        choices=[str(kind) for kind in SyncKind],
        help="Which prospects to reconcile",
    )
    sync_parser.add_argument(
        "--tenant",
        type=str,
        help="Restrict the run to one country code (e.g. DE)",
    )
    sync_parser.add_argument(
        "--execute",
        action="store_true",
        help="Write changes; without it the run only reports proposed writes",
    )
    sync_parser.add_argument(
        "--max-candidates",
        type=_positive_int,
        help="Maximum number of candidates per run (defaults to config)",
    )

    intake = subparsers.add_parser("intake", help="Apply one platform event from a JSON file")
    intake.add_argument(
        "path",
        type=str,
        help="Path to the event JSON, or - to read from stdin",
    )

    return parser.parse_args(list(argv))


def _load_event(path: str) -> object:
    try:
        raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read event file {path}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Event file {path} is not valid JSON: {exc}") from exc


def _print_json(payload: dict[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))  # noqa: T201


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "sync":
            report = sync(
                parsed_args.kind,
                tenant=parsed_args.tenant,
                execute=parsed_args.execute,
                max_candidates=parsed_args.max_candidates,
            )
            _print_json(report.to_dict())
        elif parsed_args.command == "intake":
            result = handle_intake_event(_load_event(parsed_args.path))
            _print_json(result.to_dict())
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    signal(SIGINT, sigint_handler)
    main()
