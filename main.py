#!/usr/bin/env python3
"""Command-line entry point that imports an MPC Fill order and reports card resolution."""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path
from typing import Any

from loguru import logger

from services.card_resolver import ResolutionProgress
from services.order_import_service import ImportResult, OrderImportService
from services.settings_service import SettingsService
from utils.constants import CONFIG_FILE, LOGS_DIR
from utils.errors import MalformedInputError
from utils.logging_config import configure_logging

EXIT_OK = 0
EXIT_MISSING_FILE = 1
EXIT_MALFORMED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import an MPC Fill order XML and download its card images"
    )
    parser.add_argument("order", type=Path, help="Path to the MPC Fill order XML file")
    parser.add_argument(
        "--config",
        type=Path,
        default=CONFIG_FILE,
        help=f"Settings JSON file (default: {CONFIG_FILE}).",
    )
    parser.add_argument(
        "--workers", type=int, default=None, help="Maximum concurrent image downloads."
    )
    parser.add_argument("--no-cache", action="store_true", help="Bypass the local image cache.")
    parser.add_argument(
        "--bleed",
        choices=("on", "off"),
        default=None,
        help="Override the global bleed default for cards without <bleedchecked>.",
    )
    parser.add_argument(
        "--normalize",
        action="store_true",
        help="Resize downloaded images to 600 DPI print resolution.",
    )
    parser.add_argument(
        "--retry", action="store_true", help="Retry cards that failed with a network error."
    )
    parser.add_argument("--logs-dir", type=Path, default=LOGS_DIR, help="Log file directory.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def _print_progress(progress: ResolutionProgress) -> None:
    print(
        f"[{progress.percentage_complete:5.1f}%] {progress.current_operation}",
        file=sys.stderr,
    )


def print_summary(result: ImportResult) -> None:
    order = result.order
    print(
        f"Order: quantity={order.quantity} bracket={order.bracket} stock={order.stock} "
        f"foil={order.foil} cardback={order.cardback}"
    )
    for position, card in enumerate(result.collection, start=1):
        status = "ok" if card.image_downloaded else f"FAILED ({card.failure_reason})"
        bleed = "bleed" if card.enable_bleed else "no bleed"
        print(f"{position:>3}. {card.name} [{card.card_id}] {bleed} - {status}")
    for skipped in result.report.skipped:
        print(f"  skipped: {skipped.spec.name} ({skipped.reason})")
    summary = result.summary()
    print(
        f"\n{summary['resolved']} resolved, {summary['failed']} failed, "
        f"{summary['skipped']} skipped ({summary['status']})"
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.logs_dir, level="DEBUG" if args.verbose else "INFO")

    settings = SettingsService(args.config).load_settings()
    settings = settings.with_overrides(
        max_workers=args.workers,
        use_image_cache=False if args.no_cache else None,
        global_bleed_enabled=None if args.bleed is None else args.bleed == "on",
        normalize_images=True if args.normalize else None,
    )
    service = OrderImportService(settings)
    cancel_event = threading.Event()

    outcome: dict[str, Any] = {}

    def worker() -> None:
        try:
            outcome["result"] = service.import_file(
                args.order, cancel_event=cancel_event, progress_callback=_print_progress
            )
        except Exception as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=worker, name="order-import", daemon=True)
    thread.start()
    try:
        while thread.is_alive():
            thread.join(timeout=0.2)
    except KeyboardInterrupt:
        logger.warning("Import interrupted; keeping cards resolved so far")
        cancel_event.set()
        thread.join()

    error = outcome.get("error")
    if isinstance(error, FileNotFoundError):
        logger.error(str(error))
        return EXIT_MISSING_FILE
    if isinstance(error, MalformedInputError):
        logger.error(f"Invalid order file: {error}")
        return EXIT_MALFORMED
    if error is not None:
        raise error
    result: ImportResult = outcome["result"]

    if args.retry and result.failed_cards:
        service.retry_failed(result.collection)

    print_summary(result)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
