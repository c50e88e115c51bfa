"""Entry point that folds GOV.UK notification emails into the git archive."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gitgov.config import Settings
from gitgov.pipeline import UpdatePipeline

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Commit GOV.UK page changes announced by email.")
    parser.add_argument("--once", action="store_true", help="Process pending emails once and exit")
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between scans of the pending directory (overrides POLL_INTERVAL)",
    )
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)
    pipeline = UpdatePipeline.from_settings(settings)

    if args.once:
        stats = pipeline.run_once()
        if stats["failed"]:
            raise SystemExit(1)
        return

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
    try:
        pipeline.run_forever(args.poll_interval or settings.poll_interval, stop_event)
    except KeyboardInterrupt:
        logging.info("Interrupted, stopping")


if __name__ == "__main__":
    main()
