"""Fetch one GOV.UK page with its attachments into a local directory."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gitgov.errors import GitGovError
from gitgov.fetcher import DocumentFetcher
from gitgov.utils import url_host

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Download a page and its attachments.")
    parser.add_argument("url", help="Page to fetch")
    parser.add_argument("directory", type=Path, help="Base directory to store files in")
    parser.add_argument(
        "--extra-host",
        action="append",
        default=[],
        help="Additional host attachments may be fetched from (repeatable)",
    )
    parser.add_argument("--max-depth", type=int, default=3)
    parser.add_argument("--timeout", type=float, default=30.0)
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    fetcher = DocumentFetcher(
        trusted_host=url_host(args.url),
        extra_hosts=args.extra_host,
        timeout=args.timeout,
        max_depth=args.max_depth,
    )
    try:
        documents = fetcher.fetch(args.url)
    except GitGovError as exc:
        logging.error("Fetching %s failed: %s", args.url, exc)
        raise SystemExit(1) from exc

    for fetched in documents:
        path = args.directory / fetched.storage_path
        path.parent.mkdir(parents=True, exist_ok=True)
        logging.info("Writing doc to %s", path)
        path.write_bytes(fetched.document.payload)
        for revision in getattr(fetched.document, "revision_history", []):
            logging.debug("  %s %s", revision.timestamp.isoformat(), revision.summary)

    logging.info("Fetched %s document(s) from %s", len(documents), args.url)


if __name__ == "__main__":
    main()
