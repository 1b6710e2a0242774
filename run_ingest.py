"""Convenience script for ingesting every configured account once."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the tweetwire package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from tweetwire.config import AppConfig  # noqa: E402  (import after path setup)
from tweetwire.factory import build_ingestor  # noqa: E402


def main() -> None:
    """Load the configuration and ingest each account, a single post URL or a search query."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", help="Path to settings.json")
    parser.add_argument("--url", help="Ingest a single post instead of the configured accounts")
    parser.add_argument("--query", help="Ingest search results instead of the configured accounts")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    try:
        config = AppConfig.from_file(args.config)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Could not load configuration: %s", exc)
        sys.exit(1)

    ingestor = build_ingestor(config)

    reports = []
    if args.url:
        reports.append(ingestor.ingest_post(args.url, config.default_mode))
    elif args.query:
        reports.append(ingestor.ingest_search(args.query, config.default_mode))
    else:
        for account in config.iter_accounts():
            logging.info("Ingesting @%s", account.username)
            report = ingestor.ingest_user(account.username, config.mode_for(account))
            if report.error:
                logging.error("Failed to ingest @%s: %s", account.username, report.error)
            reports.append(report)

    print(json.dumps([report.model_dump(mode="json") for report in reports], ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
