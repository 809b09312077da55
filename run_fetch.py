"""CLI entry point.

This script runs the feed pipeline against the configured store, or inspects it.
Configuration comes from the environment / `.env` (see `feed_engine.config`).

Examples:
    python run_fetch.py run
    python run_fetch.py status
    python run_fetch.py facts chauffeur-spl-transports-martin
    python run_fetch.py manual --title "Chauffeur SPL" --company "Transports Martin" --url https://example.com/apply

The scheduling trigger (cron, systemd timer, ...) just calls `run_fetch.py run`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from feed_engine.config import get_settings
from feed_engine.extract import parse_facts
from feed_engine.pipeline import FeedPipeline
from feed_engine.store import PostingStore


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Ingest the job feed and inspect the posting store.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Process the feed once and print run counters.")
    sub.add_parser("status", help="Print store size and whether a run is in progress.")

    facts = sub.add_parser("facts", help="Print structured facts extracted from a stored posting.")
    facts.add_argument("slug", type=str)

    manual = sub.add_parser("manual", help="Publish one posting by hand.")
    manual.add_argument("--title", required=True)
    manual.add_argument("--company", required=True)
    manual.add_argument("--url", required=True)
    manual.add_argument("--description", default="", help="HTML or text; generated when empty.")
    manual.add_argument("--tags", default="", help="Comma-separated extra tags.")
    manual.add_argument("--currency", default="")
    manual.add_argument("--salary-min", default="")
    manual.add_argument("--salary-max", default="")
    manual.add_argument("--salary-unit", default="YEAR", choices=["YEAR", "MONTH", "WEEK", "DAY", "HOUR"])
    return p.parse_args()


def main() -> int:
    args = parse_args()
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    with PostingStore(settings.database_path) as store:
        pipeline = FeedPipeline(settings, store)

        if args.command == "run":
            try:
                stats = pipeline.run()
            except Exception:
                return 1
            out = stats.model_dump() if stats else {"skipped": True}
        elif args.command == "status":
            out = pipeline.status()
        elif args.command == "facts":
            posting = store.get_by_slug(args.slug)
            if posting is None:
                print(f"No posting with slug {args.slug!r}", file=sys.stderr)
                return 1
            out = parse_facts(posting.description_html, posting.title, settings.site_url, settings.target_lang).model_dump()
        else:
            posting = pipeline.publish_manual(
                title=args.title,
                company=args.company,
                url=args.url,
                description=args.description,
                tags=args.tags,
                currency=args.currency,
                salary_min=args.salary_min,
                salary_max=args.salary_max,
                salary_unit=args.salary_unit,
            )
            out = posting.model_dump() if posting else {"inserted": False}

    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
