"""Command-line interface for the dagens pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List

import uvicorn

from .api import create_app
from .clients import LocalScraperService, ScraperServiceClient
from .config import Settings, get_settings
from .errors import ConfigurationError
from .ingest_http import fetch_many
from .knowledge import scrape_restaurant
from .models import SyncStatus
from .store import CustomerStore
from .sync import run_scheduled, sync_customer
from .validate import run_validation

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    p = argparse.ArgumentParser(
        prog="dagens-pipeline",
        description="Restaurant scraper and voice-AI knowledge base sync.",
    )
    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    # --- crawl ---
    crawl = sub.add_parser("crawl", help="Fetch pages and print the crawl results")
    _add_url_source(crawl)

    # --- scrape ---
    scrape = sub.add_parser("scrape", help="Crawl, extract and write knowledge files")
    scrape.add_argument("--name", required=True, help="Restaurant display name")
    _add_url_source(scrape)

    # --- sync ---
    sync = sub.add_parser("sync", help="Sync one customer's dagens to its knowledge base")
    sync.add_argument("--customer-id", type=int, required=True, help="Customer ID")
    sync.add_argument(
        "--local",
        action="store_true",
        help="Read dagens from local scrape output instead of the scraper service",
    )

    # --- cron ---
    cron = sub.add_parser("cron", help="Sync every customer scheduled for an hour")
    cron.add_argument(
        "--hour", type=int, choices=range(24), default=None,
        help="Hour of day, 0-23 (default: current hour)",
    )
    cron.add_argument(
        "--local",
        action="store_true",
        help="Read dagens from local scrape output instead of the scraper service",
    )

    # --- validate ---
    validate = sub.add_parser("validate", help="Validate a restaurant's knowledge output")
    validate.add_argument("slug", help="Restaurant slug")

    # --- serve ---
    serve = sub.add_parser("serve", help="Run the scraper service API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=4001)

    return p


def _add_url_source(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--preset", help="Preset name from settings (e.g. angelholm)")
    group.add_argument("--url", action="append", dest="urls", help="URL to fetch (repeatable)")


def _resolve_urls(args: argparse.Namespace, settings: Settings) -> List[str]:
    """Return the list of URLs for a preset or explicit --url options."""
    if args.urls:
        return args.urls
    try:
        return settings.presets[args.preset]
    except KeyError:
        raise ValueError(
            f"Unknown preset: {args.preset} (known: {', '.join(sorted(settings.presets))})"
        ) from None


def _configure_logging(verbose: bool) -> None:
    """Set up root logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _service(local: bool, settings: Settings):
    if local:
        return LocalScraperService(settings=settings)
    return ScraperServiceClient(settings=settings)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    settings = get_settings()

    if args.cmd == "crawl":
        pages = fetch_many(_resolve_urls(args, settings), settings=settings)
        _print_json([p.model_dump(mode="json", exclude={"html"}) for p in pages])
        return 0 if all(p.is_success for p in pages) else 1

    if args.cmd == "scrape":
        summary = scrape_restaurant(_resolve_urls(args, settings), args.name, settings=settings)
        _print_json(summary.model_dump(mode="json"))
        return 0 if summary.pages_fetched else 1

    if args.cmd == "sync":
        store = CustomerStore(settings.customers_path)
        customer = store.get(args.customer_id)
        if customer is None:
            logger.error("Customer %d not found in %s", args.customer_id, settings.customers_path)
            return 2
        try:
            result = sync_customer(
                customer, store=store, service=_service(args.local, settings)
            )
        except ConfigurationError as exc:
            logger.error("%s", exc)
            return 2
        _print_json(result.model_dump(mode="json"))
        return 1 if result.status is SyncStatus.FAILED else 0

    if args.cmd == "cron":
        report = run_scheduled(
            store=CustomerStore(settings.customers_path),
            service=_service(args.local, settings),
            hour=args.hour,
        )
        _print_json(report.model_dump(mode="json"))
        return 0

    if args.cmd == "validate":
        report = run_validation(args.slug, settings=settings)
        print(report.summary())
        return 0 if report.passed else 1

    if args.cmd == "serve":
        uvicorn.run(create_app(settings), host=args.host, port=args.port)
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
