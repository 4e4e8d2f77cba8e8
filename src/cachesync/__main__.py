"""CLI entry point for cachesync.

Usage:
    python -m cachesync [-v] sync [--region ID] [--dry-run]
    python -m cachesync search [--radius METERS] [--unsolved]
    python -m cachesync serve [--port PORT]
"""

from __future__ import annotations

import argparse
import json
import sys

from loguru import logger

from cachesync.client import StoreFactory, SyncClient
from cachesync.config import Settings, get_settings, require_sync_settings
from cachesync.credentials import Token, get_service_account_token
from cachesync.exceptions import CacheSyncError
from cachesync.fetcher import GeocachingFetcher
from cachesync.logging import configure_logging
from cachesync.reconciler import SyncResult
from cachesync.store import GoogleSheetsStore, MemoryStore, Store


def _create_fetcher(settings: Settings) -> GeocachingFetcher:
    return GeocachingFetcher(
        settings.geocaching_username,
        settings.geocaching_password,
        base_url=settings.geocaching_api_url,
    )


def _sheets_store_factory(settings: Settings) -> StoreFactory:
    """Store factory that reuses one access token until it nears expiry."""
    token: Token | None = None

    def create(sheet_name: str) -> Store:
        nonlocal token
        if token is None or not token.is_valid():
            token = get_service_account_token(settings.google_application_credentials)
        return GoogleSheetsStore(settings.spreadsheet_id, sheet_name, token.access_token)

    return create


def _dry_run_store_factory(sheet_name: str) -> Store:
    logger.info(f"Dry run: changes for {sheet_name} are kept in memory")
    return MemoryStore()


def _report(region: str, outcome: SyncResult | CacheSyncError) -> bool:
    if isinstance(outcome, CacheSyncError):
        print(f"{region}: failed ({outcome})", file=sys.stderr)
        return False
    print(f"{region}: {outcome.summary()}")
    return outcome.success


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync solved caches into the spreadsheet, one worksheet per region."""
    settings = get_settings()
    try:
        require_sync_settings(settings, dry_run=args.dry_run)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    store_factory = (
        _dry_run_store_factory if args.dry_run else _sheets_store_factory(settings)
    )
    fetcher = _create_fetcher(settings)
    client = SyncClient.from_settings(settings, fetcher, store_factory)
    try:
        if args.region:
            region = client.lookups.region_name(args.region)
            if region is None:
                print(f"Unknown region ID: {args.region}", file=sys.stderr)
                return 1
            try:
                outcomes: dict[str, SyncResult | CacheSyncError] = {
                    args.region: client.sync_region(args.region)
                }
            except CacheSyncError as e:
                outcomes = {args.region: e}
        else:
            outcomes = client.sync_all()
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        fetcher.close()

    ok = True
    for region_id, outcome in outcomes.items():
        name = client.lookups.region_name(region_id) or region_id
        ok = _report(name, outcome) and ok
    return 0 if ok else 1


def cmd_search(args: argparse.Namespace) -> int:
    """Print search results around home as JSON."""
    settings = get_settings()
    fetcher = _create_fetcher(settings)
    client = SyncClient.from_settings(settings, fetcher)
    try:
        if args.unsolved:
            caches = client.search_unsolved(args.radius)
        else:
            caches = client.search(args.radius)
    except CacheSyncError as e:
        print(f"Search failed: {e}", file=sys.stderr)
        return 1
    finally:
        fetcher.close()

    print(json.dumps([cache.to_dict() for cache in caches], indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the read-only HTTP API."""
    import uvicorn

    from cachesync.api import create_app

    settings = get_settings()
    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="cachesync",
        description="Sync solved geocaches into a Google Sheets worksheet",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # sync subcommand
    sync_parser = subparsers.add_parser(
        "sync",
        help="Reconcile solved caches into the spreadsheet",
    )
    sync_parser.add_argument(
        "--region",
        help="Region ID to sync (default: every known region)",
    )
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute changes without writing to the spreadsheet",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # search subcommand
    search_parser = subparsers.add_parser(
        "search",
        help="Print caches around home as JSON",
    )
    search_parser.add_argument(
        "--radius",
        type=int,
        default=0,
        help="Search radius in meters (default: 25000, or 100000 with --unsolved)",
    )
    search_parser.add_argument(
        "--unsolved",
        action="store_true",
        help="Only unsolved puzzle caches",
    )
    search_parser.set_defaults(func=cmd_search)

    # serve subcommand
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the read-only HTTP API",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (default: PORT setting)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        is_production=settings.is_production,
        log_level="DEBUG" if args.verbose else settings.log_level,
    )

    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
