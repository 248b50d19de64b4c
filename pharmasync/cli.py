"""
Command-line entry point.

Usage:
    pharmasync sync --type full --max-products 500
    pharmasync sync --type stock
    pharmasync sync --type all
    pharmasync search "парацетамол 500мг" --limit 5
    pharmasync status
    pharmasync backfill-embeddings --limit 200
    pharmasync serve --port 8000
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from pharmasync.core.config import PharmaSyncConfig, set_config
from pharmasync.errors import PharmaSyncError
from pharmasync.services import build_services
from pharmasync.utils.logger import get_logger

logger = get_logger("cli")


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _run_sync(args, services) -> Any:
    if args.type == "all":
        return await services.scheduler.run_all_syncs_now()
    options = {
        "batch_size": args.batch_size,
        "max_products": args.max_products,
        "generate_embeddings": not args.no_embeddings,
    }
    stats = await services.scheduler.run_manual_sync(args.type, options)
    return stats.to_dict()


async def _run_search(args, services) -> Any:
    result = await services.search.search(
        args.query,
        limit=args.limit or services.config.search_default_limit,
        category=args.category,
        real_time_stock=args.realtime,
    )
    return result.to_dict()


async def _run_status(args, services) -> Any:
    return await services.scheduler.get_sync_status()


async def _run_backfill(args, services) -> Any:
    return await services.catalog_sync.backfill_embeddings(limit=args.limit)


COMMANDS = {
    "sync": _run_sync,
    "search": _run_search,
    "status": _run_status,
    "backfill-embeddings": _run_backfill,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pharmasync", description="Pharmacy catalog sync and search")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Run a sync now")
    sync.add_argument("--type", choices=["full", "catalog", "stock", "quick", "all"], default="stock")
    sync.add_argument("--max-products", type=int, default=None)
    sync.add_argument("--batch-size", type=int, default=None)
    sync.add_argument("--no-embeddings", action="store_true", help="Skip embedding generation")

    search = sub.add_parser("search", help="Search products")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--category", default=None)
    search.add_argument("--realtime", action="store_true", help="Check stock against the live API")

    sub.add_parser("status", help="Show sync health, counts and cache state")

    backfill = sub.add_parser("backfill-embeddings", help="Embed products that have no embedding yet")
    backfill.add_argument("--limit", type=int, default=None)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = PharmaSyncConfig.from_yaml(args.config)
    if args.log_level:
        config.log_level = args.log_level
    set_config(config)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("pharmasync.api.server:app", host=args.host, port=args.port)
        return 0

    services = build_services(config)
    try:
        result = asyncio.run(COMMANDS[args.command](args, services))
    except (PharmaSyncError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    _print_json(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
