"""Operator entry point for running and inspecting the crawler locally.

Usage:
    python -m scripts.run_crawler run [--budget SECONDS] [--max-products N]
    python -m scripts.run_crawler state
    python -m scripts.run_crawler reset SOURCE [--full] [--activate]
    python -m scripts.run_crawler history [--limit N]

``run`` performs one time-boxed session exactly like the scheduled worker
does, just in the foreground with a (by default) shorter budget.
"""

import argparse
import asyncio
import json
import logging

from foodcrawl.config import settings
from foodcrawl.database import async_session_factory, engine
from foodcrawl.services.crawler.orchestrator import run_crawl_session
from foodcrawl.services.crawler.rotation import Source
from foodcrawl.services.crawler.state import CrawlStateStore
from foodcrawl.services.store.sql import SqlDocumentStore


def _state_store(store: SqlDocumentStore) -> CrawlStateStore:
    return CrawlStateStore(
        store,
        settings.crawl_state_collection,
        settings.crawl_state_document_id,
        submissions_collection=settings.submissions_collection,
    )


async def main(args: argparse.Namespace) -> int:
    store = SqlDocumentStore(async_session_factory)
    try:
        if args.cmd == "run":
            cfg = settings.model_copy(
                update={
                    "max_runtime_seconds": args.budget,
                    "max_products_per_run": args.max_products,
                }
            )
            summary = await run_crawl_session(cfg, store=store)
            print(json.dumps(summary.to_dict(), indent=2))
            return 0 if summary.success else 1

        state_store = _state_store(store)
        if args.cmd == "state":
            state = await state_store.load()
        elif args.cmd == "reset":
            state = await state_store.reset_source(
                Source(args.source), full=args.full, make_active=args.activate
            )
        else:
            history = await state_store.get_crawl_history(args.limit)
            print(json.dumps(history, indent=2, default=str))
            return 0

        print(f"Active source: {state.active_source.value}")
        print(f"Cursors: {json.dumps(state.source_cursor)}")
        print(f"Total processed: {state.total_processed}")
        print(f"Last run: {state.last_run_at}")
        if state.last_error:
            print(f"Last error ({state.last_error_at}): {state.last_error}")
        return 0
    finally:
        await engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dog food crawler operations")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run one crawl session in the foreground")
    run.add_argument("--budget", type=float, default=5 * 60, help="Time budget in seconds")
    run.add_argument(
        "--max-products",
        type=int,
        default=settings.max_products_per_run,
        help="Product cap for this session",
    )

    sub.add_parser("state", help="Show the stored crawl state")

    reset = sub.add_parser("reset", help="Rewind a source's page cursor")
    reset.add_argument("source", choices=[s.value for s in Source])
    reset.add_argument("--full", action="store_true", help="Rewind every source")
    reset.add_argument("--activate", action="store_true", help="Make SOURCE the active source")

    history = sub.add_parser("history", help="Show recent crawl sessions")
    history.add_argument("--limit", type=int, default=10)
    return parser


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
    )
    raise SystemExit(asyncio.run(main(build_parser().parse_args())))
