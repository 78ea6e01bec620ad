#!/usr/bin/env python3
"""
TaskMint Indexer - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Wires the sync engine and the query API into one process.

- run     sync engine + query API (API only when FACTORY_ADDRESS is unset)
- sync    sync engine only
- api     query API only
- once    a single sync cycle, then exit
- status  table row counts and cursor

============================================================
USAGE
============================================================
    python app.py run
    python app.py once --log-level DEBUG
    LOG_FORMAT=json python app.py sync

With PM2:
    pm2 start app.py --interpreter python --name taskmint-indexer -- run

============================================================
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

import uvicorn

from database.engine import (
    create_database_engine,
    get_session_factory,
    get_table_row_counts,
    initialize_database,
    DatabasePersistenceError,
)
from event_sync.config import SyncConfig
from event_sync.cursor import CursorStore
from event_sync.scheduler import SyncScheduler, setup_logging
from onchain_adapters.providers.json_rpc import JsonRpcLogSource
from query_api.main import create_app


logger = logging.getLogger(__name__)

COMMANDS = ("run", "sync", "api", "once", "status")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="taskmint-indexer",
        description="Bounty event indexer and read API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  RPC_URL, FACTORY_ADDRESS, START_BLOCK, POLL_INTERVAL_SECONDS,
  MAX_BLOCK_RANGE, RPC_TIMEOUT_SECONDS, DATABASE_URL, PORT, LOG_LEVEL

Examples:
  %(prog)s run                      # Sync + API on $PORT
  %(prog)s once --log-level DEBUG   # One cycle, verbose
  %(prog)s status                   # Row counts and cursor
        """
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="run",
        help="What to run (default: run)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["text", "json"],
        default=os.getenv("LOG_FORMAT", "text"),
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="API bind address (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API port (default: $PORT or 4000)",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (default: $DATABASE_URL or sqlite:///taskmint.db)",
    )

    return parser


def validate(command: str, config: SyncConfig) -> List[str]:
    """Startup checks for the chosen command."""
    if command in ("sync", "once"):
        return config.validate(require_sync=True)
    if command in ("api", "status"):
        return [e for e in config.validate() if not e.startswith("RPC_URL")]
    return config.validate()


# ============================================================
# WIRING
# ============================================================

def build_scheduler(config: SyncConfig) -> SyncScheduler:
    source = JsonRpcLogSource(
        rpc_url=config.rpc_url,
        timeout=config.rpc_timeout_seconds,
        max_retries=config.rpc_max_retries,
    )
    return SyncScheduler.from_config(config, source, get_session_factory())


def build_server(app, host: str, port: int, log_level: str) -> uvicorn.Server:
    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level.lower(),
        log_config=None,
    )
    return uvicorn.Server(server_config)


def _install_signal_handlers(scheduler: SyncScheduler) -> None:
    """Stop starting new cycles on SIGINT/SIGTERM."""
    if sys.platform == "win32":
        return
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)


# ============================================================
# COMMANDS
# ============================================================

async def run_application(args, config: SyncConfig) -> int:
    """
    Run the requested command.

    Returns:
        Exit code
    """
    scheduler: Optional[SyncScheduler] = None
    if args.command in ("run", "sync", "once") and config.sync_enabled:
        scheduler = build_scheduler(config)

    try:
        if args.command == "once":
            result = await scheduler.run_once()
            print(f"\nCycle Result: {'SUCCESS' if result.success else 'FAILED'}")
            print(f"Range: {result.from_block}-{result.to_block}")
            if result.skipped:
                print(f"Skipped: {result.reason}")
            for kind, ingest in result.ingested.items():
                print(f"  {kind.value:<10} received={ingest.received} inserted={ingest.inserted}")
            if not result.success:
                print(f"Error: {result.error}")
            return 0 if result.success else 1

        if args.command == "sync":
            _install_signal_handlers(scheduler)
            logger.info("Starting sync loop (press Ctrl+C to stop)...")
            await scheduler.run_forever()
            return 0

        # run / api
        if args.command == "run" and scheduler is None:
            logger.warning("FACTORY_ADDRESS not set - sync disabled, serving API only")

        app = create_app(scheduler=scheduler if args.command == "run" else None)
        server = build_server(app, args.host, config.api_port, config.log_level)
        logger.info(f"[api] listening on http://localhost:{config.api_port}")

        if scheduler is None or args.command == "api":
            await server.serve()
            return 0

        sync_task = asyncio.ensure_future(scheduler.run_forever())
        try:
            await server.serve()
        finally:
            scheduler.stop()
            await sync_task
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        if scheduler is not None:
            await scheduler.source.close()


def show_status() -> int:
    """Print table row counts and the sync cursor."""
    counts = get_table_row_counts()
    cursor = CursorStore(get_session_factory()).get()

    print("\nTable row counts:")
    for table, count in counts.items():
        print(f"  {table:<14} {count}")
    print(f"\nCursor (last_block): {cursor if cursor is not None else 'not set'}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        config = SyncConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        config.log_level = args.log_level
    if args.port:
        config.api_port = args.port

    setup_logging(level=config.log_level, log_format=args.log_format)

    errors = validate(args.command, config)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        create_database_engine(args.database_url)
        initialize_database()
    except DatabasePersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "status":
        return show_status()

    return asyncio.run(run_application(args, config))


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
