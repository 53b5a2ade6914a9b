from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from slopecast.config import load_config
from slopecast.logging import setup_logging

from .cache import SnapshotCache
from .errors import SlopecastError
from .ingest import IngestionOrchestrator
from .jobs import run_ingestion, run_maintenance, run_snow_depth_sync
from .resorts import load_resorts, seed_resorts
from .storage import SlopeStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slopecast", description="Ski resort condition and forecast ingestion")
    parser.add_argument("--config", help="YAML file overriding the packaged defaults")
    commands = parser.add_subparsers(dest="command", required=True)

    ingest = commands.add_parser("ingest", help="scrape conditions for the resort catalog")
    ingest.add_argument("--single", metavar="ID", help="scrape only the resort with this skiresort.info id")

    commands.add_parser("snow-depth-sync", help="refresh fallback snow depth readings")
    commands.add_parser("prune", help="delete expired snapshots and stale radar frames")

    seed = commands.add_parser("seed", help="load a resort catalog from YAML")
    seed.add_argument("path")
    return parser


def _emit(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(config_path=args.config)
    setup_logging(config.logging)

    try:
        store = SlopeStore.from_config(config)
        cache = SnapshotCache(store)

        if args.command == "ingest" and args.single:
            outcome = asyncio.run(IngestionOrchestrator(store, config=config.scraper).run_single(args.single))
            _emit({"resort": outcome.resort.slug, "state": outcome.state.value, "error": outcome.error})
            return 0 if outcome.error is None else 1
        if args.command == "ingest":
            _emit(asyncio.run(run_ingestion(cache, config)).to_dict())
        elif args.command == "snow-depth-sync":
            _emit(asyncio.run(run_snow_depth_sync(cache, config)).to_dict())
        elif args.command == "prune":
            _emit(run_maintenance(cache, config))
        elif args.command == "seed":
            _emit({"seeded": seed_resorts(store, load_resorts(args.path))})
    except SlopecastError as exc:
        print(f"slopecast: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
