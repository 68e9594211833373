#!/usr/bin/env python3
"""
Index Maintenance Script

Offline maintenance for a vector database configured through VECDB_*
environment variables (backend, dimensions, paths):

    manage_index.py stats
    manage_index.py rebuild
    manage_index.py compact [--force]
    manage_index.py export snapshot.bin
    manage_index.py import snapshot.bin
"""

import argparse
import json
import logging
import sys

from vecdb import VectorDatabase, VectorDBConfig, VectorDBError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Maintain a vector database index and its store"
    )
    parser.add_argument(
        "--dimensions",
        type=int,
        default=None,
        help="Vector dimensionality (overrides VECDB_DIMENSIONS)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Print database statistics as JSON")
    subparsers.add_parser("rebuild", help="Rebuild the graph index from the store")

    compact = subparsers.add_parser("compact", help="Drop tombstones and compact the store log")
    compact.add_argument(
        "--force",
        action="store_true",
        help="Compact even below the tombstone threshold"
    )

    export = subparsers.add_parser("export", help="Export all records to a snapshot file")
    export.add_argument("path", help="Snapshot file to write")

    load = subparsers.add_parser("import", help="Load a snapshot file and rebuild the index")
    load.add_argument("path", help="Snapshot file to read")

    return parser


def run(args: argparse.Namespace) -> dict:
    overrides = {"dimensions": args.dimensions} if args.dimensions is not None else {}
    config = VectorDBConfig.from_env(**overrides)

    with VectorDatabase(config) as database:
        if args.command == "stats":
            return database.get_statistics()
        if args.command == "rebuild":
            return database.rebuild_index()
        if args.command == "compact":
            return database.compact(force=args.force)
        if args.command == "export":
            return {"path": args.path, "records": database.export_snapshot(args.path)}
        return database.import_snapshot(args.path)


def main():
    """Maintenance script entry point."""
    args = build_parser().parse_args()

    try:
        result = run(args)
        print(json.dumps(result, indent=2, default=str))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except VectorDBError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(json.dumps(e.to_dict(), indent=2, default=str))
        sys.exit(1)


if __name__ == "__main__":
    main()
