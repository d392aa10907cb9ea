"""
seeddb command-line entry point.

Administrative commands for seeded databases:
- provision: make sure the database exists (seeding it if needed)
- dump: copy the current database file to the export directory
- dump-on-create: build a fresh database from a schema script and export it

Usage:
    seeddb provision --name catalog.db --version 3 --seed db/catalog.db --seed-dir ./assets
    seeddb dump --name catalog.db --version 3 catalog-seed.db
    seeddb dump-on-create --name catalog.db --version 3 --schema schema.sql catalog-seed.db

Defaults for every option come from environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from dataclasses import replace
from pathlib import Path

import json_log_formatter

from .config import HelperConfig
from .engine.sqlite import DatabaseCallbacks, run_script
from .errors import EngineFailureError
from .provision.helper import SeededOpenHelper

logger = logging.getLogger(__name__)


def setup_logging(config: HelperConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: seeddb configuration
        verbose: Force DEBUG level
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def _schema_callbacks(schema_path: Path) -> DatabaseCallbacks:
    script = schema_path.read_text(encoding="utf-8")

    def on_create(conn: sqlite3.Connection) -> None:
        run_script(conn, script)

    return DatabaseCallbacks(on_create=on_create)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seeddb",
        description="Provision and export seeded SQLite databases",
    )
    parser.add_argument("--name", required=True, help="Logical database name")
    parser.add_argument("--version", type=int, default=1, help="Schema version (>= 1)")
    parser.add_argument("--data-dir", help="Directory for live databases")
    parser.add_argument("--export-dir", help="Directory exports are written to")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Ensure the database exists")
    provision.add_argument("--seed", help="Seed resource path")
    provision.add_argument("--seed-dir", help="Directory seed resources are read from")

    dump = subparsers.add_parser("dump", help="Copy the current database file")
    dump.add_argument("output", help="Export file name")

    dump_on_create = subparsers.add_parser(
        "dump-on-create", help="Export a freshly created database"
    )
    dump_on_create.add_argument("output", help="Export file name")
    dump_on_create.add_argument("--schema", required=True, help="SQL script run on create")

    return parser


def _apply_overrides(config: HelperConfig, args: argparse.Namespace) -> HelperConfig:
    if args.data_dir:
        config.storage = replace(config.storage, data_dir=args.data_dir)
    if args.export_dir:
        config.export = replace(config.export, export_dir=args.export_dir)
    if getattr(args, "seed", None):
        config.seed = replace(config.seed, seed_resource=args.seed)
    if getattr(args, "seed_dir", None):
        config.seed = replace(config.seed, seed_dir=args.seed_dir)
    config.validate()
    return config


def run(args: argparse.Namespace, config: HelperConfig) -> int:
    """Execute a parsed command.

    Returns:
        Process exit code
    """
    callbacks = None
    if args.command == "dump-on-create":
        callbacks = _schema_callbacks(Path(args.schema))

    helper = SeededOpenHelper(args.name, args.version, callbacks=callbacks, config=config)

    if args.command == "provision":
        try:
            with helper.connection(writable=True):
                pass
        except EngineFailureError as e:
            print(f"Provision failed: {e}")
            return 1
        print("Provision completed")
        print(f"  Database: {helper.database_path}")
        print(f"  State: {helper.provision_state.value}")
        return 0

    if args.command == "dump":
        ok = helper.dump_database(args.output)
    else:
        ok = helper.dump_database_on_create(args.output)

    if not ok:
        print(f"Export failed: {args.output}")
        return 1

    info = helper.exporter.last_export
    print("Export completed")
    print(f"  Destination: {info.destination}")
    print(f"  Size: {info.size_bytes} bytes")
    print(f"  Checksum: {info.checksum}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _apply_overrides(HelperConfig.from_env(), args)
        if args.command == "dump-on-create":
            schema = Path(args.schema)
            if not schema.is_file():
                raise ValueError(f"Schema file not found: {schema}")
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(2)

    setup_logging(config, verbose=args.verbose)
    config.log_config()

    try:
        code = run(args, config)
    except ValueError as e:
        print(f"Error: {e}")
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
