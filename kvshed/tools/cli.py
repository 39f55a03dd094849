"""
Command line tool for inspecting a kvshed store.

Commands:
- schema: Export the schema catalogue to JSON
- resolve: Declare (name, kind) and print its id and prefix
- get: Print the value of a declared field
- count: Count the entries of a declared index or vector

Usage:
    shed --data-dir /var/lib/kvshed schema > catalogue.json
    shed resolve peer-metadata struct-json
    shed get peer-metadata
    shed count peers-by-addr

Settings not given on the command line come from SHED_* environment
variables (see kvshed.config).

Invariants:
    - Read commands never create catalogue entries
    - Errors exit with a non-zero code and a message on stderr
    - Catalogue output is deterministic (sorted JSON)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Optional

import json_log_formatter

from ..codec import json_codec
from ..config import ShedSettings
from ..db import ShedDB
from ..errors import NotFoundError, ShedError
from ..schema import FieldKind, encode_prefix

logger = logging.getLogger(__name__)


def setup_logging(settings: ShedSettings) -> None:
    """Configure logging based on settings.

    Args:
        settings: kvshed settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


class ShedCLI:
    """Commands of the shed tool, independent of argument parsing.

    Example:
        >>> cli = ShedCLI()
        >>> print(cli.schema(db))
    """

    def schema(self, db: ShedDB) -> str:
        """Export the catalogue to JSON."""
        output = {
            "fingerprint": db.registry.fingerprint,
            "next_id": db.registry.next_id,
            "catalogue": db.registry.to_dict(),
        }
        return json.dumps(output, indent=2, sort_keys=True)

    def resolve(self, db: ShedDB, name: str, kind: str) -> dict[str, Any]:
        """Declare (name, kind) and describe its entry."""
        entry = db.registry.resolve_entry(name, kind)
        return {
            "name": entry.name,
            "kind": entry.kind.value,
            "id": entry.id,
            "prefix": encode_prefix(entry.id).hex(),
        }

    def get(self, db: ShedDB, name: str) -> str:
        """Render the value of a declared field.

        Raises:
            NotFoundError: If the field is not declared or has no value
            ValueError: If name refers to an index or vector
        """
        entry = db.registry.entry(name)
        if entry is None:
            raise NotFoundError(f"No schema entry named '{name}'")

        if entry.kind is FieldKind.STRUCT_JSON:
            value = db.struct_field(name, json_codec(sort_keys=True)).get()
            return json.dumps(value, indent=2, sort_keys=True)
        if entry.kind is FieldKind.UINT64:
            return str(db.uint64_field(name).get())
        if entry.kind is FieldKind.STRING:
            return db.string_field(name).get()
        if entry.kind is FieldKind.RAW:
            return db.bytes_field(name).get().hex()
        raise ValueError(f"'{name}' is a {entry.kind.value}; use 'count' instead")

    def count(self, db: ShedDB, name: str) -> int:
        """Number of entries stored under an index or vector prefix.

        Raises:
            NotFoundError: If the name is not declared
            ValueError: If name refers to a single-value field
        """
        entry = db.registry.entry(name)
        if entry is None:
            raise NotFoundError(f"No schema entry named '{name}'")
        if entry.kind not in (FieldKind.INDEX, FieldKind.VECTOR_UINT64):
            raise ValueError(f"'{name}' is a {entry.kind.value}; use 'get' instead")
        return sum(1 for _ in db.store.iterate(encode_prefix(entry.id)))


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the shed tool."""
    parser = argparse.ArgumentParser(prog="shed", description="kvshed store inspection tool")
    parser.add_argument("--data-dir", help="Directory of the store file")
    parser.add_argument("--db-file", help="Store file name inside the data directory")
    parser.add_argument("--log-level", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    schema_parser = subparsers.add_parser("schema", help="Export the schema catalogue")
    schema_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    resolve_parser = subparsers.add_parser("resolve", help="Declare a field or index")
    resolve_parser.add_argument("name")
    resolve_parser.add_argument("kind", choices=[k.value for k in FieldKind])

    get_parser = subparsers.add_parser("get", help="Print a field value")
    get_parser.add_argument("name")

    count_parser = subparsers.add_parser("count", help="Count index or vector entries")
    count_parser.add_argument("name")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for the shed tool."""
    args = build_parser().parse_args(argv)

    overrides = {
        "data_dir": args.data_dir,
        "db_file": args.db_file,
        "log_level": args.log_level,
    }
    settings = ShedSettings(**{k: v for k, v in overrides.items() if v is not None})
    setup_logging(settings)

    cli = ShedCLI()
    try:
        with ShedDB.open(settings) as db:
            if args.command == "schema":
                output = cli.schema(db)
                if args.output:
                    with open(args.output, "w") as f:
                        f.write(output)
                    print(f"Catalogue exported to {args.output}", file=sys.stderr)
                else:
                    print(output)

            elif args.command == "resolve":
                print(json.dumps(cli.resolve(db, args.name, args.kind), sort_keys=True))

            elif args.command == "get":
                print(cli.get(db, args.name))

            elif args.command == "count":
                print(cli.count(db, args.name))

    except (ShedError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
