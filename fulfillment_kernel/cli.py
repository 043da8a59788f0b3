"""
Command-line access to a fulfillment kernel database.

Every command prints one JSON document on stdout.  Kernel errors are
printed as ``{"error": <code>, "message": ...}`` on stderr with exit
status 2.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Sequence
from uuid import UUID

from fulfillment_kernel.config import load_config
from fulfillment_kernel.domain.dtos import FieldViolation, thaw
from fulfillment_kernel.exceptions import FulfillmentKernelError, ValidationError
from fulfillment_kernel.logging_config import configure_logging
from fulfillment_kernel.services.fulfillment_service import FulfillmentService


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out = {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
        if hasattr(value, "is_delivered"):
            out["is_delivered"] = value.is_delivered
        return out
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "items"):
        return {k: _jsonable(v) for k, v in thaw(value).items()}
    return value


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a UUID: {value!r}") from None


def _json_payload(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError(
            None, (FieldViolation("INVALID_JSON", "--payload is not valid JSON", "payload"),)
        ) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fulfillment",
        description="Manage auto-delivery pools and claim items for orders",
    )
    parser.add_argument("--config", type=Path, help="YAML file overriding the packaged defaults")
    parser.add_argument("--database-url", help="Overrides database_url from config/environment")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables (and PostgreSQL triggers)")

    add = sub.add_parser("add", help="Add one pool item")
    add.add_argument("--product", type=_uuid, required=True)
    add.add_argument("--seller", type=_uuid, required=True)
    add.add_argument("--type", required=True, dest="item_type")
    add.add_argument("--payload", required=True, help="JSON object")
    add.add_argument("--label")

    imp = sub.add_parser("import", help="Bulk import pool items, one per line")
    imp.add_argument("--product", type=_uuid, required=True)
    imp.add_argument("--seller", type=_uuid, required=True)
    imp.add_argument("--type", required=True, dest="item_type")
    imp.add_argument("--file", required=True, help="Path, or '-' for stdin")

    stock = sub.add_parser("stock", help="Stock level of a pool, or a seller's low-stock pools")
    target = stock.add_mutually_exclusive_group(required=True)
    target.add_argument("--product", type=_uuid)
    target.add_argument("--seller", type=_uuid)
    stock.add_argument("--type", dest="item_type")

    claim = sub.add_parser("claim", help="Claim an item for a paid order")
    claim.add_argument("--order", type=_uuid, required=True)
    claim.add_argument("--buyer", type=_uuid, required=True)
    claim.add_argument("--product", type=_uuid, required=True)
    claim.add_argument("--type", dest="item_type", help="Defaults to the product's delivery mode")

    reveal = sub.add_parser("reveal", help="Reveal a delivered item")
    reveal.add_argument("--delivered-id", type=_uuid, required=True)

    return parser


def _run(service: FulfillmentService, args: argparse.Namespace) -> Any:
    if args.command == "init-db":
        service.create_schema()
        return {"status": "ok"}
    if args.command == "add":
        return service.add_item(
            args.product, args.seller, args.item_type, _json_payload(args.payload), label=args.label
        )
    if args.command == "import":
        if args.file == "-":
            raw_text = sys.stdin.read()
        else:
            raw_text = Path(args.file).read_text(encoding="utf-8")
        return service.bulk_import(args.product, args.seller, args.item_type, raw_text)
    if args.command == "stock":
        if args.seller is not None:
            return service.low_stock_products(args.seller)
        if not args.item_type:
            raise SystemExit("stock --product requires --type")
        return service.get_stock(args.product, args.item_type)
    if args.command == "claim":
        return service.claim(args.order, args.buyer, args.product, args.item_type)
    if args.command == "reveal":
        return service.reveal(args.delivered_id)
    raise SystemExit(f"unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.database_url:
        config = dataclasses.replace(config, database_url=args.database_url)
    configure_logging(level=config.log_level)

    service = FulfillmentService.from_config(config)
    try:
        result = _run(service, args)
    except FulfillmentKernelError as exc:
        print(
            json.dumps({"error": exc.code, "message": str(exc)}),
            file=sys.stderr,
        )
        return 2
    finally:
        service.dispose()

    print(json.dumps(_jsonable(result), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
