from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from typing import Any, List, Optional, Sequence

from dotenv import load_dotenv
from rich.console import Console
from sqlalchemy import MetaData
from sqlalchemy.exc import SQLAlchemyError

from .client import ApiClientError, load_json_source
from .config import Settings
from .context import ObjectContext
from .logging_utils import set_trace_level, setup_logging
from .mappings.base import MappingError
from .mappings.loader import load_mappings
from .stack import DataStack, StoreError

console = Console()
LOGGER = logging.getLogger("applecore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="applecore",
        description="Upsert JSON (file, stdin or URL) into a SQLAlchemy store.",
    )
    parser.add_argument("models", help="Declarative base as 'package.module:Base'")
    parser.add_argument("entity", help="Name of the mapped class to import into")
    parser.add_argument("source", help="JSON file, '-' for stdin, or an http(s) URL")
    parser.add_argument("--mappings", help="YAML file with mapping declarations")
    parser.add_argument("--database-url", help="Overrides APPLECORE_DATABASE_URL")
    parser.add_argument(
        "--no-update",
        action="store_true",
        help="Leave existing objects untouched instead of updating them",
    )
    parser.add_argument("--order-offset", type=int, default=0)
    return parser


def load_settings() -> Settings:
    """Load settings from the environment, honouring a local .env file."""
    load_dotenv()
    return Settings.from_env()


def resolve_base(target: str) -> Any:
    module_name, _, attribute = target.partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, attribute or "Base")


def resolve_entity(base: Any, name: str) -> type:
    for mapper in base.registry.mappers:
        if mapper.class_.__name__ == name:
            return mapper.class_
    raise LookupError(f"No mapped class named {name}")


def import_payload(context: ObjectContext, entity: type, payload: Any, update_existing: bool, order_offset: int) -> List[Any]:
    manager = context.manager(entity)
    if isinstance(payload, list):
        return manager.insert_set_with_json(
            payload, update_existing=update_existing, order_offset=order_offset
        )
    if update_existing:
        return [manager.insert_or_update_with_json(payload)]
    return [manager.find_or_insert_with_json(payload)]


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        setup_logging(settings.log_level, console=console)
        set_trace_level(settings.trace_level)
        base = resolve_base(args.models)
        metadata: MetaData = base.metadata
        entity = resolve_entity(base, args.entity)
        if args.mappings:
            load_mappings(args.mappings, base)
        url = args.database_url or settings.store_url
    except Exception as exc:  # pragma: no cover - guard for CLI usage
        LOGGER.error("Configuration error: %s", exc)
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    try:
        payload = asyncio.run(load_json_source(args.source, settings.api))
    except ApiClientError as exc:
        LOGGER.exception("API error")
        print(f"API error: {exc}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as exc:
        print(f"Cannot read {args.source}: {exc}", file=sys.stderr)
        return 2

    try:
        stack = DataStack(
            url,
            metadata,
            strict_mapping=settings.strict_mapping,
            connect_timeout=settings.connect_timeout,
            echo=settings.echo_sql,
        )
    except StoreError as exc:
        print(f"Store error: {exc}", file=sys.stderr)
        return 1

    imported: List[Any] = []
    context = stack.new_background_context()
    try:
        context.save_and_wait(
            lambda ctx: imported.extend(
                import_payload(ctx, entity, payload, not args.no_update, args.order_offset)
            )
        )
    except (MappingError, SQLAlchemyError) as exc:
        LOGGER.exception("Import failed")
        print(f"Import failed: {exc}", file=sys.stderr)
        return 3
    finally:
        context.close()
        stack.clean_up()

    console.print(f"[green]Imported {len(imported)} {entity.__name__} object(s)[/green]")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
