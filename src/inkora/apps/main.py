from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from typing import Any

from inkora.config.config import CoreSettings
from inkora.core.context import AcquisitionContext
from inkora.core.extension_catalog import filter_sources, group_sources_by_name
from inkora.utils.errors import SourceError
from inkora.utils.logger import logger


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def _print_json(value: Any) -> None:
    print(json.dumps(_to_jsonable(value), ensure_ascii=False, indent=2))


def parse_cli_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="inkora",
        description="Query manga sources through the inkora acquisition core. Output is JSON.",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Keep caches in memory only for this run.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sources = commands.add_parser("sources", help="List registered sources.")
    sources.add_argument("--lang", help="Only sources for this language (or 'all').")

    search = commands.add_parser("search", help="Search a source.")
    search.add_argument("source_id")
    search.add_argument("query")
    search.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra filter parameter; repeat the same key for multi-valued filters.",
    )

    for name, text in (("popular", "Popular titles."), ("latest", "Latest updates.")):
        listing = commands.add_parser(name, help=text)
        listing.add_argument("source_id")

    for name, text in (("details", "Title details."), ("chapters", "Chapter list.")):
        item = commands.add_parser(name, help=text)
        item.add_argument("source_id")
        item.add_argument("item_id")

    pages = commands.add_parser("pages", help="Page image URLs of a chapter.")
    pages.add_argument("source_id")
    pages.add_argument("chapter_id")

    catalog = commands.add_parser("catalog", help="Sources published by the extension repositories.")
    catalog.add_argument("--lang", help="Language filter.")
    catalog.add_argument("--query", help="Match against name or base URL.")
    catalog.add_argument("--hide-nsfw", action="store_true")
    catalog.add_argument("--group", action="store_true", help="Group language variants by name.")
    catalog.add_argument("--refresh", action="store_true", help="Ignore the cached catalog.")

    commands.add_parser("clear-cache", help="Drop every cache tier.")
    return parser.parse_args(argv)


def _parse_filters(raw: Sequence[str]) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise SystemExit(f"Invalid filter {item!r}; expected KEY=VALUE")
        if key in filters:
            existing = filters[key]
            filters[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            filters[key] = value
    return filters


async def run(args: argparse.Namespace, context: AcquisitionContext) -> Any:
    command = args.command
    if command == "sources":
        registry = context.registry
        return registry.list_by_language(args.lang) if args.lang else registry.online_sources()
    if command == "search":
        return await context.search(args.source_id, args.query, _parse_filters(args.filter) or None)
    if command == "popular":
        return await context.popular(args.source_id)
    if command == "latest":
        return await context.latest(args.source_id)
    if command == "details":
        return await context.details(args.source_id, args.item_id)
    if command == "chapters":
        return await context.chapters(args.source_id, args.item_id)
    if command == "pages":
        return await context.pages(args.source_id, args.chapter_id)
    if command == "catalog":
        descriptors = await context.catalog.fetch_sources(refresh=args.refresh)
        descriptors = filter_sources(
            descriptors, language=args.lang, hide_nsfw=args.hide_nsfw, query=args.query
        )
        if args.group:
            return [
                {
                    "name": group.name,
                    "base_url": group.base_url,
                    "languages": group.languages,
                    "nsfw": group.nsfw,
                    "sources": group.sources,
                }
                for group in group_sources_by_name(descriptors)
            ]
        return descriptors
    if command == "clear-cache":
        context.cache.clear_all()
        return {"cleared": True, "size_bytes": context.cache.size_bytes()}
    raise SystemExit(f"Unknown command: {command}")


async def main_async(argv: Sequence[str] | None = None) -> int:
    args = parse_cli_args(argv)
    settings = CoreSettings.from_env()
    if args.no_cache:
        settings.persist_cache = False
    async with AcquisitionContext(settings) as context:
        try:
            result = await run(args, context)
        except SourceError as exc:
            logger.error(f"[CLI] {args.command} failed: {exc}")
            _print_json({"error": type(exc).__name__, "message": str(exc)})
            return 1
    _print_json(result)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    return asyncio.run(main_async(argv))


if __name__ == "__main__":
    sys.exit(main())
