"""CLI entry point for the care home menu generator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import load_config
from .service import MenuInputError, MenuService
from .vision import OCRError


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="carehome-menu",
        description="Turn a care home menu (photo or text) into a printable PDF "
        "with meal photographs",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # serve
    serve_parser = sub.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    # parse
    parse_parser = sub.add_parser("parse", help="Parse a menu text file")
    parse_parser.add_argument("file", type=str, help="Menu text file")
    parse_parser.add_argument("--json", action="store_true", help="Output JSON")

    # validate
    validate_parser = sub.add_parser("validate", help="Parse and validate a menu")
    validate_parser.add_argument("file", type=str, help="Menu text file")
    validate_parser.add_argument("--json", action="store_true", help="Output JSON")

    # generate
    gen_parser = sub.add_parser("generate", help="Generate the menu PDF")
    source = gen_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=str, help="Menu photo to read with OCR")
    source.add_argument("--text", type=str, help="Menu text file")
    gen_parser.add_argument(
        "--date", type=str, default=None, help="Menu date (YYYY-MM-DD)"
    )
    gen_parser.add_argument(
        "--force", action="store_true", help="Generate even if validation fails"
    )

    # cache
    cache_parser = sub.add_parser("cache", help="Manage the meal image cache")
    cache_sub = cache_parser.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("stats", help="Show cache statistics")
    cache_sub.add_parser("list", help="List cached images")
    cache_sub.add_parser("clear", help="Delete every cached image")
    delete_parser = cache_sub.add_parser("delete", help="Delete one cached image")
    delete_parser.add_argument("key", type=str)

    # history
    history_parser = sub.add_parser("history", help="Show recent generations")
    history_parser.add_argument("--limit", type=int, default=10)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    load_dotenv()

    config = load_config(args.config)

    match args.command:
        case "serve":
            _cmd_serve(config, args)
        case "parse":
            _cmd_parse(config, args)
        case "validate":
            _cmd_validate(config, args)
        case "generate":
            asyncio.run(_cmd_generate(config, args))
        case "cache":
            _cmd_cache(config, args)
        case "history":
            _cmd_history(config, args)


def _read_text(path: str) -> str:
    p = Path(path)
    if not p.exists():
        print(f"File not found: {p}", file=sys.stderr)
        sys.exit(1)
    return p.read_text(encoding="utf-8")


def _cmd_serve(config, args) -> None:
    try:
        import uvicorn
    except ImportError:
        print("uvicorn is required: pip install uvicorn", file=sys.stderr)
        sys.exit(1)

    from .api import create_app

    uvicorn.run(
        create_app(config),
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


def _cmd_parse(config, args) -> None:
    service = MenuService(config)
    menu = service.parse(_read_text(args.file))

    if args.json:
        print(json.dumps(menu.to_dict(), ensure_ascii=False, indent=2))
        return

    if menu.header:
        print(menu.header)
        print()
    if not menu.sections:
        print("No menu sections found.")
        return
    for name, section in menu.sections.items():
        print(f"{name} ({len(section.items)} items)")
        for item in section.items:
            marker = "  or" if item.is_option else "   -"
            print(f"{marker} {item.text}")


def _cmd_validate(config, args) -> None:
    service = MenuService(config)
    try:
        result = service.validate_text(_read_text(args.file))
    except MenuInputError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    report = result.report
    if args.json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    else:
        status = "PASSED" if report.valid else "FAILED"
        print(
            f"Validation {status}: {report.section_count} sections, "
            f"{report.total_items} items"
        )
        for error in report.errors:
            print(f"  error:   {error}")
        for warning in report.warnings:
            print(f"  warning: {warning}")

    if not report.valid:
        sys.exit(2)


async def _cmd_generate(config, args) -> None:
    service = MenuService(config)

    try:
        if args.image:
            print("Reading menu photo...")
            result = await service.extract(image_path=args.image)
        else:
            result = service.validate_text(_read_text(args.text))
    except (MenuInputError, OCRError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    report = result.report
    for warning in report.warnings:
        print(f"warning: {warning}")
    if not report.valid:
        for error in report.errors:
            print(f"error: {error}", file=sys.stderr)
        if not args.force:
            print("Menu is incomplete; use --force to generate anyway.", file=sys.stderr)
            sys.exit(2)

    print("Generating meal images and PDF...")
    generation = await service.generate(result.menu, menu_date=args.date)

    for key, image in generation.images.items():
        if image.ok:
            source = "cached" if image.cached else "new"
            print(f"  {key:<12} {source:<7} {image.meal_description}")
        else:
            print(f"  {key:<12} FAILED  {image.error}")
    print(f"PDF saved: {generation.pdf.path} ({generation.generation_time:.1f}s)")


def _cmd_cache(config, args) -> None:
    service = MenuService(config)
    cache = service.cache

    match args.cache_command:
        case "stats":
            print(json.dumps(cache.stats(), ensure_ascii=False, indent=2))
        case "list":
            entries = cache.list_entries()
            if not entries:
                print("The image cache is empty.")
                return
            for e in entries:
                print(
                    f"{e['cache_key']}  x{e['usage_count']:<3} "
                    f"[{e['meal_type']}] {e['meal_description']}"
                )
        case "clear":
            count = cache.clear()
            print(f"Deleted {count} cached images.")
        case "delete":
            result = cache.delete(args.key)
            if not result.found:
                print(f"Cached image not found: {args.key}", file=sys.stderr)
                sys.exit(1)
            print(f"Deleted {args.key}.")


def _cmd_history(config, args) -> None:
    service = MenuService(config)
    history = service.history(args.limit)
    if not history:
        print("No menus generated yet.")
        return
    for entry in history:
        cached = sum(1 for i in entry.get("images", []) if i.get("cached"))
        print(
            f"{entry['timestamp']}  {entry.get('section_count', 0)} sections  "
            f"{entry.get('image_count', 0)} images ({cached} cached)  "
            f"{entry.get('generation_time_ms', 0) / 1000:.1f}s"
        )
