"""CLI entry point for receiptpal."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

from .aggregation import analytics_report, filter_by_date_range
from .config import load_config
from .errors import ReceiptPalError
from .models import AnalysisStatus
from .services import Services, build_services


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="receiptpal",
        description="Grocery receipt tracker: AI receipt extraction, pantry, shopping list and recipes",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the config file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--user", "-u", type=str, default="local", help="User ID to act as"
    )

    sub = parser.add_subparsers(dest="command")

    # serve
    serve_parser = sub.add_parser("serve", help="Run the HTTP API server")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    # upload
    upload_parser = sub.add_parser("upload", help="Upload and analyze receipt images")
    upload_parser.add_argument("images", nargs="+", help="Receipt image files")
    upload_parser.add_argument(
        "--no-analyze", action="store_true", help="Store only; analyze later"
    )

    # analyze
    sub.add_parser("analyze", help="Analyze every pending receipt")

    # retry
    retry_parser = sub.add_parser("retry", help="Re-run analysis for a receipt")
    retry_parser.add_argument("receipt_id", type=int)

    # receipts
    receipts_parser = sub.add_parser("receipts", help="List receipts")
    receipts_parser.add_argument("--store", type=str, default=None)
    receipts_parser.add_argument(
        "--sort",
        type=str,
        default="date-desc",
        choices=["date-desc", "date-asc", "amount-desc", "amount-asc", "store-asc"],
    )
    receipts_parser.add_argument("--json", action="store_true", help="Output JSON")

    # stats
    stats_parser = sub.add_parser("stats", help="Spending analytics")
    stats_parser.add_argument(
        "--range",
        type=str,
        default="all",
        choices=["all", "today", "7days", "30days", "90days"],
    )
    stats_parser.add_argument("--json", action="store_true", help="Output JSON")

    # categorize
    categorize_parser = sub.add_parser("categorize", help="Categorize item names")
    categorize_parser.add_argument("names", nargs="+")

    # recipes
    recipes_parser = sub.add_parser("recipes", help="Suggest recipes")
    recipes_parser.add_argument(
        "--ingredient", "-i", action="append", default=None,
        help="Ingredient to use (repeatable); defaults to everything known",
    )
    recipes_parser.add_argument("--strict", action="store_true", help="No partial matches")
    recipes_parser.add_argument("--json", action="store_true", help="Output JSON")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # API keys may come from a .env file in the working directory
    load_dotenv()
    config = load_config(args.config)

    if args.command == "serve":
        _cmd_serve(config, args)
        return

    services = build_services(config)
    services.users.ensure_user(args.user)
    try:
        match args.command:
            case "upload":
                asyncio.run(_cmd_upload(services, args))
            case "analyze":
                asyncio.run(_cmd_analyze(services))
            case "retry":
                asyncio.run(_cmd_retry(services, args))
            case "receipts":
                _cmd_receipts(services, args)
            case "stats":
                _cmd_stats(services, args)
            case "categorize":
                asyncio.run(_cmd_categorize(services, args))
            case "recipes":
                asyncio.run(_cmd_recipes(services, args))
    except ReceiptPalError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        services.close()


def _cmd_serve(config, args) -> None:
    import uvicorn

    from .web import create_app

    uvicorn.run(
        create_app(config),
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


async def _cmd_upload(services: Services, args) -> None:
    for image in args.images:
        path = Path(image)
        receipt = await services.receipts.create_receipt(
            args.user,
            path.name,
            path.read_bytes(),
            mimetypes.guess_type(path.name)[0],
            analyze=not args.no_analyze,
        )
        print(f"{path.name}: receipt {receipt.id} [{receipt.status.value}]")
        if receipt.metadata.processing_error:
            print(f"  {receipt.metadata.processing_error}", file=sys.stderr)


async def _cmd_analyze(services: Services) -> None:
    results = await services.analyzer.process_pending()
    if not results:
        print("No pending receipts.")
        return
    for receipt_id, status in results.items():
        print(f"receipt {receipt_id}: {status.value}")


async def _cmd_retry(services: Services, args) -> None:
    receipt = await services.receipts.retry_analysis(args.user, args.receipt_id)
    print(f"receipt {receipt.id}: {receipt.status.value}")
    if receipt.metadata.processing_error:
        print(f"  {receipt.metadata.processing_error}", file=sys.stderr)


def _cmd_receipts(services: Services, args) -> None:
    receipts = services.receipts.search_receipts(
        args.user, store_name=args.store, sort_by=args.sort
    )
    if args.json:
        print(json.dumps([r.to_dict() for r in receipts], ensure_ascii=False, indent=2))
        return
    if not receipts:
        print("No receipts found.")
        return
    for r in receipts:
        store = r.store_info.name or "Unknown Store"
        print(
            f"{r.id:>5}  {r.effective_date or '':<10}  {store:<24} "
            f"${r.summary.total:>8.2f}  {len(r.items):>3} items  [{r.status.value}]"
        )


def _cmd_stats(services: Services, args) -> None:
    receipts = [
        r for r in services.receipts.list_for_user(args.user)
        if r.status == AnalysisStatus.COMPLETED
    ]
    receipts = filter_by_date_range(receipts, args.range, date_of=lambda r: r.effective_date)
    report = analytics_report(receipts)
    if args.json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
        return

    summary = report["summary"]
    print(f"Receipts:        {summary['receipt_count']}")
    print(f"Stores:          {summary['store_count']}")
    print(f"Total spending:  ${summary['total_spending']:.2f}")
    print(f"Average receipt: ${summary['average_receipt']:.2f}")
    if report["by_category"]:
        print("\nBy category:")
        for row in report["by_category"]:
            print(f"  {row['name']:<16} ${row['value']:>9.2f}")
    if report["by_store"]:
        print("\nTop stores:")
        for row in report["by_store"]:
            print(f"  {row['name']:<24} ${row['value']:>9.2f}")


async def _cmd_categorize(services: Services, args) -> None:
    for name in args.names:
        category = await services.assistant.categorize_item(name)
        print(f"{name}: {category}")


async def _cmd_recipes(services: Services, args) -> None:
    suggestions = await services.recipes.suggest(
        args.user, args.ingredient, include_partial_matches=not args.strict
    )
    if args.json:
        print(json.dumps([s.to_dict() for s in suggestions], ensure_ascii=False, indent=2))
        return
    if not suggestions:
        print("No recipes suggested.")
        return
    for s in suggestions:
        time = f" ({s.cooking_time} min)" if s.cooking_time else ""
        print(f"\n{s.name}{time}")
        if s.description:
            print(f"  {s.description}")
        if s.matched_ingredients:
            print(f"  have:    {', '.join(s.matched_ingredients)}")
        if s.missing_ingredients:
            print(f"  missing: {', '.join(s.missing_ingredients)}")
