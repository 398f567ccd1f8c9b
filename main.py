#!/usr/bin/env python3
"""Daily digest: AI-written news, trends and market summaries.

This CLI runs the digest service (HTTP API plus daily scheduler) and exposes
one-shot commands for generating and browsing archived digests.

Commands:
    serve       Run the HTTP API and the daily scheduler
    generate    Run one scheduled-style pass now (or one checkpoint)
    refresh     Run one manual pass for a client (quota applies)
    show        Print the archived digest for a date
    history     List archived digests, newest first
    status      Show configuration and the next scheduled triggers

Examples:
    python main.py serve                       # API + scheduler
    python main.py generate                    # Scheduled pass now
    python main.py generate --checkpoint 23:30 # Checkpoint semantics
    python main.py refresh --lang fr --country FR
    python main.py show --date 2025-01-15
    python main.py history --limit 10

Environment:
    LLM_API_KEY: Required for generation
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime

from agents.prompts import SECTION_HEADERS
from agents.summarizer import SummarizerAgent
from collectors import DataCollector
from config import Config
from generator import SummaryGenerator
from models.summary import Region
from observability.logging import setup_logging
from observability.tracing import setup_tracing
from refresh_gate import RefreshGate
from scheduler import build_scheduler
from store import SummaryStore

logger = logging.getLogger(__name__)


def build_generator(config: Config) -> SummaryGenerator:
    """Wire collectors, completion client, store and quota gate together."""
    return SummaryGenerator(
        config,
        collector=DataCollector(config),
        summarizer=SummarizerAgent(config),
        store=SummaryStore(config.summary_file),
        gate=RefreshGate(config.refresh_marker_file, bypass=config.dev_mode),
    )


def _print_result(result) -> int:
    print(json.dumps({
        "success": result.ok,
        "outcome": result.outcome.value,
        "message": result.message,
        "duration": round(result.duration, 2),
    }, indent=2))
    return 0 if result.ok else 1


async def serve(config: Config) -> None:
    """Run the HTTP API and scheduler until cancelled."""
    from aiohttp import web

    from server import create_app

    generator = build_generator(config)
    await generator.log_startup_state()

    scheduler = build_scheduler(config, generator)
    app = create_app(config, generator, generator.store)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)

    try:
        await site.start()
        scheduler.start()
        for name, fire_at in scheduler.next_runs():
            logger.info("Next trigger | job=%s at=%s", name, fire_at.isoformat())
        logger.info("Digest service ready | url=http://%s:%d", config.host, config.port)
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Shutting down...")
        raise
    finally:
        await scheduler.stop()
        await generator.close()
        await runner.cleanup()


def cmd_serve(args: argparse.Namespace, config: Config) -> int:
    """Run the digest service.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    if args.port:
        config.port = args.port
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
    return 0


def cmd_generate(args: argparse.Namespace, config: Config) -> int:
    """Run one scheduled pass (or one checkpoint) immediately."""
    generator = build_generator(config)

    async def run():
        if args.checkpoint:
            return await generator.run_checkpoint(f"{args.checkpoint} check")
        return await generator.generate_daily(trigger="cli")

    return _print_result(asyncio.run(run()))


def cmd_refresh(args: argparse.Namespace, config: Config) -> int:
    """Run one manual pass for a client."""
    generator = build_generator(config)
    region = Region(args.lang or config.language, (args.country or config.country).upper())
    return _print_result(asyncio.run(generator.refresh(args.client, region)))


def _parse_date_arg(value: str | None, config: Config) -> date:
    if not value:
        return datetime.now(config.tz).date()
    return date.fromisoformat(value)


def cmd_show(args: argparse.Namespace, config: Config) -> int:
    """Print the archived digest for one date and region."""
    try:
        day = _parse_date_arg(args.date, config)
    except ValueError:
        print(f"Error: invalid date '{args.date}', expected YYYY-MM-DD", file=sys.stderr)
        return 1

    language = args.lang or config.language
    country = (args.country or config.country).upper()
    record = asyncio.run(SummaryStore(config.summary_file).load(day, language, country))
    if record is None:
        print(f"No summary found for {day.isoformat()} ({country}, {language}).")
        return 1

    generated = record.generated_at.strftime("%Y-%m-%d %H:%M %Z") if record.generated_at else "unknown"
    print(f"\n=== Daily Summary {day.isoformat()} ({record.region}) ===")
    print(f"Generated: {generated} | automated={record.automated} | market_open={record.market_was_open}\n")
    bodies = (record.news, record.trends, record.market_overview, record.forward_looking)
    for title, body in zip(SECTION_HEADERS, bodies):
        print(f"## {title}\n{body or '(empty)'}\n")
    return 0


def cmd_history(args: argparse.Namespace, config: Config) -> int:
    """List archived digests, newest first."""
    entries = asyncio.run(SummaryStore(config.summary_file).list_all())
    if args.limit:
        entries = entries[:args.limit]
    if not entries:
        print("No archived summaries.")
        return 0

    print(f"\n=== Archived Summaries ({len(entries)}) ===\n")
    for entry in entries:
        generated = entry.generated_at.isoformat(timespec="minutes") if entry.generated_at else "-"
        flags = []
        if entry.automated:
            flags.append("automated")
        if not entry.has_content:
            flags.append("empty")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(f"{entry.date.isoformat()}  {entry.language}-{entry.country}  generated={generated}{suffix}")
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and the next scheduled triggers."""
    generator = build_generator(config)
    scheduler = build_scheduler(config, generator)
    entries = asyncio.run(generator.store.list_all())

    status = {
        "config": {
            "region": f"{config.language}-{config.country}",
            "timezone": config.market_timezone,
            "summary_model": config.summary_model,
            "fallback_models": config.fallback_models,
            "symbols": len(config.finance_symbols),
            "news_configured": bool(config.news_api_key),
            "dev_mode": config.dev_mode,
        },
        "schedule": {name: fire_at.isoformat() for name, fire_at in scheduler.next_runs()},
        "archive": {
            "path": str(config.summary_file),
            "summaries": len(entries),
            "latest": entries[0].date.isoformat() if entries else None,
        },
    }

    print(json.dumps(status, indent=2))
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Daily digest: AI-written news, trends and market summaries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API and scheduler")
    serve_parser.add_argument("--port", type=int, help="Override PORT")

    generate_parser = subparsers.add_parser("generate", help="Run one scheduled pass now")
    generate_parser.add_argument(
        "--checkpoint",
        metavar="HH:MM",
        help="Use checkpoint semantics (skip if a post-cutoff summary exists)",
    )

    refresh_parser = subparsers.add_parser("refresh", help="Run one manual pass")
    refresh_parser.add_argument("--client", default="cli", help="Client id for the daily quota (default: cli)")
    refresh_parser.add_argument("--lang", help="Language code (default: LANGUAGE)")
    refresh_parser.add_argument("--country", help="Country code (default: COUNTRY)")

    show_parser = subparsers.add_parser("show", help="Print an archived summary")
    show_parser.add_argument("--date", help="YYYY-MM-DD (default: today in exchange time)")
    show_parser.add_argument("--lang", help="Language code (default: LANGUAGE)")
    show_parser.add_argument("--country", help="Country code (default: COUNTRY)")

    history_parser = subparsers.add_parser("history", help="List archived summaries")
    history_parser.add_argument("--limit", type=int, default=0, help="Show at most N entries")

    subparsers.add_parser("status", help="Show configuration and schedule")

    args = parser.parse_args()

    config = Config.load()
    setup_logging(config, verbose=args.verbose)
    if config.enable_logfire:
        setup_tracing(enabled=True, token=config.logfire_token)

    # Validate configuration for commands that generate
    if args.command in ("serve", "generate", "refresh"):
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1

    commands = {
        "serve": cmd_serve,
        "generate": cmd_generate,
        "refresh": cmd_refresh,
        "show": cmd_show,
        "history": cmd_history,
        "status": cmd_status,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
