"""CLI entry point for the AI tools daily collector."""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, time

import httpx

from src.core.config import Settings
from src.core.db import (
    count_active_subscriptions,
    count_published_tools,
    count_tools_since,
    deactivate_subscription_by_endpoint,
    get_recent_runs,
    init_db,
    list_tools,
    upsert_subscription,
)
from src.core.schemas import (
    SOURCE_NAMES,
    VALID_CATEGORY_SLUGS,
    VALID_PRICING_TYPES,
    NotificationOverride,
)
from src.pipeline.digest import build_daily_digest
from src.pipeline.orchestrator import CollectionResult, run_collection
from src.pipeline.persistence import add_manual_tool
from src.push.dispatcher import send_daily_push


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def _add_override_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--title", help="Custom notification title")
    parser.add_argument("--body", help="Custom notification body")
    parser.add_argument("--url", help="URL opened when the notification is clicked")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="AI tools daily - collect, classify, and announce new AI tools",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- collect subcommand (default) ---
    collect_parser = subparsers.add_parser("collect", help="Run a full collection")
    _add_common_args(collect_parser)
    collect_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Collect and classify, but write nothing and send nothing",
    )
    collect_parser.add_argument(
        "--no-push",
        action="store_true",
        help="Skip the push notification after saving",
    )
    _add_override_args(collect_parser)

    # --- push subcommand ---
    push_parser = subparsers.add_parser("push", help="Send today's notification only")
    _add_common_args(push_parser)
    _add_override_args(push_parser)

    # --- digest subcommand ---
    digest_parser = subparsers.add_parser("digest", help="Rebuild today's digest")
    _add_common_args(digest_parser)

    # --- status subcommand ---
    status_parser = subparsers.add_parser("status", help="Show totals and recent runs")
    _add_common_args(status_parser)

    # --- subscribe / unsubscribe subcommands ---
    subscribe_parser = subparsers.add_parser("subscribe", help="Register a push subscription")
    _add_common_args(subscribe_parser)
    subscribe_parser.add_argument("--endpoint", required=True, help="Push service endpoint URL")
    subscribe_parser.add_argument("--p256dh", required=True, help="Subscriber public key")
    subscribe_parser.add_argument("--auth", required=True, help="Subscriber auth secret")

    unsubscribe_parser = subparsers.add_parser(
        "unsubscribe", help="Deactivate a push subscription",
    )
    _add_common_args(unsubscribe_parser)
    unsubscribe_parser.add_argument("--endpoint", required=True, help="Push service endpoint URL")

    # --- manual tool registration and listing ---
    add_parser = subparsers.add_parser("add-tool", help="Register a tool by hand")
    _add_common_args(add_parser)
    add_parser.add_argument("--name", required=True, help="Tool name")
    add_parser.add_argument("--url", required=True, help="Tool homepage URL")
    add_parser.add_argument("--summary", help="One-line summary (default: generic text)")
    add_parser.add_argument("--description", help="Longer description")
    add_parser.add_argument("--category", choices=VALID_CATEGORY_SLUGS, help="Category slug")
    add_parser.add_argument("--pricing", choices=VALID_PRICING_TYPES, help="Pricing type")
    add_parser.add_argument("--pricing-detail", help="Free-text pricing detail")
    add_parser.add_argument("--tag", action="append", dest="tags", help="Tag (repeatable)")
    add_parser.add_argument("--score", type=float, help="Score, clamped to 1-5 (default 3)")
    add_parser.add_argument("--logo-url", help="Logo image URL")

    tools_parser = subparsers.add_parser("tools", help="List recently added tools")
    _add_common_args(tools_parser)
    tools_parser.add_argument("--limit", type=int, default=20, help="Max rows, up to 100")
    tools_parser.add_argument("--source", choices=SOURCE_NAMES, help="Only tools from this source")

    # --- backward compat: top-level flags for collect ---
    parser.add_argument("--config", default="config/settings.yaml", help=argparse.SUPPRESS)
    parser.add_argument("--dry-run", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--no-push", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--verbose", "-v", action="store_true", help=argparse.SUPPRESS)

    args = parser.parse_args(argv)

    # Default to collect when no subcommand given
    if args.command is None:
        args.command = "collect"

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _override_from_args(args: argparse.Namespace) -> NotificationOverride | None:
    override = NotificationOverride(
        title=getattr(args, "title", None),
        body=getattr(args, "body", None),
        url=getattr(args, "url", None),
    )
    return None if override.is_empty() else override


def _http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.sources.timeout_seconds, follow_redirects=True)


def print_result(result: CollectionResult) -> None:
    print(f"\nRun {result.run_id} {result.status}: {result.tools_found} found, "
          f"{result.duplicates} duplicates, {result.tools_saved} saved "
          f"({result.duration_ms} ms).")
    for source, count in result.source_stats.items():
        print(f"  {source}: {count}")
    if result.fatal:
        print(f"  Fatal: {result.fatal}")
    for key, error in result.errors.items():
        print(f"  Error [{key}]: {error}")
    if result.push_summary is not None:
        s = result.push_summary
        print(f"  Push: {s.sent} sent, {s.failed} failed, {s.expired} expired of {s.total}")


async def run(settings: Settings, args: argparse.Namespace) -> CollectionResult:
    """Run the full collection pipeline."""
    conn = init_db(settings.database.path)
    try:
        async with _http_client(settings) as client:
            result = await run_collection(
                settings,
                conn,
                client,
                dry_run=args.dry_run,
                push=not args.no_push,
                override=_override_from_args(args),
            )
    finally:
        conn.close()

    print_result(result)
    if args.dry_run:
        for item in result.enriched:
            print(f"  [DRY RUN] {item.candidate.name} ({item.category_slug}, {item.score}): "
                  f"{item.summary}")
    return result


async def cmd_push(settings: Settings, args: argparse.Namespace) -> None:
    """Handle push subcommand."""
    conn = init_db(settings.database.path)
    try:
        async with _http_client(settings) as client:
            summary = await send_daily_push(conn, client, settings.push, _override_from_args(args))
    finally:
        conn.close()

    if summary is None:
        print("Nothing sent (push disabled, keys missing, or no tools today).")
    else:
        print(f"Push: {summary.sent} sent, {summary.failed} failed, "
              f"{summary.expired} expired of {summary.total}")


def cmd_digest(settings: Settings) -> None:
    """Handle digest subcommand."""
    conn = init_db(settings.database.path)
    try:
        digest = build_daily_digest(conn, settings.digest)
    finally:
        conn.close()

    if digest is None:
        print("No tools published today, digest not built.")
    else:
        print(f"Digest {digest.digest_date}: {digest.title}")
        print(f"  {digest.summary}")
        print(f"  Featured tool id: {digest.featured_tool_id}, {digest.tool_count} tools")


def cmd_status(settings: Settings) -> None:
    """Handle status subcommand."""
    conn = init_db(settings.database.path)
    try:
        total = count_published_tools(conn)
        today = count_tools_since(conn, datetime.combine(datetime.now().date(), time.min))
        subscriptions = count_active_subscriptions(conn)
        runs = get_recent_runs(conn)
    finally:
        conn.close()

    print(f"Published tools: {total}")
    print(f"Collected today: {today}")
    print(f"Active push subscriptions: {subscriptions}")
    print("Recent runs:")
    for r in runs:
        print(f"  #{r.id} {r.source} {r.status} found={r.tools_found} "
              f"saved={r.tools_saved} started={r.started_at:%Y-%m-%d %H:%M}")


def cmd_subscribe(settings: Settings, args: argparse.Namespace) -> None:
    conn = init_db(settings.database.path)
    try:
        upsert_subscription(conn, args.endpoint, args.p256dh, args.auth)
    finally:
        conn.close()
    print("Subscription saved.")


def cmd_unsubscribe(settings: Settings, args: argparse.Namespace) -> None:
    conn = init_db(settings.database.path)
    try:
        found = deactivate_subscription_by_endpoint(conn, args.endpoint)
    finally:
        conn.close()
    print("Subscription deactivated." if found else "No subscription with that endpoint.")


def cmd_add_tool(settings: Settings, args: argparse.Namespace) -> None:
    """Handle add-tool subcommand."""
    conn = init_db(settings.database.path)
    try:
        tool_id = add_manual_tool(
            conn,
            settings.persistence,
            name=args.name,
            url=args.url,
            summary=args.summary,
            description=args.description,
            category=args.category,
            tags=args.tags,
            pricing=args.pricing,
            pricing_detail=args.pricing_detail,
            score=args.score,
            logo_url=args.logo_url,
        )
    finally:
        conn.close()
    print(f"Tool added (id {tool_id}).")


def cmd_tools(settings: Settings, args: argparse.Namespace) -> None:
    """Handle tools subcommand."""
    conn = init_db(settings.database.path)
    try:
        rows = list_tools(conn, args.limit, args.source)
    finally:
        conn.close()

    print(f"{len(rows)} tools:")
    for r in rows:
        flag = "" if r["is_published"] else " (unpublished)"
        print(f"  #{r['id']} [{r['source']}] {r['name']} {r['score']:.1f} "
              f"{r['url']} {r['created_at'][:16]}{flag}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "push":
        try:
            asyncio.run(cmd_push(settings, args))
        except ValueError as e:
            # Malformed VAPID key material.
            print(f"Error sending push: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "digest":
        cmd_digest(settings)
    elif args.command == "status":
        cmd_status(settings)
    elif args.command == "subscribe":
        cmd_subscribe(settings, args)
    elif args.command == "unsubscribe":
        cmd_unsubscribe(settings, args)
    elif args.command == "add-tool":
        try:
            cmd_add_tool(settings, args)
        except ValueError as e:
            print(f"Error adding tool: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "tools":
        cmd_tools(settings, args)
    else:
        # collect (default)
        result = asyncio.run(run(settings, args))
        if result.status == "failed":
            sys.exit(1)


if __name__ == "__main__":
    main()
