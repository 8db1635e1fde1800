#!/usr/bin/env python3
"""Command line interface for the n8n monitor.

Usage:
    python -m n8n_monitor.cli add --host https://n8n.example.com --api-key KEY
    python -m n8n_monitor.cli list
    python -m n8n_monitor.cli tick
    python -m n8n_monitor.cli check <instance-id>
    python -m n8n_monitor.cli export <instance-id> --out ./exports
    python -m n8n_monitor.cli rotate-key --old-key OLD --new-key NEW
    python -m n8n_monitor.cli serve --port 8090

All commands except ``serve`` open the database given by ``--db`` (default:
DATABASE_PATH or ./data/monitor.db) directly, so they also work while the
server is stopped.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from n8n_monitor.connectors import ConnectorError, N8nClient
from n8n_monitor.db import close_database, init_database, monitor_store
from n8n_monitor.db.secrets import SecretsError
from n8n_monitor.models import InstanceCreate, ReconciliationResult
from n8n_monitor.services.reconciler import InstanceReconciler
from n8n_monitor.services.scheduler import ReconciliationScheduler


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{color}{text}{Colors.RESET}"


def out(text: str = "") -> None:
    """Print with immediate flush for non-TTY environments."""
    print(text, flush=True)


def print_result(result: ReconciliationResult) -> None:
    if result.success:
        out(colorize(f"✓ {result.instance_id}", Colors.GREEN))
        out(
            colorize(
                f"  {result.workflows_seen} workflows, {result.workflows_changed} changed, "
                f"{result.webhooks_written} webhooks written",
                Colors.DIM,
            )
        )
        if result.webhook_failures:
            out(colorize(f"  {result.webhook_failures} webhook(s) failed to save", Colors.YELLOW))
    else:
        out(colorize(f"✗ {result.instance_id}: {result.error}", Colors.RED))
        if result.retriable:
            out(colorize("  transient failure, safe to retry", Colors.DIM))


async def cmd_add(args: argparse.Namespace) -> int:
    instance = await monitor_store.create_instance(
        InstanceCreate(
            host=args.host,
            api_key=args.api_key,
            ignore_ssl_errors=args.ignore_ssl_errors,
            check_interval_mins=args.interval,
        )
    )
    out(colorize(f"Registered {instance.host} as {instance.id}", Colors.GREEN))
    return 0


async def cmd_list(args: argparse.Namespace) -> int:
    for instance in await monitor_store.list_instances():
        status = (
            colorize("up", Colors.GREEN)
            if instance.availability_status
            else colorize("down", Colors.RED)
        )
        last_check = instance.last_check.isoformat() if instance.last_check else "never"
        out(f"{instance.id}  {instance.host}  {status}  last check: {last_check}")
        if instance.availability_note:
            out(colorize(f"    {instance.availability_note}", Colors.DIM))
    return 0


async def cmd_tick(args: argparse.Namespace) -> int:
    reconciler = InstanceReconciler(monitor_store, N8nClient())
    scheduler = ReconciliationScheduler(monitor_store, reconciler)
    results = await scheduler.tick()
    if not results:
        out(colorize("No instances due", Colors.DIM))
    for result in results:
        print_result(result)
    return 0 if all(r.success for r in results) else 1


async def cmd_check(args: argparse.Namespace) -> int:
    instance = await monitor_store.get_instance(args.instance_id)
    if not instance:
        out(colorize(f"Error: Instance not found: {args.instance_id}", Colors.RED))
        return 1

    result = await InstanceReconciler(monitor_store, N8nClient()).reconcile(instance)
    print_result(result)
    if result.stats:
        out(json.dumps(result.stats.model_dump(), indent=2))
    return 0 if result.success else 1


async def cmd_export(args: argparse.Namespace) -> int:
    instance = await monitor_store.get_instance(args.instance_id)
    if not instance:
        out(colorize(f"Error: Instance not found: {args.instance_id}", Colors.RED))
        return 1

    try:
        files = await N8nClient().download_workflows(instance)
    except ConnectorError as e:
        out(colorize(f"Export failed: {e}", Colors.RED))
        return 1

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in files.items():
        (out_dir / filename).write_text(content, encoding="utf-8")

    out(colorize(f"Exported {len(files)} workflow(s) to {out_dir}", Colors.GREEN))
    return 0


async def cmd_rotate_key(args: argparse.Namespace) -> int:
    try:
        count = await monitor_store.rotate_api_keys(args.old_key, args.new_key)
    except SecretsError as e:
        out(colorize(f"Rotation aborted, nothing written: {e}", Colors.RED))
        return 1

    out(colorize(f"Re-encrypted {count} API key(s)", Colors.GREEN))
    out(colorize("  Set SECRETS_KEY to the new key before restarting the server", Colors.DIM))
    return 0


COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "tick": cmd_tick,
    "check": cmd_check,
    "export": cmd_export,
    "rotate-key": cmd_rotate_key,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monitor remote n8n instances",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db",
        default=os.getenv("DATABASE_PATH", "./data/monitor.db"),
        help="SQLite database path (default: DATABASE_PATH or ./data/monitor.db)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Register an instance")
    add.add_argument("--host", required=True, help="Base URL of the n8n instance")
    add.add_argument("--api-key", required=True, help="n8n public API key")
    add.add_argument("--interval", type=int, default=5, help="Check interval in minutes (default: 5)")
    add.add_argument("--ignore-ssl-errors", action="store_true", help="Skip TLS verification")

    sub.add_parser("list", help="List instances and their availability")
    sub.add_parser("tick", help="Run one scheduler tick over all due instances")

    check = sub.add_parser("check", help="Reconcile one instance now")
    check.add_argument("instance_id")

    export = sub.add_parser("export", help="Download every workflow of an instance as JSON files")
    export.add_argument("instance_id")
    export.add_argument("--out", "-o", default=".", help="Output directory (default: .)")

    rotate = sub.add_parser("rotate-key", help="Re-encrypt stored API keys under a new SECRETS_KEY")
    rotate.add_argument("--old-key", required=True, help="Current SECRETS_KEY value")
    rotate.add_argument("--new-key", required=True, help="Replacement SECRETS_KEY value")

    serve = sub.add_parser("serve", help="Run the API server and scheduler")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "8090")))

    return parser


async def run(args: argparse.Namespace) -> int:
    await init_database(args.db)
    try:
        return await COMMANDS[args.command](args)
    finally:
        await close_database()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )

    if args.command == "serve":
        import uvicorn

        os.environ["DATABASE_PATH"] = args.db
        uvicorn.run("n8n_monitor.main:app", host=args.host, port=args.port)
        return 0

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        out(colorize("\nCancelled by user", Colors.YELLOW))
        return 130


if __name__ == "__main__":
    sys.exit(main())
