"""Command-line interface for the invoice dashboard."""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from invoice_dashboard.config import Settings, load_settings

logger = logging.getLogger("invoice_dashboard.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Invoice dashboard utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: $DASHBOARD_CONFIG or config/dashboard.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP dashboard")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the dashboard")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the dashboard (default: 8000)",
    )

    subparsers.add_parser("check", help="Validate settings and print the dashboard summary cards")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "check"}

    config_args: list[str] = []
    if len(args_list) >= 2 and args_list[0] == "--config":
        config_args, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(config_args + args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(config_args + args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(config_args + args_list)


def _load_settings(config: str | None) -> Settings:
    config_path = Path(config).expanduser() if config else None
    return load_settings(config_path)


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from invoice_dashboard.application import create_app
    import uvicorn

    logger.info("Starting invoice dashboard on http://%s:%s", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level="info")


async def _collect_cards(settings: Settings):
    from invoice_dashboard.data import fetch_card_data
    from invoice_dashboard.postgrest import RemoteStore

    async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
        store = RemoteStore(settings.rest_url, settings.supabase_anon_key, client)
        return await fetch_card_data(store)


def _check(settings: Settings) -> None:
    print(f"Remote store: {settings.rest_url}")
    cards = asyncio.run(_collect_cards(settings))
    print(f"Invoices:  {cards.number_of_invoices}")
    print(f"Customers: {cards.number_of_customers}")
    print(f"Collected: {cards.total_paid_invoices}")
    print(f"Pending:   {cards.total_pending_invoices}")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    try:
        settings = _load_settings(args.config)
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
    elif args.command == "check":
        _check(settings)


if __name__ == "__main__":
    main()
