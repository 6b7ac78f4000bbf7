#!/usr/bin/env python3
"""Rendezvous relay - lets agents and controllers find each other."""

import argparse
import logging
import os
import sys
import time

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import config
from relay import RelayDispatcher, RelayRouter, RelayServer, SessionRegistry, make_policy
from utils.logger import setup_logger, log_exception
from utils.validation import validate_port
from web.app import create_app, StatusServer

logger = logging.getLogger("main")


def print_banner(console: Console, relay: RelayServer, status: StatusServer = None) -> None:
    """Print the startup summary."""
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    scheme = "wss" if relay.cert_file and relay.key_file else "ws"
    table.add_row("Relay", f"{scheme}://{relay.host}:{relay.port}")
    table.add_row("Mode", relay.registry.mode.value)
    if relay.registry.codes is not None:
        table.add_row("Code lifetime", f"{int(relay.registry.codes.ttl)}s")
    table.add_row("Status API", f"http://{status.host}:{status.port}" if status else "[dim]disabled[/dim]")

    console.print(Panel(table, title="[bold]RENDEZVOUS RELAY[/bold]", expand=False))


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Rendezvous relay between remote agents and controllers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                         # Code pairing on port 3000 (or $PORT)
  python main.py --mode broadcast        # Every agent visible to every controller
  python main.py -p 9000 --status-port 9001
  python main.py --cert cert.pem --key key.pem
        """,
    )

    parser.add_argument(
        "--host",
        default=config.RELAY_SERVER_HOST,
        help=f"Listen address (default: {config.RELAY_SERVER_HOST})",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=config.RELAY_SERVER_PORT,
        help=f"WebSocket port (default: {config.RELAY_SERVER_PORT})",
    )
    parser.add_argument(
        "-m", "--mode",
        choices=["code", "broadcast"],
        default=config.RELAY_PAIRING_MODE,
        help="Association mode: pairing codes or auto-discovery (default: %(default)s)",
    )
    parser.add_argument(
        "--status-port",
        type=int,
        default=config.STATUS_SERVER_PORT,
        help=f"HTTP status port (default: {config.STATUS_SERVER_PORT})",
    )
    parser.add_argument(
        "--no-status",
        action="store_true",
        help="Do not start the HTTP status server",
    )
    parser.add_argument("--cert", default=config.RELAY_SERVER_CERT_FILE, help="TLS certificate file")
    parser.add_argument("--key", default=config.RELAY_SERVER_KEY_FILE, help="TLS private key file")
    parser.add_argument(
        "--nack",
        action="store_true",
        default=config.RELAY_NACK_UNROUTABLE,
        help="Tell senders when a routed message has no live destination",
    )
    parser.add_argument("--log-file", default=config.LOG_FILE, help="Write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    console = Console()

    for name, port in (("--port", args.port), ("--status-port", args.status_port)):
        valid, err = validate_port(port)
        if not valid:
            console.print(f"[bold red]Error:[/bold red] {name}: {err}")
            return 1

    setup_logger(logging.DEBUG if args.verbose else config.LOG_LEVEL, args.log_file)

    registry = SessionRegistry(make_policy(args.mode))
    dispatcher = RelayDispatcher(registry, router=RelayRouter(registry, nack_unroutable=args.nack))
    relay = RelayServer(
        dispatcher,
        host=args.host,
        port=args.port,
        cert_file=args.cert,
        key_file=args.key,
    )

    status = None
    try:
        relay.start()

        if not args.no_status:
            status = StatusServer(create_app(registry, relay), config.STATUS_SERVER_HOST, args.status_port)
            status.start()

        print_banner(console, relay, status)
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

        while True:
            time.sleep(1)

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except Exception as e:
        log_exception("Relay failed")
        console.print(f"[bold red]Error:[/bold red] {e}", style="red")
        return 1
    finally:
        if status:
            status.stop()
        relay.stop()

    console.print("[green]Relay stopped.[/green]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
