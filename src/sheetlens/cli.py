"""Command-line interface for SheetLens."""

import argparse
import asyncio
import logging
import sys

import uvicorn

from .config import settings


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="SheetLens - Offline-first typed tables over Google Sheets"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Server command
    server_parser = subparsers.add_parser("serve", help="Start the web server")
    server_parser.add_argument(
        "--host", default=settings.host, help=f"Host to bind to (default: {settings.host})"
    )
    server_parser.add_argument(
        "--port", type=int, default=settings.port, help=f"Port to bind to (default: {settings.port})"
    )
    server_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # Auth command
    subparsers.add_parser("auth", help="Authenticate with Google Sheets and Drive")

    # Queue commands
    subparsers.add_parser("drain", help="Replay pending writes once")
    subparsers.add_parser("pending", help="List writes waiting to be synced")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "auth":
        run_auth()
    elif args.command == "drain":
        asyncio.run(run_drain())
    elif args.command == "pending":
        asyncio.run(run_pending())
    else:
        parser.print_help()
        sys.exit(1)


def run_server(host: str, port: int, reload: bool):
    """Run the web server."""
    uvicorn.run(
        "sheetlens.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


def run_auth():
    """Run the OAuth flow for the Sheets and Drive scopes and store the token."""
    from .sheets import GoogleSheetsClient
    from .sheets.client import SCOPES

    print("Requesting access to Google Sheets and Drive metadata...")
    try:
        credentials = GoogleSheetsClient().credentials
    except Exception as e:
        print(f"Authentication failed: {e}")
        sys.exit(1)

    granted = credentials.scopes or SCOPES
    print(f"Token saved to {settings.google_token_path} ({len(granted)} scope(s) granted).")


async def run_drain():
    """Replay every pending write once and report what happened."""
    from .sheets import GoogleSheetsClient
    from .storage import LocalStore
    from .sync import MutationQueue

    store = LocalStore()
    await store.initialize()
    try:
        report = await MutationQueue(store, GoogleSheetsClient()).drain_once()
    finally:
        await store.close()

    print(
        f"Drain {report.status.value}: {report.applied} applied, "
        f"{report.failed} failed, {report.remaining} remaining"
    )
    if report.remaining:
        sys.exit(1)


async def run_pending():
    """Print the pending write queue, oldest first."""
    from .storage import LocalStore

    store = LocalStore()
    await store.initialize()
    try:
        mutations = await store.list_mutations()
    finally:
        await store.close()

    if not mutations:
        print("No pending writes.")
        return

    print(f"{len(mutations)} pending write(s):")
    for m in mutations:
        target = f"{m.spreadsheet_id}/{m.sheet_name}"
        row = f" row {m.row_index}" if m.row_index is not None else ""
        line = f"  #{m.id} {m.kind.value} {target}{row} (created {m.created_at:%Y-%m-%d %H:%M:%S}, retries {m.retry_count})"
        if m.last_error:
            line += f" last error: {m.last_error}"
        print(line)


if __name__ == "__main__":
    main()
