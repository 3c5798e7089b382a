"""Command-line front end for Voicenotes sync."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

from pydantic import ValidationError

from voicenotes_sync.config import Settings, SettingsStore
from voicenotes_sync.exceptions import AuthenticationError, VoiceNotesError
from voicenotes_sync.main import configure_logging, open_sync_engine
from voicenotes_sync.remote.client import AuthSession, VoiceNotesClient
from voicenotes_sync.services.notice_service import CollectingNotifier

if TYPE_CHECKING:
    from voicenotes_sync.services.sync_service import SyncReport


def fail(message: str) -> NoReturn:
    print(f"Error: {message}")
    sys.exit(1)


def load_settings(args: argparse.Namespace) -> tuple[SettingsStore, Settings]:
    vault_dir = Path(args.dir).resolve()
    store = SettingsStore.for_vault(vault_dir)
    overrides: dict[str, Any] = {"vault_dir": vault_dir, "sync_directory": args.sync_directory}
    if args.debug:
        overrides["debug"] = True
    try:
        return store, store.load(**overrides)
    except (ValueError, ValidationError) as exc:
        fail(f"Invalid settings in {store.path}: {exc}")


def print_report(report: SyncReport, notices: list[str]) -> None:
    if report.already_running:
        print("A sync is already running.")
        return
    for notice in notices:
        print(notice)
    print(f"  Fetched:          {report.fetched}")
    print(f"  Created:          {report.created}")
    print(f"  Updated:          {report.updated}")
    print(f"  Already present:  {report.skipped_existing}")
    print(f"  Excluded:         {report.excluded}")
    print(f"  Failed:           {report.failed + report.missing_title}")
    if report.deleted_remote:
        print(f"  Deleted remotely: {report.deleted_remote}")
    for error in report.errors:
        print(f"    ! {error}")


async def cmd_init(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> None:
    username = args.username or settings.username or input("Email: ")
    password = getpass.getpass("Password: ")
    session = AuthSession()
    async with VoiceNotesClient(
        session, base_url=settings.api_base_url, timeout=settings.request_timeout_seconds
    ) as client:
        try:
            token = await client.login(username, password)
        except AuthenticationError as exc:
            fail(f"Login failed: {exc}")
        except VoiceNotesError as exc:
            fail(f"Could not reach Voicenotes: {exc}")
    changes: dict[str, Any] = {"token": token, "username": username}
    if args.save_password:
        changes["password"] = password
    store.update(settings, **changes)
    print(f"Logged in as {username}; settings saved to {store.path}")


async def cmd_whoami(store: SettingsStore, settings: Settings) -> None:
    async with open_sync_engine(settings, store) as engine:
        user = await engine.client.get_current_user()
    if user is None:
        fail("Not logged in. Run 'voicenotes-sync init' first.")
    print(f"{user.name} <{user.email}>")
    if user.recordings_count is not None:
        print(f"  Recordings: {user.recordings_count}")


async def cmd_sync(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> None:
    notifier = CollectingNotifier()
    async with open_sync_engine(settings, store, notifier=notifier) as engine:
        report = await engine.orchestrator.sync(full=args.full)
    print_report(report, notifier.messages)
    if report.aborted:
        sys.exit(1)


async def cmd_today(args: argparse.Namespace, store: SettingsStore, settings: Settings) -> None:
    async with open_sync_engine(settings, store) as engine:
        links = engine.orchestrator.todays_note_links()
    if not links:
        print("No recordings from today.")
        return
    text = "\n".join(links)
    if args.append:
        target = Path(args.append)
        with target.open("a", encoding="utf-8") as handle:
            handle.write(f"\n{text}\n")
        print(f"Appended {len(links)} links to {target}")
    else:
        print(text)


async def wait_until_interrupted() -> None:
    await asyncio.Event().wait()


async def cmd_watch(store: SettingsStore, settings: Settings) -> None:
    if not settings.automatic_sync:
        print("Automatic sync is disabled (automatic_sync is false); nothing to watch.")
        return
    async with open_sync_engine(settings, store) as engine:
        scheduler = engine.scheduler()
        scheduler.set_enabled(settings.automatic_sync)
        print(f"Syncing every {settings.sync_interval_minutes} minutes. Press Ctrl+C to stop.")
        try:
            await wait_until_interrupted()
        finally:
            scheduler.stop()
            await scheduler.wait_idle()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="voicenotes-sync",
        description="Sync Voicenotes recordings into a local markdown vault",
    )
    parser.add_argument("--dir", "-d", default=".", help="Vault directory (default: current)")
    parser.add_argument("--sync-directory", help="Folder inside the vault for synced notes")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")
    init_parser = subparsers.add_parser("init", help="Log in and store the token")
    init_parser.add_argument("--username", "-u", help="Voicenotes account email")
    init_parser.add_argument(
        "--save-password",
        action="store_true",
        help="Also store the password for silent re-login",
    )
    subparsers.add_parser("logout", help="Forget the stored token and password")
    subparsers.add_parser("whoami", help="Show the logged-in account")
    sync_parser = subparsers.add_parser("sync", help="Sync recordings into the vault")
    sync_parser.add_argument(
        "--full", action="store_true", help="Walk every page instead of only the newest"
    )
    today_parser = subparsers.add_parser("today", help="List links to today's notes")
    today_parser.add_argument("--append", metavar="FILE", help="Append the links to FILE")
    subparsers.add_parser("watch", help="Sync periodically until interrupted")

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    store, settings = load_settings(args)
    configure_logging(settings.debug)

    if args.command == "logout":
        store.clear_sensitive_data(settings)
        print(f"Cleared stored credentials in {store.path}")
        return

    try:
        if args.command == "init":
            asyncio.run(cmd_init(args, store, settings))
        elif args.command == "whoami":
            asyncio.run(cmd_whoami(store, settings))
        elif args.command == "sync":
            asyncio.run(cmd_sync(args, store, settings))
        elif args.command == "today":
            asyncio.run(cmd_today(args, store, settings))
        elif args.command == "watch":
            asyncio.run(cmd_watch(store, settings))
    except KeyboardInterrupt:
        print("Stopped.")
    except (VoiceNotesError, ValueError) as exc:
        fail(str(exc))


if __name__ == "__main__":
    main()
