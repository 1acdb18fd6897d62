"""Command-line interface for voicemail-sync.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from voicemail_sync import __version__
from voicemail_sync.auth.session import BrowserPopupLauncher, callback_message_from_redirect
from voicemail_sync.auth.token_store import SqliteTokenStore
from voicemail_sync.config import Settings, get_settings
from voicemail_sync.exceptions import ConfigurationError
from voicemail_sync.logging_config import configure_logging
from voicemail_sync.models import UnreadCountEvent, VoicemailView
from voicemail_sync.widget import VoicemailWidget

logger = structlog.get_logger()


class ConsolePopupLauncher:
    """Prints the authorization URL instead of opening a window."""

    def __init__(self, open_browser: bool = False) -> None:
        self._browser = BrowserPopupLauncher() if open_browser else None

    def open(self, url: str, name: str, width: int, height: int) -> bool:
        print(f"Open this URL to sign in:\n\n  {url}\n")
        if self._browser is not None:
            self._browser.open(url, name, width, height)
        return True


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voicemail-sync", description="Voicemail sync client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Sign in with OAuth (PKCE)")
    login_parser.add_argument(
        "--browser",
        action="store_true",
        help="Also open the authorization URL in the system browser",
    )

    subparsers.add_parser("logout", help="Forget the stored access token")

    list_parser = subparsers.add_parser("list", help="Print one page of voicemails")
    list_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")

    subparsers.add_parser("watch", help="Print the voicemail list on every live update")

    return parser


def _format_row(vm: VoicemailView) -> str:
    status = "READ" if vm.record.read else "UNREAD"
    caller = vm.phone_number or vm.caller_display or "(unknown caller)"
    note = f"\t{vm.record.note}" if vm.record.note else ""
    return f"{status}\t{vm.relative_time}\t{vm.formatted_duration}\t{caller}{note}"


def _print_page(widget: VoicemailWidget) -> None:
    sync = widget.synchronizer
    if not sync.voicemails:
        print("No voicemails.")
    for vm in sync.voicemails:
        print(_format_row(vm))
    print(
        f"Page {sync.page.page_number} of {max(sync.page.total_page_count, 1)} "
        f"({sync.unread_count} unread). {sync.last_updated_label}"
    )


async def _cmd_login(args: argparse.Namespace, settings: Settings) -> int:
    widget = VoicemailWidget.create(settings, popup=ConsolePopupLauncher(args.browser))
    try:
        await widget.session.login()
        redirect_url = await asyncio.to_thread(
            input, "Paste the URL the browser was redirected to: "
        )
        message = callback_message_from_redirect(
            redirect_url.strip(), settings.callback_message_type
        )
        if message is None:
            print("That URL does not contain an authorization code.")
            return 1

        await widget.handle_window_message(settings.host_origin, message)
        if not widget.session.is_authenticated:
            print(widget.session.error_message or "Login failed.")
            return 1
        print("Logged in.")
        return 0
    finally:
        await widget.unmount()


def _cmd_logout(settings: Settings) -> int:
    store = SqliteTokenStore(settings.token_db_path)
    store.initialize()
    store.clear()
    print("Logged out.")
    return 0


async def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    widget = VoicemailWidget.create(settings, popup=ConsolePopupLauncher())
    try:
        if not widget.session.is_authenticated:
            print("Not logged in. Run 'voicemail-sync login' first.")
            return 1

        await widget.synchronizer.fetch(page_number=args.page, show_busy=True)
        if widget.synchronizer.error_message:
            print(widget.synchronizer.error_message)
            return 1
        if not widget.session.is_authenticated:
            print("Session expired. Run 'voicemail-sync login' again.")
            return 1
        _print_page(widget)
        return 0
    finally:
        await widget.unmount()


async def _cmd_watch(settings: Settings) -> int:
    widget = VoicemailWidget.create(settings, popup=ConsolePopupLauncher())
    if not widget.session.is_authenticated:
        print("Not logged in. Run 'voicemail-sync login' first.")
        await widget.unmount()
        return 1

    def _on_unread(event: UnreadCountEvent) -> None:
        if widget.synchronizer.last_updated is not None:
            _print_page(widget)

    widget.synchronizer.add_unread_listener(_on_unread)
    widget.channel.add_state_listener(
        lambda state: logger.info("notification_state_changed", state=state.value)
    )
    try:
        await widget.mount()
        await asyncio.Event().wait()
    finally:
        await widget.unmount()
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the voicemail-sync CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("voicemail_sync_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "login":
            return asyncio.run(_cmd_login(parsed, settings))
        if parsed.command == "logout":
            return _cmd_logout(settings)
        if parsed.command == "list":
            return asyncio.run(_cmd_list(parsed, settings))
        if parsed.command == "watch":
            return asyncio.run(_cmd_watch(settings))
    except ConfigurationError as exc:
        logger.error("configuration_error", error=str(exc))
        print(f"Configuration error: {exc}")
        return 1
    except KeyboardInterrupt:
        return 130

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
