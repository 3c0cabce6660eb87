"""
Command-line interface for the travel catalog sync client.

Usage:
    catalog-sync --login            # prompt for credentials, then load the catalog
    catalog-sync --sync --status    # reload with the persisted session
    catalog-sync --list experiences
    catalog-sync --logout
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Optional

from .config import get_settings
from .coordinator import SyncCoordinator, SyncState, coordinator_session
from .errors import SyncError


class Colors:
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colorize(text: str, color: str) -> str:
    """Apply color to text if terminal supports it."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def print_header(text: str) -> None:
    print(colorize(f"\n{'=' * 60}", Colors.CYAN))
    print(colorize(f" {text}", Colors.BOLD + Colors.CYAN))
    print(colorize(f"{'=' * 60}", Colors.CYAN))


class ConsoleNotifier:
    """Print notifications to the terminal."""

    def success(self, message: str) -> None:
        print(colorize(f"  [OK] {message}", Colors.GREEN))

    def warning(self, message: str) -> None:
        print(colorize(f"  [WARN] {message}", Colors.YELLOW))

    def error(self, message: str) -> None:
        print(colorize(f"  [ERROR] {message}", Colors.RED))


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Travel catalog sync client",
    )
    parser.add_argument("--login", action="store_true", help="Login to the API")
    parser.add_argument("--email", help="Email for --login (prompted if omitted)")
    parser.add_argument("--sync", action="store_true", help="Reload all collections")
    parser.add_argument(
        "--list",
        metavar="COLLECTION",
        choices=["experiences", "itineraries", "images", "updates"],
        help="Print one collection after loading",
    )
    parser.add_argument("--status", action="store_true", help="Show sync status")
    parser.add_argument("--logout", action="store_true", help="Clear the stored session")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def print_status(coordinator: SyncCoordinator) -> None:
    status = coordinator.status()
    print_header("Sync Status")
    print(f"State: {status['state']}")
    print(f"User: {status['user'] or '-'}")
    for name, info in status["collections"].items():
        line = f"  {name}: {info['items']} item(s)"
        if info["last_error"]:
            line += colorize(f" (last error: {info['last_error']})", Colors.RED)
        print(line)


def print_collection(coordinator: SyncCoordinator, name: str, window_days: int = 2) -> None:
    print_header(name.capitalize())
    for item in coordinator.catalog[name]:
        title = getattr(item, "title", None) or getattr(item, "caption", "")
        marker = colorize(" [NEW]", Colors.GREEN) if item.is_new(window_days=window_days) else ""
        print(f"  {item.id}  {title}{marker}")


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    async with coordinator_session(settings, notifier=ConsoleNotifier()) as coordinator:
        if args.logout:
            coordinator.session_store.restore()
            coordinator.logout()
            return 0

        if args.login:
            email = args.email or input("Email: ")
            password = getpass.getpass("Password: ")
            try:
                await coordinator.login(email, password)
            except SyncError as e:
                print(colorize(f"Login failed: {e}", Colors.RED))
                return 1
        else:
            await coordinator.start()
            if coordinator.state is SyncState.UNAUTHENTICATED:
                print("Not logged in. Run with --login first.")
                return 1

        if args.sync:
            await coordinator.retry()

        if args.list:
            print_collection(coordinator, args.list, window_days=settings.new_item_window_days)

        if args.status:
            print_status(coordinator)

        return 2 if coordinator.state is SyncState.CONNECTION_ERROR else 0


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""
    args = create_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose or get_settings().debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
