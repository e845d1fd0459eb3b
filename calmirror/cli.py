#!/usr/bin/env python3
"""Command-line interface for Calmirror."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from calmirror import __version__
from calmirror.auth import (
    GoogleAuthenticator,
    create_oauth2_config_file,
    load_oauth2_config,
)
from calmirror.colors import ansi_swatch, resolve_color
from calmirror.config import (
    Config,
    create_example_config,
    ensure_directories,
    get_config_dir,
    get_credentials_dir,
    get_default_config_path,
)
from calmirror.errors import CalmirrorError, PermissionDenied
from calmirror.google_provider import GoogleProvider
from calmirror.purge import handle_purge
from calmirror.session import Session, SessionState


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Calmirror - mirror upcoming calendar events into task lists",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  calmirror init                   # Initialize configuration structure
  calmirror auth --setup           # Set up OAuth2 configuration
  calmirror auth                   # Authenticate the configured account
  calmirror calendars              # Show calendars with upcoming events
  calmirror sync                   # Mirror all configured calendars
  calmirror sync Work Home         # Mirror specific calendars by title
  calmirror sync --days 14         # Use a two-week lookahead window
  calmirror sync --list            # List the events that would be mirrored
  calmirror sync --dry-run         # Preview sync without making changes
  calmirror purge Work             # Empty the mirrored "Work" task list
  calmirror purge --all --dry-run  # Show what would be purged
  calmirror config                 # Show current configuration
  calmirror --version              # Show version information
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"Calmirror {__version__}"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=get_default_config_path(),
        help=f"Path to configuration file (default: {get_default_config_path()})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync command
    sync_parser = subparsers.add_parser(
        "sync", help="Mirror upcoming events into task lists"
    )
    sync_parser.add_argument(
        "calendars",
        nargs="*",
        help="Calendar titles to mirror (default: configured calendars, else all)",
    )
    sync_parser.add_argument(
        "--days", type=int, help="Lookahead window in days (default: from config)"
    )
    sync_parser.add_argument(
        "--list",
        action="store_true",
        help="List the events that would be mirrored instead of syncing",
    )
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be synced without modifying task lists",
    )

    # Calendars command
    calendars_parser = subparsers.add_parser(
        "calendars", help="Show calendars that have upcoming events"
    )
    calendars_parser.add_argument(
        "--days", type=int, help="Lookahead window in days (default: from config)"
    )

    # Purge command
    purge_parser = subparsers.add_parser(
        "purge",
        help="Empty mirrored task lists",
        description="Remove every task from mirrored task lists without repopulating them.",
    )
    purge_parser.add_argument(
        "--all",
        action="store_true",
        help="Purge the task list of EVERY calendar (REQUIRED unless titles are given)",
    )
    purge_parser.add_argument(
        "calendars",
        nargs="*",
        help="Calendar titles whose task lists should be emptied",
    )
    purge_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be purged without deleting tasks",
    )

    # Auth command
    auth_parser = subparsers.add_parser("auth", help="Authenticate with Google")
    auth_parser.add_argument(
        "--setup",
        action="store_true",
        help="Set up OAuth2 configuration (create config file)",
    )

    # Config command
    config_parser = subparsers.add_parser("config", help="Show current configuration")
    config_parser.add_argument(
        "--example",
        action="store_true",
        help="Show example configuration instead of current config",
    )

    # Init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize Calmirror configuration structure and create starter config",
    )
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite existing configuration files"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "sync":
        return handle_sync_command(args)
    elif args.command == "calendars":
        return handle_calendars_command(args)
    elif args.command == "purge":
        return handle_purge_command(args)
    elif args.command == "auth":
        return handle_auth_command(args)
    elif args.command == "config":
        return handle_config_command(args)
    elif args.command == "init":
        return handle_init_command(args)

    return 0


def setup_logging(config: Config):
    """Configure the root logger from the configuration."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def load_config(path: Path) -> Config | None:
    """Load and validate configuration, printing problems."""
    try:
        config = Config.from_file(path)
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {path}")
        print("\n💡 Use 'calmirror init' to create a new configuration")
        return None

    errors = config.validate()
    if errors:
        print(f"❌ Configuration Issues ({len(errors)}):")
        for error in errors:
            print(f"  • {error}")
        return None

    setup_logging(config)
    return config


def build_provider(config: Config) -> GoogleProvider | None:
    """Create the Google provider for the configured account."""
    oauth2_config = load_oauth2_config()
    if not oauth2_config:
        print("❌ OAuth2 configuration not found")
        print("💡 Run 'calmirror auth --setup' to create the configuration file")
        return None

    return GoogleProvider(GoogleAuthenticator(config.account, oauth2_config))


def print_status(state: SessionState, status: str):
    """Session listener printing progress while a sync runs."""
    if state is SessionState.SYNCING and status:
        print(f"  🔄 {status}")


async def _load_session(session: Session, days: int | None) -> bool:
    try:
        await session.load(days)
    except PermissionDenied as e:
        print(f"❌ Need permission to access calendars and tasks: {e}")
        print("💡 Run 'calmirror auth' to grant access")
        return False
    except CalmirrorError as e:
        print(f"❌ Could not load upcoming events: {e}")
        return False
    return True


def handle_calendars_command(args) -> int:
    """Handle the calendars command."""
    config = load_config(args.config)
    if not config:
        return 1
    provider = build_provider(config)
    if not provider:
        return 1

    session = Session(provider, config)
    if not asyncio.run(_load_session(session, args.days)):
        return 1

    days = args.days or config.window_days
    print(f"📅 Calendars with events in the next {days} day(s):")
    if not session.calendars:
        print("  No upcoming events")
    for calendar in session.calendars:
        count = sum(1 for event in session.events if event.calendar == calendar)
        chip = ansi_swatch(resolve_color(calendar.color), calendar.title)
        print(f"  {chip} {count} event(s)")
    return 0


def handle_sync_command(args) -> int:
    """Handle the sync command."""
    config = load_config(args.config)
    if not config:
        return 1
    provider = build_provider(config)
    if not provider:
        return 1

    session = Session(provider, config)
    session.add_listener(print_status)
    return asyncio.run(_run_sync(session, args, config))


async def _run_sync(session: Session, args, config: Config) -> int:
    if not await _load_session(session, args.days):
        return 1

    titles = args.calendars
    if not titles and config.calendars:
        # Configured calendars without upcoming events have nothing to mirror
        known = {calendar.title for calendar in session.calendars}
        titles = [title for title in config.calendars if title in known]
        for title in config.calendars:
            if title not in known:
                print(f"ℹ️  No upcoming events in {title}, skipping")
        if not titles:
            print("ℹ️  None of the configured calendars have upcoming events")
            return 0

    try:
        session.select_titles(titles)
    except ValueError as e:
        print(f"❌ {e}")
        print("💡 Run 'calmirror calendars' to see calendars with upcoming events")
        return 1

    events = session.filtered_events
    if args.list:
        print(f"📋 {len(events)} event(s) to mirror:")
        for event in events:
            calendar_title = event.calendar.title if event.calendar else "No calendar"
            chip = ansi_swatch(
                resolve_color(event.calendar.color if event.calendar else None),
                calendar_title,
            )
            print(f"  {event.start:%a %Y-%m-%d %H:%M}  {event.title}  {chip}")
        return 0

    if args.dry_run:
        print("🔍 DRY RUN MODE - No task lists will be modified")
    mirrored = sum(1 for event in events if event.calendar is not None)
    print(f"🚀 Adding {mirrored} event(s) to task lists...")

    try:
        result = await session.sync(dry_run=args.dry_run)
    except CalmirrorError as e:
        print(f"❌ Error during sync: {e}")
        for failure in getattr(e, "failures", []):
            print(f"  ❌ {failure}")
        return 1

    print()
    print(result.summary())
    for warning in result.warnings:
        print(f"  ⚠️  {warning}")

    if not result.ok:
        print("\n⚠️  Sync finished with failures")
        return 1

    if args.dry_run:
        print("\n🔍 DRY RUN COMPLETE - No changes were made to task lists")
    else:
        print("\n🎉 Added to task lists!")
    return 0


def handle_purge_command(args) -> int:
    """Handle the purge command."""
    config = load_config(args.config)
    if not config:
        return 1
    provider = build_provider(config)
    if not provider:
        return 1

    try:
        print("🗑️  Starting task list purge...")
        return handle_purge(args, provider)
    except PermissionDenied as e:
        print(f"❌ Need permission to access calendars and tasks: {e}")
        return 1
    except CalmirrorError as e:
        print(f"❌ Error during purge operation: {e}")
        return 1


def handle_auth_command(args) -> int:
    """Handle the auth command."""
    if args.setup:
        print("🔧 Setting up OAuth2 configuration...")
        oauth2_config_path = create_oauth2_config_file()
        print(f"✅ OAuth2 config file created at: {oauth2_config_path}")
        print("\n💡 Next steps:")
        print("   1. Go to Google Cloud Console: https://console.cloud.google.com/")
        print("   2. Create a new project or select existing one")
        print("   3. Enable the Google Calendar API and the Google Tasks API")
        print("   4. Create OAuth 2.0 credentials")
        print("   5. Edit the config file with your client_id and client_secret")
        print("   6. Run 'calmirror auth' to authenticate")
        return 0

    oauth2_config = load_oauth2_config()
    if not oauth2_config:
        print("❌ OAuth2 configuration not found")
        print("💡 Run 'calmirror auth --setup' to create the configuration file")
        return 1

    config = load_config(args.config)
    if not config:
        return 1

    print(f"🔐 Authenticating account: {config.account}")
    try:
        GoogleAuthenticator(config.account, oauth2_config).authenticate()
    except Exception as e:
        print(f"❌ Failed to authenticate {config.account}: {e}")
        return 1

    print(f"✅ Successfully authenticated {config.account}")
    print("💡 You can now run 'calmirror sync' to mirror your calendars")
    return 0


def handle_config_command(args) -> int:
    """Handle the config command."""
    if args.example:
        print("📋 Example Configuration:")
        print("=" * 50)
        print(create_example_config())
        return 0

    try:
        config = Config.from_file(args.config)
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        print("\n💡 Use 'calmirror init' to create a new configuration")
        return 1
    except (ValueError, TypeError) as e:
        print(f"❌ Error loading configuration: {e}")
        return 1

    print("⚙️ Current Configuration:")
    print("=" * 50)
    print(f"👤 Account: {config.account}")
    print(f"📆 Window: {config.window_days} day(s)")
    if config.calendars:
        print(f"📋 Calendars ({len(config.calendars)}):")
        for title in config.calendars:
            print(f"  • {title}")
    else:
        print("📋 Calendars: all calendars with upcoming events")
    print(
        f"🎨 Color retry: {config.color_retry.max_attempts} attempt(s), "
        f"{config.color_retry.delay_seconds}s apart"
    )
    print(f"📝 Log Level: {config.log_level}")
    if config.log_file:
        print(f"📄 Log File: {config.log_file}")

    errors = config.validate()
    if errors:
        print(f"\n⚠️  Configuration Issues ({len(errors)}):")
        for error in errors:
            print(f"  • {error}")
        return 1

    print("\n✅ Configuration is valid!")
    return 0


def handle_init_command(args) -> int:
    """Handle the init command."""
    print("🚀 Initializing Calmirror configuration structure...")

    ensure_directories()

    config_path = get_default_config_path()
    if config_path.exists() and not args.force:
        print(f"⚠️  Configuration already exists at: {config_path}")
        print("   Use --force to overwrite existing configuration")
        return 1

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(create_example_config())

    print(f"✅ Configuration initialized at: {config_path}")
    print(f"📁 Credentials directory: {get_credentials_dir()}")
    print(f"📁 Config directory: {get_config_dir()}")
    print("\n💡 Next steps:")
    print("   1. Edit the configuration file with your calendar titles")
    print("   2. Run 'calmirror auth --setup' and 'calmirror auth'")
    print("   3. Run 'calmirror sync' to mirror your calendars")
    return 0


if __name__ == "__main__":
    sys.exit(main())
