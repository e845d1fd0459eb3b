"""Purge functionality for Calmirror."""

import asyncio

from calmirror.errors import CalmirrorError, ProviderError
from calmirror.provider import Provider
from calmirror.session import authorize
from calmirror.sync import ReminderSynchronizer


async def purge_task_lists(
    provider: Provider, titles: list[str] | None, dry_run: bool = False
):
    """Empty mirrored task lists; ``titles=None`` means every calendar's list."""
    await authorize(provider)

    if titles is None:
        try:
            calendars = await asyncio.to_thread(provider.calendars)
        except ProviderError as e:
            raise CalmirrorError(f"Could not list calendars: {e}") from e
        titles = list(dict.fromkeys(calendar.title for calendar in calendars))

    synchronizer = ReminderSynchronizer(provider)
    return await synchronizer.clear_task_lists(titles, dry_run=dry_run)


def handle_purge(args, provider: Provider) -> int:
    """Handle the purge command once a provider is available."""
    # Safety check: require explicit --all or specific calendar titles
    if not args.all and not args.calendars:
        print("❌ SAFETY ERROR: No purge target specified!")
        print("💡 You must either:")
        print("   • Use --all to empty the task list of every calendar")
        print("   • Name calendars: calmirror purge Work Home")
        return 1

    if args.dry_run:
        print("🔍 DRY RUN MODE - No tasks will be deleted")

    titles = None if args.all else args.calendars
    result = asyncio.run(purge_task_lists(provider, titles, dry_run=args.dry_run))

    for title, count in result.removed.items():
        verb = "Would remove" if args.dry_run else "Removed"
        print(f"  🗑️  {verb} {count} task(s) from {title}")
    for title in result.missing:
        print(f"  ℹ️  No task list named {title}")
    for warning in result.warnings:
        print(f"  ⚠️  {warning}")
    for failure in result.failures:
        print(f"  ❌ {failure}")

    if args.dry_run:
        print(f"\n🔍 DRY RUN COMPLETE - Would delete {result.total_removed} tasks")
    else:
        print(f"\n✅ PURGE COMPLETE - Deleted {result.total_removed} tasks")

    return 0 if result.ok else 1
