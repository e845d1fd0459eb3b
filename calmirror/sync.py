"""Task list synchronization logic for Calmirror."""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from .colors import resolve_color
from .errors import (
    AlreadyRunning,
    CommitError,
    ProviderError,
    SyncCancelled,
    SyncError,
    TaskDeleteError,
    TaskListCreateError,
)
from .models import (
    Calendar,
    CalendarFailure,
    ClearResult,
    Event,
    PlannedList,
    SyncResult,
    Task,
    TaskList,
)
from .provider import Provider


def ordered_calendars(selection: Iterable[Calendar]) -> list[Calendar]:
    """Processing order for a selection: by title, then calendar ID."""
    return sorted(
        set(selection), key=lambda calendar: (calendar.title.casefold(), calendar.calendar_id)
    )


def events_for(events: list[Event], *calendars: Calendar) -> list[Event]:
    """The calendars' events sorted by start; ties keep their original order."""
    return sorted(
        (event for event in events if event.calendar in calendars),
        key=lambda event: event.start,
    )


def find_task_list(task_lists: list[TaskList], title: str) -> TaskList | None:
    """Task lists are joined to calendars by exact title."""
    return next((task_list for task_list in task_lists if task_list.title == title), None)


class SyncRun:
    """Handle for the one sync run an engine may have in flight."""

    def __init__(self, on_status: Callable[[str], Any] | None = None):
        self.started_at = datetime.now(UTC)
        self.status = "Starting"
        self.cancelled = False
        self._on_status = on_status

    def cancel(self):
        """Ask the run to stop at its next provider call."""
        self.cancelled = True

    def check(self):
        if self.cancelled:
            raise SyncCancelled("Sync run was cancelled")

    def report(self, status: str):
        self.status = status
        if self._on_status:
            self._on_status(status)


class ReminderSynchronizer:
    """Mirrors calendar events into one task list per calendar.

    Each selected calendar's task list is emptied and repopulated, never
    diffed. Provider calls run in worker threads so the event loop stays
    responsive, and only one run may be active at a time.
    """

    def __init__(
        self, provider: Provider, on_status: Callable[[str], Any] | None = None
    ):
        self.provider = provider
        self.on_status = on_status
        self.logger = logging.getLogger(__name__)
        self.current_run: SyncRun | None = None

    @property
    def running(self) -> bool:
        return self.current_run is not None

    def start_run(self) -> SyncRun:
        """Claim the engine for a run, rejecting concurrent triggers."""
        if self.current_run is not None:
            raise AlreadyRunning(
                f"A sync run is already in progress ({self.current_run.status})"
            )
        self.current_run = SyncRun(self.on_status)
        return self.current_run

    def cancel(self) -> bool:
        """Cancel the active run, if any."""
        if self.current_run is None:
            return False
        self.current_run.cancel()
        return True

    async def sync(
        self, events: list[Event], selection: Iterable[Calendar], dry_run: bool = False
    ) -> SyncResult:
        """Replace the task list of every selected calendar with its events.

        Returns the aggregate result; calendars that could not be cleared
        or created are listed in ``failures`` while the others proceed.
        Raises ``CommitError`` when the final commit of new tasks fails and
        ``SyncCancelled`` when the run is cancelled before that commit.
        """
        run = self.start_run()
        try:
            result = await self._sync(run, events, ordered_calendars(selection), dry_run)
        except (SyncCancelled, asyncio.CancelledError):
            self.logger.warning("⏹️  Sync cancelled, discarding staged changes")
            self.provider.rollback()
            raise
        finally:
            self._finish(run)

        result.completed_at = datetime.now(UTC)
        self.logger.info(
            f"✅ Sync finished: {result.synced} task(s) in {len(result.calendars)} list(s), "
            f"{len(result.failures)} failed"
        )
        return result

    async def clear_task_lists(self, titles: Iterable[str], dry_run: bool = False) -> ClearResult:
        """Empty the mirrored task lists with the given titles."""
        run = self.start_run()
        result = ClearResult()
        try:
            task_lists = await self._load_task_lists(run)
            for title in titles:
                task_list = find_task_list(task_lists, title)
                if task_list is None:
                    self.logger.info(f"ℹ️  No task list named {title}")
                    result.missing.append(title)
                    continue

                try:
                    if dry_run:
                        tasks = await self._call(run, self.provider.tasks_in, task_list)
                        result.removed[title] = len(tasks)
                    else:
                        result.removed[title] = await self._clear(run, task_list, result.warnings)
                except SyncError as e:
                    self.logger.error(f"❌ Failed to clear {title}: {e}")
                    result.failures.append(CalendarFailure(title, str(e)))
        except (SyncCancelled, asyncio.CancelledError):
            self.provider.rollback()
            raise
        finally:
            self._finish(run)

        return result

    async def _sync(
        self, run: SyncRun, events: list[Event], calendars: list[Calendar], dry_run: bool
    ) -> SyncResult:
        result = SyncResult(started_at=run.started_at, dry_run=dry_run)

        task_lists = await self._load_task_lists(run)
        destination = await self._call(run, self.provider.default_destination)

        # Clear or create every list first so that a per-calendar removal
        # commit never flushes another calendar's staged tasks
        groups: dict[str, tuple[TaskList, PlannedList | None, list[Calendar]]] = {}
        failed: set[str] = set()
        for calendar in calendars:
            if calendar.title in groups or calendar.title in failed:
                # Calendars sharing a title share one list
                message = f"Calendars share the title {calendar.title}; merging their events"
                self.logger.warning(f"⚠️  {message}")
                result.warnings.append(message)
                if calendar.title in groups:
                    groups[calendar.title][2].append(calendar)
                continue

            task_list = find_task_list(task_lists, calendar.title)
            plan = None
            try:
                if dry_run:
                    plan = await self._plan(run, calendar, task_list)
                    result.planned.append(plan)
                    task_list = task_list or TaskList(
                        title=calendar.title,
                        color=resolve_color(calendar.color),
                        source=destination,
                    )
                elif task_list is not None:
                    run.report(f"Clearing {calendar.title}")
                    await self._clear(run, task_list, result.warnings)
                else:
                    run.report(f"Creating {calendar.title}")
                    task_list = await self._create_task_list(run, calendar, destination)
                    task_lists.append(task_list)
            except SyncError as e:
                self.logger.error(f"❌ Skipping calendar {calendar.title}: {e}")
                result.failures.append(CalendarFailure(calendar.title, str(e)))
                failed.add(calendar.title)
                continue

            groups[calendar.title] = (task_list, plan, [calendar])

        staged = 0
        for title, (task_list, plan, grouped) in groups.items():
            tasks = [Task.for_event(event, task_list) for event in events_for(events, *grouped)]
            if plan is not None:
                plan.tasks_to_create = tasks
                continue

            run.report(f"Adding {len(tasks)} task(s) to {title}")
            not_staged = 0
            for task in tasks:
                try:
                    await self._call(run, self.provider.save_task, task, False)
                    staged += 1
                except ProviderError as e:
                    self.logger.error(f"❌ Failed to stage task {task.title}: {e}")
                    not_staged += 1

            if not_staged:
                result.failures.append(
                    CalendarFailure(title, f"{not_staged} task(s) could not be saved")
                )
            else:
                result.calendars.append(title)

        if dry_run:
            return result

        run.report("Saving tasks")
        try:
            await self._call(run, self.provider.commit)
        except ProviderError as e:
            self.provider.rollback()
            self.logger.error(f"❌ Failed to commit new tasks: {e}")
            raise CommitError(f"Could not save new tasks: {e}", result.failures) from e

        result.synced = staged
        return result

    async def _load_task_lists(self, run: SyncRun) -> list[TaskList]:
        run.report("Loading task lists")
        try:
            return await self._call(run, self.provider.task_lists)
        except ProviderError as e:
            raise SyncError(f"Could not load task lists: {e}") from e

    async def _plan(
        self, run: SyncRun, calendar: Calendar, task_list: TaskList | None
    ) -> PlannedList:
        if task_list is None:
            return PlannedList(title=calendar.title, exists=False, tasks_to_remove=0)
        try:
            tasks = await self._call(run, self.provider.tasks_in, task_list)
        except ProviderError as e:
            raise SyncError(f"Could not read tasks in {task_list.title}: {e}") from e
        return PlannedList(title=calendar.title, exists=True, tasks_to_remove=len(tasks))

    async def _clear(self, run: SyncRun, task_list: TaskList, warnings: list[str]) -> int:
        """Remove every task in the list and commit the removals."""
        try:
            tasks = await self._call(run, self.provider.tasks_in, task_list)
        except ProviderError as e:
            raise SyncError(f"Could not read tasks in {task_list.title}: {e}") from e

        removed = 0
        for task in tasks:
            try:
                await self._call(run, self.provider.remove_task, task, False)
                removed += 1
            except ProviderError as e:
                error = TaskDeleteError(f"Could not remove '{task.title}' from {task_list.title}: {e}")
                self.logger.warning(f"⚠️  {error}")
                warnings.append(str(error))

        try:
            await self._call(run, self.provider.commit)
        except ProviderError as e:
            self.provider.rollback()
            raise CommitError(f"Could not commit removals from {task_list.title}: {e}") from e

        self.logger.info(f"🗑️  Removed {removed} task(s) from {task_list.title}")
        return removed

    async def _create_task_list(
        self, run: SyncRun, calendar: Calendar, destination: str | None
    ) -> TaskList:
        task_list = TaskList(
            title=calendar.title,
            color=resolve_color(calendar.color),
            source=destination,
        )
        try:
            saved = await self._call(run, self.provider.save_task_list, task_list)
        except ProviderError as e:
            raise TaskListCreateError(f"Could not create task list {calendar.title}: {e}") from e

        self.logger.info(f"➕ Created task list {calendar.title}")
        return saved

    async def _call(self, run: SyncRun, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking provider call off the event loop, honouring cancellation."""
        run.check()
        call = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(call)
        except asyncio.CancelledError:
            # A worker thread cannot be interrupted; wait until its write has
            # been staged so the caller's rollback discards it
            run.cancel()
            await asyncio.wait([call])
            if not call.cancelled() and call.exception() is not None:
                self.logger.warning(
                    f"⚠️  Provider call failed during cancellation: {call.exception()}"
                )
            raise

    def _finish(self, run: SyncRun):
        if self.current_run is run:
            self.current_run = None
