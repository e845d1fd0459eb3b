"""Tests for the task list synchronizer."""

import asyncio
import threading
import time
from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from calmirror.colors import RGB
from calmirror.errors import AlreadyRunning, CommitError, SyncCancelled
from calmirror.models import Calendar, Event
from calmirror.sync import ReminderSynchronizer, events_for, ordered_calendars


async def test_only_selected_calendar_is_touched(provider, week_events, work, home):
    """Selecting Work mirrors Standup and Review and leaves Home alone."""
    provider.add_list("Home", "Groceries")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work})

    assert result.ok
    assert result.synced == 2
    assert result.calendars == ["Work"]
    assert provider.contents("Work") == [
        ("Standup", date(2024, 3, 4)),
        ("Review", date(2024, 3, 6)),
    ]
    assert provider.contents("Home") == [("Groceries", None)]


async def test_new_list_mirrors_calendar_color_and_destination(provider, week_events, work):
    synchronizer = ReminderSynchronizer(provider)

    await synchronizer.sync(week_events, {work})

    task_list = provider.list_titled("Work")
    assert task_list.color == RGB(0.1, 0.45, 0.91)
    assert task_list.source == "local"
    assert ("create_list", "Work") in provider.writes


async def test_existing_list_is_cleared_before_repopulating(provider, week_events, work):
    provider.add_list("Work", "Old standup", "Stale review")
    synchronizer = ReminderSynchronizer(provider)

    await synchronizer.sync(week_events, {work})

    assert [title for title, _ in provider.contents("Work")] == ["Standup", "Review"]
    assert ("create_list", "Work") not in provider.writes


async def test_sync_twice_does_not_duplicate(provider, week_events, work, home):
    synchronizer = ReminderSynchronizer(provider)

    await synchronizer.sync(week_events, {work, home})
    first = {title: provider.contents(title) for title in ("Work", "Home")}
    await synchronizer.sync(week_events, {work, home})

    assert {title: provider.contents(title) for title in ("Work", "Home")} == first
    assert len(provider.lists) == 2


async def test_tasks_follow_start_order_with_stable_ties(provider, work):
    same_time = datetime(2024, 3, 8, 10, 0, tzinfo=UTC)
    events = [
        Event("late", datetime(2024, 3, 9, 8, 0, tzinfo=UTC), "Late", work),
        Event("tie-a", same_time, "Tie A", work),
        Event("early", datetime(2024, 3, 7, 8, 0, tzinfo=UTC), "Early", work),
        Event("tie-b", same_time, "Tie B", work),
    ]
    synchronizer = ReminderSynchronizer(provider)

    await synchronizer.sync(events, {work})

    assert [title for title, _ in provider.contents("Work")] == [
        "Early",
        "Tie A",
        "Tie B",
        "Late",
    ]


async def test_due_date_drops_time_of_day(provider, work):
    late_evening = datetime(2024, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    synchronizer = ReminderSynchronizer(provider)

    await synchronizer.sync([Event("e", late_evening, "Late call", work)], {work})

    assert provider.contents("Work") == [("Late call", date(2024, 3, 1))]


async def test_list_creation_failure_does_not_stop_other_calendars(
    provider, week_events, work, home
):
    provider.fail_create.add("Home")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work, home})

    assert not result.ok
    assert result.failed_calendars == ["Home"]
    assert result.calendars == ["Work"]
    assert provider.list_titled("Home") is None
    assert [title for title, _ in provider.contents("Work")] == ["Standup", "Review"]


async def test_failed_task_removal_is_skipped(provider, week_events, work):
    provider.add_list("Work", "Pinned", "Old")
    provider.fail_remove.add("Pinned")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work})

    assert result.ok
    assert len(result.warnings) == 1
    assert "Pinned" in result.warnings[0]
    assert [title for title, _ in provider.contents("Work")] == ["Pinned", "Standup", "Review"]


async def test_removal_commit_failure_only_fails_that_calendar(
    provider, week_events, work, home
):
    # Home is processed first (alphabetical), so its removal commit is call 1
    provider.add_list("Home", "Old dinner")
    provider.add_list("Work", "Old standup")
    provider.fail_commits.add(1)
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work, home})

    assert result.failed_calendars == ["Home"]
    assert provider.contents("Home") == [("Old dinner", None)]
    assert [title for title, _ in provider.contents("Work")] == ["Standup", "Review"]
    assert provider.rollbacks == 1


async def test_final_commit_failure_raises_with_failures(provider, week_events, work, home):
    provider.fail_create.add("Home")
    provider.fail_commits.add(1)
    synchronizer = ReminderSynchronizer(provider)

    with pytest.raises(CommitError) as excinfo:
        await synchronizer.sync(week_events, {work, home})

    assert [failure.title for failure in excinfo.value.failures] == ["Home"]
    assert provider.contents("Work") == []
    assert provider.staged == []
    assert not synchronizer.running


async def test_staging_failure_marks_calendar_failed(provider, week_events, work):
    provider.fail_stage.add("Review")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work})

    assert result.failed_calendars == ["Work"]
    assert result.synced == 1


async def test_dry_run_plans_without_writing(provider, week_events, work, home):
    provider.add_list("Work", "Old standup", "Old review")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(week_events, {work, home}, dry_run=True)

    assert result.dry_run
    assert provider.writes == []
    assert provider.commit_calls == 0
    plans = {plan.title: plan for plan in result.planned}
    assert plans["Work"].exists and plans["Work"].tasks_to_remove == 2
    assert [task.title for task in plans["Work"].tasks_to_create] == ["Standup", "Review"]
    assert not plans["Home"].exists
    assert [task.title for task in plans["Home"].tasks_to_create] == ["Dinner"]


async def test_concurrent_sync_is_rejected(provider, week_events, work):
    synchronizer = ReminderSynchronizer(provider)

    first = asyncio.create_task(synchronizer.sync(week_events, {work}))
    await asyncio.sleep(0)
    assert synchronizer.running

    with pytest.raises(AlreadyRunning):
        await synchronizer.sync(week_events, {work})

    result = await first
    assert result.synced == 2
    assert not synchronizer.running


async def test_cancel_discards_staged_tasks(provider, week_events, work):
    synchronizer = ReminderSynchronizer(provider)

    def cancel_after_first_stage(name):
        if name == "save_task":
            synchronizer.cancel()

    provider.on_call = cancel_after_first_stage

    with pytest.raises(SyncCancelled):
        await synchronizer.sync(week_events, {work})

    assert provider.contents("Work") == []
    assert provider.staged == []
    assert not synchronizer.running


async def test_cancelling_the_task_waits_for_the_call_in_flight(provider, week_events, work):
    synchronizer = ReminderSynchronizer(provider)
    saving = threading.Event()

    def slow_first_save(name):
        if name == "save_task" and not saving.is_set():
            saving.set()
            time.sleep(0.2)

    provider.on_call = slow_first_save
    running = asyncio.create_task(synchronizer.sync(week_events, {work}))
    while not saving.is_set():
        await asyncio.sleep(0.01)
    running.cancel()

    with pytest.raises(asyncio.CancelledError):
        await running

    assert provider.staged == []
    assert not synchronizer.running

    provider.on_call = None
    await synchronizer.sync(week_events, {work})

    assert provider.contents("Work") == [
        ("Standup", date(2024, 3, 4)),
        ("Review", date(2024, 3, 6)),
    ]


async def test_calendars_sharing_a_title_fill_one_list_in_start_order(provider, work):
    other_work = Calendar("work@other.example.com", "Work", (0.5, 0.5, 0.5, 1.0))
    events = [
        Event("a", datetime(2024, 3, 6, 9, 0, tzinfo=UTC), "Review", work),
        Event("b", datetime(2024, 3, 4, 9, 0, tzinfo=UTC), "Planning", other_work),
        Event("c", datetime(2024, 3, 5, 9, 0, tzinfo=UTC), "Standup", work),
    ]
    provider.events = events
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.sync(events, {work, other_work})

    assert result.calendars == ["Work"]
    assert result.synced == 3
    assert len(result.warnings) == 1
    assert [title for title, _ in provider.contents("Work")] == ["Planning", "Standup", "Review"]
    assert provider.writes.count(("create_list", "Work")) == 1


async def test_status_updates_are_reported(provider, week_events, work):
    statuses = []
    synchronizer = ReminderSynchronizer(provider, on_status=statuses.append)

    await synchronizer.sync(week_events, {work})

    assert "Creating Work" in statuses
    assert "Adding 2 task(s) to Work" in statuses
    assert statuses[-1] == "Saving tasks"


async def test_clear_task_lists(provider):
    provider.add_list("Work", "A", "B")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.clear_task_lists(["Work", "Gym"])

    assert result.removed == {"Work": 2}
    assert result.missing == ["Gym"]
    assert provider.contents("Work") == []


async def test_clear_task_lists_dry_run(provider):
    provider.add_list("Work", "A", "B")
    synchronizer = ReminderSynchronizer(provider)

    result = await synchronizer.clear_task_lists(["Work"], dry_run=True)

    assert result.total_removed == 2
    assert len(provider.contents("Work")) == 2


def test_calendars_are_processed_alphabetically(work, home):
    assert [calendar.title for calendar in ordered_calendars([work, home])] == ["Home", "Work"]


def test_events_for_filters_by_calendar(week_events, home):
    assert [event.title for event in events_for(week_events, home)] == ["Dinner"]
