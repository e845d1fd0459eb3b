"""Data models for Calmirror."""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any

from .colors import RGB, NativeColor, parse_hex_color

UNTITLED = "Untitled"


@dataclass(frozen=True)
class Calendar:
    """An event calendar as reported by the provider.

    Identity is the provider's calendar ID; title and color are carried
    along for display and for naming the mirrored task list.
    """

    calendar_id: str
    title: str = field(compare=False)
    color: NativeColor | None = field(default=None, compare=False)

    @classmethod
    def from_google_entry(cls, entry: dict[str, Any]) -> "Calendar":
        """Create a Calendar from a Google calendarList entry."""
        return cls(
            calendar_id=entry["id"],
            title=entry.get("summaryOverride") or entry.get("summary", ""),
            color=parse_hex_color(entry.get("backgroundColor")),
        )


@dataclass(frozen=True)
class Event:
    """A read-only snapshot of an upcoming calendar event."""

    event_id: str
    start: datetime
    title: str = UNTITLED
    calendar: Calendar | None = field(default=None, compare=False)

    @classmethod
    def from_google_event(
        cls,
        event: dict[str, Any],
        calendar: Calendar | None,
        time_zone: tzinfo = UTC,
    ) -> "Event":
        """Create an Event from a Google Calendar API event.

        All-day events carry only a date; they start at midnight in
        ``time_zone`` (the calendar's zone) so every start is tz-aware.
        """
        start_data = event.get("start", {})
        if "dateTime" in start_data:
            start = datetime.fromisoformat(
                start_data["dateTime"].replace("Z", "+00:00")
            )
        else:
            start = datetime.combine(
                date.fromisoformat(start_data["date"]), time(), tzinfo=time_zone
            )

        return cls(
            event_id=event["id"],
            title=event.get("summary") or UNTITLED,
            start=start,
            calendar=calendar,
        )

    @property
    def due_date(self) -> date:
        """The start truncated to its calendar day, in the event's own zone."""
        return self.start.date()


@dataclass
class TaskList:
    """A mirrored task list, joined to its calendar by exact title."""

    title: str
    color: RGB | None = None
    source: str | None = None  # Provider destination that owns the list
    list_id: str | None = None  # Assigned by the provider on save


@dataclass
class Task:
    """A mirrored task, one per synced event."""

    title: str
    due: date | None
    task_list: TaskList
    task_id: str | None = None  # Assigned by the provider on save

    @classmethod
    def for_event(cls, event: Event, task_list: TaskList) -> "Task":
        """Build the task mirroring an event."""
        return cls(title=event.title, due=event.due_date, task_list=task_list)

    def to_google_body(self) -> dict[str, Any]:
        """Render as a Google Tasks API request body (date-only due)."""
        body: dict[str, Any] = {"title": self.title}
        if self.due:
            body["due"] = f"{self.due.isoformat()}T00:00:00.000Z"
        return body


@dataclass
class CalendarFailure:
    """A calendar whose mirror could not be written."""

    title: str
    reason: str

    def __str__(self) -> str:
        return f"{self.title}: {self.reason}"


@dataclass
class PlannedList:
    """What a dry run would do to one mirrored task list."""

    title: str
    exists: bool
    tasks_to_remove: int
    tasks_to_create: list[Task] = field(default_factory=list)


@dataclass
class SyncResult:
    """Aggregate outcome of a sync run."""

    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    synced: int = 0
    calendars: list[str] = field(default_factory=list)
    failures: list[CalendarFailure] = field(default_factory=list)
    planned: list[PlannedList] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)  # Non-fatal problems, e.g. skipped removals
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_calendars(self) -> list[str]:
        return [failure.title for failure in self.failures]

    def summary(self) -> str:
        """Generate a human-readable summary."""
        if self.dry_run:
            lines = [f"Dry run planned {len(self.planned)} task list(s)"]
            for plan in self.planned:
                action = "replace" if plan.exists else "create"
                lines.append(
                    f"  {plan.title}: {action}, remove {plan.tasks_to_remove}, "
                    f"add {len(plan.tasks_to_create)}"
                )
        else:
            lines = [
                f"Sync completed at {self.completed_at}",
                f"Tasks created: {self.synced} across {len(self.calendars)} list(s)",
            ]
        if self.warnings:
            lines.append(f"Warnings: {len(self.warnings)}")
        if self.failures:
            lines.append(f"Failed calendars: {len(self.failures)}")
            lines.extend(f"  {failure}" for failure in self.failures)
        return "\n".join(lines)


@dataclass
class ClearResult:
    """Outcome of emptying mirrored task lists without repopulating them."""

    removed: dict[str, int] = field(default_factory=dict)  # Title -> tasks removed
    missing: list[str] = field(default_factory=list)  # Titles with no task list
    failures: list[CalendarFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())
