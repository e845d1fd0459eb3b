"""Provider interface for calendar and task storage backends."""

from datetime import datetime
from typing import Protocol

from .models import Calendar, Event, Task, TaskList


class Provider(Protocol):
    """Access to a calendar store and a task store with deferred commits.

    Task saves and removals are staged until ``commit()`` is called;
    ``rollback()`` discards anything staged. Task list saves commit
    immediately. Every method raises ``ProviderError`` when the backend
    call fails.
    """

    def request_access(self) -> bool:
        """Request calendar read and task read/write access together."""
        ...

    def calendars(self) -> list[Calendar]: ...

    def events_between(self, start: datetime, end: datetime) -> list[Event]: ...

    def task_lists(self) -> list[TaskList]: ...

    def tasks_in(self, task_list: TaskList) -> list[Task]: ...

    def default_destination(self) -> str | None:
        """The source new task lists are created in."""
        ...

    def save_task_list(self, task_list: TaskList) -> TaskList: ...

    def save_task(self, task: Task, commit: bool = False) -> None: ...

    def remove_task(self, task: Task, commit: bool = False) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
