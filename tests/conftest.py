"""Shared fixtures: an in-memory provider and a small calendar scenario."""

from datetime import UTC, datetime

import pytest

from calmirror.errors import PermissionDenied, ProviderError
from calmirror.models import Calendar, Event, Task, TaskList

BLUE = (0.1, 0.45, 0.91, 1.0)
GREEN = (0.2, 0.66, 0.33, 1.0)


class FakeProvider:
    """In-memory provider with staged writes and injectable failures."""

    def __init__(self, events=(), grant=True):
        self.grant = grant
        self.granted = False
        self.access_requests = 0

        self.events = list(events)
        self.event_batches: list[list[Event]] = []  # Successive query results
        self.event_queries = 0
        self.last_window = None

        self.lists: list[TaskList] = []
        self.stored: dict[str, list[Task]] = {}
        self.staged: list[tuple[str, Task]] = []
        self.writes: list[tuple[str, str]] = []
        self.commit_calls = 0
        self.rollbacks = 0

        self.fail_events = False
        self.fail_create: set[str] = set()  # Task list titles
        self.fail_remove: set[str] = set()  # Task titles
        self.fail_stage: set[str] = set()  # Task titles
        self.fail_commits: set[int] = set()  # 1-based commit call numbers
        self.on_call = None

        self._ids = 0

    # Provider protocol

    def request_access(self):
        self._hook("request_access")
        self.access_requests += 1
        self.granted = self.grant
        return self.grant

    def calendars(self):
        self._require()
        seen = {}
        for event in self.events:
            if event.calendar is not None:
                seen.setdefault(event.calendar, None)
        return list(seen)

    def events_between(self, start, end):
        self._require()
        self._hook("events_between")
        self.event_queries += 1
        self.last_window = (start, end)
        if self.fail_events:
            raise ProviderError("calendar store unavailable")
        if self.event_batches:
            index = min(self.event_queries, len(self.event_batches)) - 1
            return list(self.event_batches[index])
        return list(self.events)

    def task_lists(self):
        self._require()
        self._hook("task_lists")
        return list(self.lists)

    def tasks_in(self, task_list):
        self._hook("tasks_in")
        return list(self.stored.get(task_list.list_id, []))

    def default_destination(self):
        return "local"

    def save_task_list(self, task_list):
        self._hook("save_task_list")
        if task_list.title in self.fail_create:
            raise ProviderError(f"cannot create {task_list.title}")
        task_list.list_id = self._next_id("list")
        self.lists.append(task_list)
        self.stored[task_list.list_id] = []
        self.writes.append(("create_list", task_list.title))
        return task_list

    def save_task(self, task, commit=False):
        self._hook("save_task")
        if task.title in self.fail_stage:
            raise ProviderError(f"cannot save {task.title}")
        self.staged.append(("insert", task))
        if commit:
            self.commit()

    def remove_task(self, task, commit=False):
        self._hook("remove_task")
        if task.title in self.fail_remove:
            raise ProviderError(f"cannot remove {task.title}")
        self.staged.append(("delete", task))
        if commit:
            self.commit()

    def commit(self):
        self._hook("commit")
        self.commit_calls += 1
        if self.commit_calls in self.fail_commits:
            raise ProviderError("commit rejected")

        staged, self.staged = self.staged, []
        for operation, task in staged:
            tasks = self.stored[task.task_list.list_id]
            if operation == "insert":
                task.task_id = self._next_id("task")
                tasks.append(task)
                self.writes.append(("insert", task.title))
            else:
                tasks[:] = [t for t in tasks if t.task_id != task.task_id]
                self.writes.append(("delete", task.title))

    def rollback(self):
        self.rollbacks += 1
        self.staged.clear()

    # Test helpers

    def add_list(self, title, *task_titles):
        task_list = TaskList(title=title, source="local", list_id=self._next_id("list"))
        self.lists.append(task_list)
        self.stored[task_list.list_id] = [
            Task(title=t, due=None, task_list=task_list, task_id=self._next_id("task"))
            for t in task_titles
        ]
        return task_list

    def list_titled(self, title):
        matches = [task_list for task_list in self.lists if task_list.title == title]
        assert len(matches) <= 1, f"duplicate task lists titled {title}"
        return matches[0] if matches else None

    def contents(self, title):
        """(task title, due date) pairs stored in the list with this title."""
        task_list = self.list_titled(title)
        if task_list is None:
            return None
        return [(task.title, task.due) for task in self.stored[task_list.list_id]]

    def _require(self):
        if not self.granted:
            raise PermissionDenied("access not granted")

    def _hook(self, name):
        if self.on_call:
            self.on_call(name)

    def _next_id(self, prefix):
        self._ids += 1
        return f"{prefix}-{self._ids}"


@pytest.fixture
def work():
    return Calendar(calendar_id="work@example.com", title="Work", color=BLUE)


@pytest.fixture
def home():
    return Calendar(calendar_id="home@example.com", title="Home", color=GREEN)


@pytest.fixture
def week_events(work, home):
    """Standup (Work, Mon 9am), Dinner (Home, Tue 6pm), Review (Work, Wed 2pm)."""
    return [
        Event("e1", datetime(2024, 3, 4, 9, 0, tzinfo=UTC), "Standup", work),
        Event("e2", datetime(2024, 3, 5, 18, 0, tzinfo=UTC), "Dinner", home),
        Event("e3", datetime(2024, 3, 6, 14, 0, tzinfo=UTC), "Review", work),
    ]


@pytest.fixture
def provider(week_events):
    fake = FakeProvider(week_events)
    fake.granted = True
    return fake
