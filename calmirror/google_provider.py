"""Google Calendar and Google Tasks provider for Calmirror."""

import logging
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .auth import GoogleAuthenticator
from .errors import PermissionDenied, ProviderError
from .models import Calendar, Event, Task, TaskList

logger = logging.getLogger(__name__)


class GoogleProvider:
    """Reads events from Google Calendar and mirrors them into Google Tasks.

    Google Tasks has no transactions, so task saves and removals are staged
    locally and sent in order on ``commit()``. A failed commit leaves the
    operations before the failing one applied.
    """

    def __init__(self, authenticator: GoogleAuthenticator):
        self.authenticator = authenticator
        self.account_name = authenticator.account_name
        self.calendar_service: Any = None
        self.tasks_service: Any = None

        self._staged: list[tuple[str, Task]] = []
        # Google Tasks does not store list colors; remember the ones we set
        self._list_colors: dict[str, Any] = {}

    def request_access(self) -> bool:
        """Load stored credentials and build both API services."""
        try:
            credentials = self.authenticator.load_authorized()
            if not credentials:
                logger.warning(f"No usable credentials for account {self.account_name}")
                return False

            self.calendar_service = build(
                "calendar", "v3", credentials=credentials, cache_discovery=False
            )
            self.tasks_service = build(
                "tasks", "v1", credentials=credentials, cache_discovery=False
            )
        except (GoogleAuthError, HttpError) as e:
            raise ProviderError(f"Authorization failed for {self.account_name}: {e}") from e

        logger.info(f"✅ Initialized Calendar and Tasks services for {self.account_name}")
        return True

    def calendars(self) -> list[Calendar]:
        """List every calendar in the account's calendar list."""
        entries = self._list_all(
            lambda token: self._calendar().calendarList().list(pageToken=token)
        )
        return [Calendar.from_google_entry(entry) for entry in entries]

    def events_between(self, start: datetime, end: datetime) -> list[Event]:
        """Fetch single (expanded) events across all calendars, sorted by start."""
        events: list[Event] = []

        for calendar in self.calendars():
            page_token = None
            while True:
                response = self._execute(
                    self._calendar()
                    .events()
                    .list(
                        calendarId=calendar.calendar_id,
                        timeMin=_rfc3339(start),
                        timeMax=_rfc3339(end),
                        singleEvents=True,
                        orderBy="startTime",
                        maxResults=250,
                        pageToken=page_token,
                    )
                )
                time_zone = _zone(response.get("timeZone"))
                for item in response.get("items", []):
                    if item.get("status") == "cancelled":
                        continue
                    events.append(Event.from_google_event(item, calendar, time_zone))

                page_token = response.get("nextPageToken")
                if not page_token:
                    break

            logger.debug(f"📅 Fetched events from calendar {calendar.title}")

        events.sort(key=lambda event: event.start)
        return events

    def task_lists(self) -> list[TaskList]:
        items = self._list_all(
            lambda token: self._tasks().tasklists().list(maxResults=100, pageToken=token)
        )
        return [
            TaskList(
                title=item.get("title", ""),
                color=self._list_colors.get(item["id"]),
                source=self.account_name,
                list_id=item["id"],
            )
            for item in items
        ]

    def tasks_in(self, task_list: TaskList) -> list[Task]:
        if not task_list.list_id:
            return []

        items = self._list_all(
            lambda token: self._tasks()
            .tasks()
            .list(
                tasklist=task_list.list_id,
                showCompleted=True,
                showHidden=True,
                maxResults=100,
                pageToken=token,
            )
        )
        return [
            Task(
                title=item.get("title", ""),
                due=_parse_due(item.get("due")),
                task_list=task_list,
                task_id=item["id"],
            )
            for item in items
        ]

    def default_destination(self) -> str | None:
        return self.account_name

    def save_task_list(self, task_list: TaskList) -> TaskList:
        """Create a task list immediately."""
        response = self._execute(
            self._tasks().tasklists().insert(body={"title": task_list.title})
        )
        task_list.list_id = response["id"]
        task_list.source = task_list.source or self.account_name
        if task_list.color is not None:
            self._list_colors[task_list.list_id] = task_list.color
        logger.info(f"➕ Created task list: {task_list.title}")
        return task_list

    def save_task(self, task: Task, commit: bool = False) -> None:
        self._staged.append(("insert", task))
        if commit:
            self.commit()

    def remove_task(self, task: Task, commit: bool = False) -> None:
        if not task.task_id:
            raise ProviderError(f"Task '{task.title}' has never been saved")
        self._staged.append(("delete", task))
        if commit:
            self.commit()

    def commit(self) -> None:
        """Send every staged operation in order."""
        staged, self._staged = self._staged, []
        # Chain inserts so each list shows tasks in the order they were staged
        last_inserted: dict[str, str] = {}

        for done, (operation, task) in enumerate(staged):
            list_id = task.task_list.list_id
            try:
                if not list_id:
                    raise ProviderError(f"Task list '{task.task_list.title}' has never been saved")
                if operation == "insert":
                    kwargs: dict[str, Any] = {"tasklist": list_id, "body": task.to_google_body()}
                    if list_id in last_inserted:
                        kwargs["previous"] = last_inserted[list_id]
                    response = self._execute(self._tasks().tasks().insert(**kwargs))
                    task.task_id = response["id"]
                    last_inserted[list_id] = task.task_id
                else:
                    self._execute(
                        self._tasks().tasks().delete(tasklist=list_id, task=task.task_id)
                    )
            except ProviderError as e:
                raise ProviderError(
                    f"Commit failed after {done} of {len(staged)} operation(s): {e}"
                ) from e

        logger.debug(f"💾 Committed {len(staged)} task operation(s)")

    def rollback(self) -> None:
        if self._staged:
            logger.debug(f"↩️  Discarding {len(self._staged)} staged task operation(s)")
        self._staged.clear()

    def _calendar(self) -> Any:
        if self.calendar_service is None:
            raise PermissionDenied("Calendar access has not been granted")
        return self.calendar_service

    def _tasks(self) -> Any:
        if self.tasks_service is None:
            raise PermissionDenied("Tasks access has not been granted")
        return self.tasks_service

    def _execute(self, request: Any) -> dict[str, Any]:
        try:
            return request.execute() or {}
        except HttpError as e:
            raise ProviderError(f"Google API request failed: {e}") from e

    def _list_all(self, make_request) -> list[dict[str, Any]]:
        """Collect items across all result pages."""
        items: list[dict[str, Any]] = []
        page_token = None
        while True:
            response = self._execute(make_request(page_token))
            items.extend(response.get("items", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                return items


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def _zone(name: str | None):
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown calendar time zone {name}, using UTC")
        return UTC


def _parse_due(value: str | None) -> date | None:
    # Tasks API only honours the date part of "due"
    if not value:
        return None
    return date.fromisoformat(value[:10])
