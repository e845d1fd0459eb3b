"""Session state machine and permission gate for Calmirror."""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .config import Config
from .errors import AlreadyRunning, CalmirrorError, PermissionDenied
from .models import Calendar, Event, SyncResult
from .provider import Provider
from .selection import Selection, apply_selection
from .source import EventSource, UpcomingEvents, window_for
from .sync import ReminderSynchronizer

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    AUTHORIZING = "authorizing"
    LOADING = "loading"
    READY = "ready"
    SYNCING = "syncing"
    DONE = "done"
    PERMISSION_NEEDED = "permission_needed"


class SessionEvent(Enum):
    LOAD = "load"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    SYNC = "sync"
    SYNC_FINISHED = "sync_finished"
    SYNC_FAILED = "sync_failed"
    ACKNOWLEDGE = "acknowledge"


# (current state, event) -> next state
_TRANSITIONS: dict[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.LOAD): SessionState.AUTHORIZING,
    (SessionState.AUTHORIZING, SessionEvent.AUTHORIZED): SessionState.LOADING,
    (SessionState.AUTHORIZING, SessionEvent.DENIED): SessionState.PERMISSION_NEEDED,
    (SessionState.LOADING, SessionEvent.LOADED): SessionState.READY,
    (SessionState.LOADING, SessionEvent.DENIED): SessionState.PERMISSION_NEEDED,
    (SessionState.LOADING, SessionEvent.LOAD_FAILED): SessionState.IDLE,
    (SessionState.READY, SessionEvent.LOAD): SessionState.LOADING,
    (SessionState.READY, SessionEvent.SYNC): SessionState.SYNCING,
    (SessionState.SYNCING, SessionEvent.SYNC_FINISHED): SessionState.DONE,
    (SessionState.SYNCING, SessionEvent.SYNC_FAILED): SessionState.READY,
    (SessionState.DONE, SessionEvent.ACKNOWLEDGE): SessionState.READY,
    (SessionState.PERMISSION_NEEDED, SessionEvent.ACKNOWLEDGE): SessionState.IDLE,
}


class InvalidTransitionError(CalmirrorError):
    """Raised when an event is not valid in the session's current state."""


def next_state(current: SessionState, event: SessionEvent) -> SessionState:
    """Look up a transition, raising InvalidTransitionError if it is not allowed."""
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot handle '{event.value}' while '{current.value}'"
        ) from None


async def authorize(provider: Provider) -> None:
    """Request calendar and task access in a single prompt.

    Any refusal or failure is reported as one PermissionDenied; which of the
    two scopes was refused is not distinguished.
    """
    try:
        granted = await asyncio.to_thread(provider.request_access)
    except CalmirrorError as e:
        raise PermissionDenied(f"Authorization failed: {e}") from e

    if not granted:
        raise PermissionDenied("Calendar and task access is required")


Listener = Callable[[SessionState, str], Any]


class Session:
    """One interactive run: authorize, load, select, sync.

    Presentation layers subscribe with ``add_listener`` and drive the
    session through ``load``, ``toggle``, ``sync`` and ``acknowledge``.
    """

    def __init__(self, provider: Provider, config: Config | None = None):
        self.provider = provider
        self.config = config or Config()
        self.state = SessionState.IDLE
        self.status = ""
        self.authorized = False

        self.upcoming = UpcomingEvents()
        self.selection = Selection()
        self.last_result: SyncResult | None = None

        self.source = EventSource(
            provider,
            max_attempts=self.config.color_retry.max_attempts,
            retry_delay=self.config.color_retry.delay_seconds,
        )
        self.synchronizer = ReminderSynchronizer(provider, on_status=self._set_status)
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    @property
    def events(self) -> list[Event]:
        return self.upcoming.events

    @property
    def calendars(self) -> list[Calendar]:
        return self.upcoming.calendars

    @property
    def filtered_events(self) -> list[Event]:
        return apply_selection(self.upcoming.events, self.selection)

    async def load(self, days: int | None = None) -> UpcomingEvents:
        """Authorize (once per session) and fetch upcoming events."""
        if self.state is SessionState.READY:
            self._fire(SessionEvent.LOAD, "Loading events")
        else:
            self._fire(
                SessionEvent.LOAD,
                "Loading events" if self.authorized else "Requesting access",
            )
            if not self.authorized:
                try:
                    await authorize(self.provider)
                except PermissionDenied:
                    self._fire(SessionEvent.DENIED, "Permission needed")
                    raise
                self.authorized = True
            self._fire(SessionEvent.AUTHORIZED, "Loading events")

        window_start, window_end = window_for(days or self.config.window_days)
        try:
            self.upcoming = await self.source.fetch_upcoming(window_start, window_end)
        except PermissionDenied:
            self._fire(SessionEvent.DENIED, "Permission needed")
            raise
        except CalmirrorError as e:
            self._fire(SessionEvent.LOAD_FAILED, str(e))
            raise

        # Drop selections for calendars that no longer have events
        self.selection = Selection(c for c in self.selection if c in self.upcoming.calendars)
        self._fire(SessionEvent.LOADED, f"{len(self.upcoming.events)} upcoming event(s)")
        return self.upcoming

    def toggle(self, calendar: Calendar) -> bool:
        return self.selection.toggle(calendar)

    def select_titles(self, titles: list[str]):
        self.selection = Selection.by_titles(self.upcoming.calendars, titles)

    async def sync(self, dry_run: bool = False) -> SyncResult:
        """Mirror the filtered events.

        With nothing selected every discovered calendar is mirrored, so the
        run covers exactly the events in ``filtered_events``. Raises
        AlreadyRunning if a run is in progress.
        """
        if self.synchronizer.running:
            raise AlreadyRunning("A sync run is already in progress")

        calendars = list(self.selection) or list(self.upcoming.calendars)
        mirrored = sum(1 for event in self.filtered_events if event.calendar in calendars)
        self._fire(SessionEvent.SYNC, f"Syncing {mirrored} event(s)")
        try:
            result = await self.synchronizer.sync(self.filtered_events, calendars, dry_run=dry_run)
        except (CalmirrorError, asyncio.CancelledError) as e:
            self._fire(SessionEvent.SYNC_FAILED, str(e) or "Sync cancelled")
            raise

        self.last_result = result
        self._fire(SessionEvent.SYNC_FINISHED, result.summary())
        return result

    def cancel(self) -> bool:
        return self.synchronizer.cancel()

    def acknowledge(self):
        """Dismiss a completion or permission notice."""
        self._fire(SessionEvent.ACKNOWLEDGE, "")

    def _fire(self, event: SessionEvent, status: str):
        self.state = next_state(self.state, event)
        logger.debug(f"Session {event.value} -> {self.state.value}")
        self._set_status(status)

    def _set_status(self, status: str):
        self.status = status
        for listener in self._listeners:
            listener(self.state, status)
