"""Upcoming event retrieval for Calmirror."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from .errors import ColorResolutionTimeout, ProviderError, ProviderReadError
from .models import Calendar, Event
from .provider import Provider

logger = logging.getLogger(__name__)


@dataclass
class UpcomingEvents:
    """Events in the lookahead window and the calendars they belong to."""

    events: list[Event] = field(default_factory=list)
    calendars: list[Calendar] = field(default_factory=list)


def window_for(days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return the [now, now + days] lookahead window."""
    start = now or datetime.now(UTC)
    return start, start + timedelta(days=days)


def discover_calendars(events: list[Event]) -> list[Calendar]:
    """Calendars referenced by the events, in order of first appearance."""
    seen: dict[Calendar, None] = {}
    for event in events:
        if event.calendar is not None and event.calendar not in seen:
            seen[event.calendar] = None
    return list(seen)


class EventSource:
    """Reads upcoming events from a provider.

    Calendar colors can be missing right after access is granted, so the
    full event set is re-queried until every calendar reports a color or
    ``max_attempts`` queries have been made. Providers raise
    ``PermissionDenied`` when queried before access is granted; it is
    passed through unchanged.
    """

    def __init__(
        self, provider: Provider, max_attempts: int = 10, retry_delay: float = 1.0
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def fetch_upcoming(
        self, window_start: datetime, window_end: datetime
    ) -> UpcomingEvents:
        """Fetch events in the window once every calendar color is known."""
        for attempt in range(1, self.max_attempts + 1):
            events = await self._query(window_start, window_end)
            missing = [
                calendar.title
                for calendar in discover_calendars(events)
                if calendar.color is None
            ]
            if not missing:
                logger.info(f"📅 Found {len(events)} upcoming events")
                return UpcomingEvents(events=events, calendars=discover_calendars(events))

            logger.info(
                f"🎨 Colors missing for {', '.join(missing)} "
                f"(attempt {attempt}/{self.max_attempts})"
            )
            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay)

        raise ColorResolutionTimeout(missing, self.max_attempts)

    async def _query(self, window_start: datetime, window_end: datetime) -> list[Event]:
        try:
            return await asyncio.to_thread(
                self.provider.events_between, window_start, window_end
            )
        except ProviderError as e:
            logger.error(f"❌ Failed to fetch upcoming events: {e}")
            raise ProviderReadError(f"Could not read upcoming events: {e}") from e
