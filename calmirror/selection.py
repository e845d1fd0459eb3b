"""Calendar selection for Calmirror."""

from collections.abc import Iterable, Iterator

from .models import Calendar, Event


def apply_selection(events: list[Event], selection: Iterable[Calendar]) -> list[Event]:
    """Return the events belonging to the selected calendars.

    An empty selection means "no filter" and returns the events unchanged.
    Otherwise order is preserved and events without a calendar are dropped.
    """
    selected = set(selection)
    if not selected:
        return events
    return [
        event
        for event in events
        if event.calendar is not None and event.calendar in selected
    ]


class Selection:
    """The calendars a user has toggled on for this run."""

    def __init__(self, calendars: Iterable[Calendar] = ()):
        self._calendars: dict[Calendar, None] = dict.fromkeys(calendars)

    @classmethod
    def by_titles(cls, calendars: Iterable[Calendar], titles: Iterable[str]) -> "Selection":
        """Select discovered calendars by exact title."""
        by_title: dict[str, list[Calendar]] = {}
        for calendar in calendars:
            by_title.setdefault(calendar.title, []).append(calendar)

        unknown = [title for title in titles if title not in by_title]
        if unknown:
            raise ValueError(f"Unknown calendar(s): {', '.join(unknown)}")

        return cls(calendar for title in titles for calendar in by_title[title])

    def toggle(self, calendar: Calendar) -> bool:
        """Flip a calendar in or out of the selection; returns its new state."""
        if calendar in self._calendars:
            del self._calendars[calendar]
            return False
        self._calendars[calendar] = None
        return True

    def clear(self) -> None:
        self._calendars.clear()

    def __contains__(self, calendar: object) -> bool:
        return calendar in self._calendars

    def __iter__(self) -> Iterator[Calendar]:
        return iter(self._calendars)

    def __len__(self) -> int:
        return len(self._calendars)

    def __repr__(self) -> str:
        return f"Selection({[calendar.title for calendar in self._calendars]!r})"
