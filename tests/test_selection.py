"""Tests for calendar selection."""

from datetime import UTC, datetime

import pytest

from calmirror.models import Calendar, Event
from calmirror.selection import Selection, apply_selection


def test_empty_selection_returns_events_unchanged(week_events):
    assert apply_selection(week_events, set()) is week_events
    assert apply_selection(week_events, Selection()) == week_events


def test_selection_keeps_order_of_matching_events(week_events, work):
    filtered = apply_selection(week_events, {work})

    assert [event.title for event in filtered] == ["Standup", "Review"]


@pytest.mark.parametrize("titles", [["Work"], ["Home"], ["Work", "Home"]])
def test_selection_returns_exactly_selected_calendars(week_events, work, home, titles):
    calendars = {"Work": work, "Home": home}
    selection = {calendars[title] for title in titles}

    filtered = apply_selection(week_events, selection)

    assert filtered == [event for event in week_events if event.calendar in selection]


def test_events_without_calendar_are_excluded(work):
    orphan = Event("orphan", datetime(2024, 3, 4, tzinfo=UTC), "Orphan", None)
    standup = Event("e1", datetime(2024, 3, 4, 9, tzinfo=UTC), "Standup", work)

    assert apply_selection([orphan, standup], {work}) == [standup]
    assert apply_selection([orphan, standup], set()) == [orphan, standup]


def test_calendar_identity_ignores_title_and_color(week_events):
    renamed = Calendar(calendar_id="work@example.com", title="Renamed", color=None)

    assert [event.title for event in apply_selection(week_events, {renamed})] == [
        "Standup",
        "Review",
    ]


def test_toggle_adds_and_removes(work, home):
    selection = Selection()

    assert selection.toggle(work) is True
    assert selection.toggle(home) is True
    assert selection.toggle(work) is False

    assert list(selection) == [home]
    assert work not in selection
    assert len(selection) == 1


def test_by_titles(work, home):
    selection = Selection.by_titles([work, home], ["Home"])

    assert list(selection) == [home]


def test_by_titles_rejects_unknown_titles(work, home):
    with pytest.raises(ValueError, match="Gym"):
        Selection.by_titles([work, home], ["Work", "Gym"])
