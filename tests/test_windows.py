"""Summary: Tests for due-window planning.

Importance: Ensures each task selects exactly the appointments due on a tick.
Alternatives: Verify windows only through end-to-end ticks.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from meetcron.models import STATUS_CONFIRMED, STATUS_SCHEDULED, Appointment, AppointmentFilter
from meetcron.storage.repository import AppointmentRepository
from meetcron.windows import WindowPlanner, meet_link_window, reminder_window


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FilterRecorder(AppointmentRepository):
    """Repository that records the filters it receives and returns nothing."""

    def __init__(self) -> None:
        self.filters: list[AppointmentFilter] = []

    def query_appointments(self, criteria: AppointmentFilter) -> list[Appointment]:
        self.filters.append(criteria)
        return []

    def update_appointment(self, appointment_id: str, fields: dict[str, Any]) -> None:
        raise AssertionError("unexpected write")

    def swap_meeting_link(
        self, appointment_id: str, expected: str | None, value: str | None
    ) -> bool:
        raise AssertionError("unexpected write")

    def get_credential(self, user_id: str) -> None:
        return None

    def update_credential(self, user_id: str, fields: dict[str, Any]) -> None:
        raise AssertionError("unexpected write")

    def save_credential(self, credential: Any) -> None:
        raise AssertionError("unexpected write")

    def get_user_email(self, user_id: str) -> None:
        return None

    def claim_reminder(self, appointment_id: str, user_id: str) -> bool:
        raise AssertionError("unexpected write")

    def release_reminder(self, appointment_id: str, user_id: str) -> None:
        raise AssertionError("unexpected write")


def test_meet_link_window_is_inclusive() -> None:
    window = meet_link_window(NOW)
    assert window.contains(NOW)
    assert window.contains(NOW + timedelta(minutes=30))
    assert not window.contains(NOW + timedelta(minutes=31))
    assert not window.contains(NOW - timedelta(seconds=1))


def test_reminder_window_centers_on_lead() -> None:
    window = reminder_window(NOW)
    assert window.start == NOW + timedelta(days=3, minutes=-30)
    assert window.end == NOW + timedelta(days=3, minutes=30)
    assert window.contains(NOW + timedelta(days=3))
    assert not window.contains(NOW + timedelta(days=2))


def test_planner_builds_meet_link_filter() -> None:
    store = FilterRecorder()
    WindowPlanner(store=store).due_for_meet_link(NOW)
    criteria = store.filters[0]
    assert criteria.start == NOW
    assert criteria.end == NOW + timedelta(minutes=30)
    assert criteria.statuses == (STATUS_SCHEDULED,)
    assert criteria.is_online is True
    assert criteria.is_visible is True
    assert criteria.require_empty_link is True
    assert criteria.stale_claim_before == NOW - timedelta(minutes=15)


def test_planner_builds_reminder_filter() -> None:
    store = FilterRecorder()
    planner = WindowPlanner(store=store, reminder_tolerance=timedelta(minutes=10))
    planner.due_for_reminder(NOW)
    criteria = store.filters[0]
    assert criteria.start == NOW + timedelta(days=3, minutes=-10)
    assert criteria.end == NOW + timedelta(days=3, minutes=10)
    assert criteria.statuses == (STATUS_SCHEDULED, STATUS_CONFIRMED)
    assert criteria.is_online is None
    assert criteria.require_empty_link is False
