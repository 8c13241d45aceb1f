"""Summary: Tests for conference and reminder orchestration.

Importance: Ensures event shapes are correct and participant failures stay independent.
Alternatives: Inspect events only through full ticks.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from meetcron.calendar import CalendarProvider
from meetcron.errors import ExternalAPIError, NoConferenceLinkError, TokenRefreshError
from meetcron.models import (
    REASON_EXTERNAL_API,
    REASON_NO_CREDENTIAL,
    ROLE_PATIENT,
    ROLE_STAFF,
    STATUS_SCHEDULED,
    Appointment,
    EventResult,
    EventSpec,
    Participant,
)
from meetcron.oauth import OAuthTokenResult
from meetcron.orchestrator import ResourceOrchestrator
from meetcron.storage.sqlite_store import SqliteStore


MEETING = datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)
PATIENT = Participant("pat", "Pat Patient", ROLE_PATIENT)
STAFF = Participant("doc", "Dr. Doc", ROLE_STAFF)


class RecordingCalendar(CalendarProvider):
    """Calendar that records events and fails for selected tokens."""

    def __init__(self, failing: set[str] | None = None, with_conference: bool = True) -> None:
        self.failing = failing or set()
        self.with_conference = with_conference
        self.events: list[tuple[str, EventSpec]] = []

    def probe(self, access_token: str) -> bool:
        return True

    def create_event(self, access_token: str, spec: EventSpec) -> EventResult:
        if access_token in self.failing:
            raise ExternalAPIError("Calendar API request failed (403): rate limited")
        self.events.append((access_token, spec))
        uri = None
        if spec.conference_request_id and self.with_conference:
            uri = "https://meet.google.com/abc-defg-hij"
        return EventResult(event_id=f"evt-{len(self.events)}", conference_uri=uri)

    def refresh_token(self, refresh_token: str) -> OAuthTokenResult:
        raise TokenRefreshError("not supported")


def _store(tmp_path: Path, with_emails: bool = True) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    store.save_user("pat", "Pat Patient", "pat@example.com" if with_emails else "")
    store.save_user("doc", "Dr. Doc", "doc@example.com")
    return store


def _appointment() -> Appointment:
    return Appointment(
        id="a1",
        meeting_date=MEETING,
        duration=45,
        is_online=True,
        is_visible=True,
        status=STATUS_SCHEDULED,
        meeting_link=None,
        patient_id="pat",
        staff_id="doc",
        content="Bring your lab results.",
        patient=PATIENT,
        staff=STAFF,
    )


def test_conference_link_invites_both_participants(tmp_path: Path) -> None:
    calendar = RecordingCalendar()
    orchestrator = ResourceOrchestrator(store=_store(tmp_path), calendar=calendar)
    link = orchestrator.create_conference_link(_appointment(), "doc-token")
    assert link == "https://meet.google.com/abc-defg-hij"
    token, spec = calendar.events[0]
    assert token == "doc-token"
    assert spec.attendees == ("pat@example.com", "doc@example.com")
    assert spec.conference_request_id == "appointment-a1"
    assert spec.start == MEETING
    assert spec.end == MEETING + timedelta(minutes=45)
    assert "Pat Patient" in spec.summary


def test_conference_link_requires_emails(tmp_path: Path) -> None:
    calendar = RecordingCalendar()
    orchestrator = ResourceOrchestrator(
        store=_store(tmp_path, with_emails=False), calendar=calendar
    )
    with pytest.raises(ExternalAPIError):
        orchestrator.create_conference_link(_appointment(), "doc-token")
    assert calendar.events == []


def test_conference_without_entry_point_raises(tmp_path: Path) -> None:
    orchestrator = ResourceOrchestrator(
        store=_store(tmp_path), calendar=RecordingCalendar(with_conference=False)
    )
    with pytest.raises(NoConferenceLinkError):
        orchestrator.create_conference_link(_appointment(), "doc-token")


def test_reminder_event_is_placed_lead_days_before(tmp_path: Path) -> None:
    calendar = RecordingCalendar()
    orchestrator = ResourceOrchestrator(
        store=_store(tmp_path), calendar=calendar, timezone="Europe/Berlin"
    )
    event_id = orchestrator.create_reminder_event(_appointment(), PATIENT, "pat-token")
    assert event_id == "evt-1"
    _, spec = calendar.events[0]
    assert spec.start == MEETING - timedelta(days=3)
    assert spec.end == spec.start + timedelta(minutes=15)
    assert spec.timezone == "Europe/Berlin"
    assert spec.reminder_minutes == (("popup", 0), ("email", 0))
    assert spec.summary == "Reminder: appointment with Dr. Doc in 3 days"
    assert spec.conference_request_id is None
    assert "Bring your lab results." in spec.description


def test_reminder_failure_for_one_participant_does_not_block_other(tmp_path: Path) -> None:
    """Summary: Verify participant A failing still lets participant B's reminder be created.

    Importance: Reminder delivery is per participant, not per appointment.
    Alternatives: Abort both reminders on the first failure.
    """

    calendar = RecordingCalendar(failing={"pat-token"})
    orchestrator = ResourceOrchestrator(store=_store(tmp_path), calendar=calendar)
    outcomes = orchestrator.create_reminder(
        _appointment(), [(PATIENT, "pat-token"), (STAFF, "doc-token")]
    )
    assert [outcome.created for outcome in outcomes] == [False, True]
    assert outcomes[0].reason == REASON_EXTERNAL_API
    assert outcomes[1].event_id == "evt-1"
    assert calendar.events[0][0] == "doc-token"
    assert calendar.events[0][1].summary == "Reminder: appointment with Pat Patient in 3 days"


def test_reminder_without_token_is_not_attempted(tmp_path: Path) -> None:
    calendar = RecordingCalendar()
    orchestrator = ResourceOrchestrator(store=_store(tmp_path), calendar=calendar)
    outcomes = orchestrator.create_reminder(_appointment(), [(PATIENT, None), (STAFF, None)])
    assert [outcome.reason for outcome in outcomes] == [REASON_NO_CREDENTIAL] * 2
    assert calendar.events == []
