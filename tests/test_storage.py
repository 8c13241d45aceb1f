"""Summary: Tests for the SQLite storage layer.

Importance: Ensures window filters, claims, credentials, and reminder markers persist as expected.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from meetcron.errors import PersistError
from meetcron.models import (
    CREDENTIAL_INVALID,
    STATUS_CANCELED,
    STATUS_CONFIRMED,
    STATUS_SCHEDULED,
    Appointment,
    AppointmentFilter,
    Credential,
)
from meetcron.storage.repository import make_claim_token
from meetcron.storage.sqlite_store import SqliteStore


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    store.save_user("pat", "Pat Patient", "pat@example.com")
    store.save_user("doc", "Dr. Doc", "doc@example.com")
    return store


def _appointment(appointment_id: str, minutes: int, **overrides: object) -> Appointment:
    values: dict[str, object] = {
        "id": appointment_id,
        "meeting_date": NOW + timedelta(minutes=minutes),
        "duration": 30,
        "is_online": True,
        "is_visible": True,
        "status": STATUS_SCHEDULED,
        "meeting_link": None,
        "patient_id": "pat",
        "staff_id": "doc",
    }
    values.update(overrides)
    return Appointment(**values)  # type: ignore[arg-type]


def _meet_filter(stale_before: datetime | None = None) -> AppointmentFilter:
    return AppointmentFilter(
        start=NOW,
        end=NOW + timedelta(minutes=30),
        statuses=(STATUS_SCHEDULED,),
        is_online=True,
        require_empty_link=True,
        stale_claim_before=stale_before,
    )


def test_query_applies_window_and_flags(tmp_path: Path) -> None:
    """Summary: Verify only online, visible, scheduled, unlinked appointments in the window match.

    Importance: The filter is what keeps processed appointments out of later ticks.
    Alternatives: Filter appointments in memory after loading all rows.
    """

    store = _store(tmp_path)
    store.save_appointment(_appointment("due", 20))
    store.save_appointment(_appointment("edge", 30))
    store.save_appointment(_appointment("later", 45))
    store.save_appointment(_appointment("past", -5))
    store.save_appointment(_appointment("offline", 10, is_online=False))
    store.save_appointment(_appointment("hidden", 10, is_visible=False))
    store.save_appointment(_appointment("canceled", 10, status=STATUS_CANCELED))
    store.save_appointment(_appointment("linked", 10, meeting_link="https://meet.google.com/x"))
    store.save_appointment(_appointment("blank", 15, meeting_link=""))

    found = store.query_appointments(_meet_filter())
    assert [appointment.id for appointment in found] == ["blank", "due", "edge"]
    assert found[1].patient is not None and found[1].patient.full_name == "Pat Patient"
    assert found[1].staff is not None and found[1].staff.full_name == "Dr. Doc"
    assert found[1].meeting_date == NOW + timedelta(minutes=20)


def test_query_matches_multiple_statuses_regardless_of_online(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("a", 10, status=STATUS_CONFIRMED, is_online=False))
    store.save_appointment(_appointment("b", 12, meeting_link="https://meet.google.com/x"))
    store.save_appointment(_appointment("c", 14, status=STATUS_CANCELED))
    criteria = AppointmentFilter(
        start=NOW,
        end=NOW + timedelta(minutes=30),
        statuses=(STATUS_SCHEDULED, STATUS_CONFIRMED),
    )
    assert [appointment.id for appointment in store.query_appointments(criteria)] == ["a", "b"]


def test_swap_meeting_link_is_compare_and_set(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("a1", 20))
    claim = make_claim_token(NOW)
    assert store.swap_meeting_link("a1", None, claim) is True
    assert store.swap_meeting_link("a1", None, make_claim_token(NOW)) is False
    stored = store.get_appointment("a1")
    assert stored is not None and stored.meeting_link == claim
    assert store.query_appointments(_meet_filter(NOW - timedelta(minutes=15))) == []


def test_swap_only_releases_own_claim(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("a1", 20))
    old = make_claim_token(NOW - timedelta(minutes=20))
    assert store.swap_meeting_link("a1", None, old) is True
    newer = make_claim_token(NOW)
    assert store.swap_meeting_link("a1", old, newer) is True
    assert store.swap_meeting_link("a1", old, None) is False
    assert store.swap_meeting_link("a1", old, "https://meet.google.com/old") is False
    assert store.swap_meeting_link("a1", newer, "https://meet.google.com/new") is True
    stored = store.get_appointment("a1")
    assert stored is not None and stored.meeting_link == "https://meet.google.com/new"


def test_stale_claim_is_eligible_again(tmp_path: Path) -> None:
    """Summary: Verify claims older than the TTL are treated as unprocessed.

    Importance: A crashed tick must not strand an appointment without a link.
    Alternatives: Require manual cleanup of abandoned claims.
    """

    store = _store(tmp_path)
    stale = make_claim_token(NOW - timedelta(minutes=20))
    store.save_appointment(_appointment("a1", 20, meeting_link=stale))
    found = store.query_appointments(_meet_filter(NOW - timedelta(minutes=15)))
    assert [appointment.id for appointment in found] == ["a1"]
    fresh = make_claim_token(NOW)
    assert store.swap_meeting_link("a1", stale, fresh) is True
    assert store.swap_meeting_link("a1", stale, fresh) is False


def test_update_appointment_sets_link(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("a1", 20))
    store.update_appointment("a1", {"meeting_link": "https://meet.google.com/abc"})
    stored = store.get_appointment("a1")
    assert stored is not None and stored.meeting_link == "https://meet.google.com/abc"


def test_update_appointment_rejects_unknown_fields(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("a1", 20))
    with pytest.raises(PersistError):
        store.update_appointment("a1", {"patient_id": "someone-else"})


def test_credentials_persist_transitions(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.get_credential("doc") is None
    store.save_credential(Credential(user_id="doc", access_token="a", refresh_token="r"))
    store.update_credential("doc", {"access_token": "b"})
    credential = store.get_credential("doc")
    assert credential is not None
    assert credential.access_token == "b"
    assert credential.refresh_token == "r"
    assert credential.is_valid
    store.update_credential("doc", {"status": CREDENTIAL_INVALID})
    credential = store.get_credential("doc")
    assert credential is not None and not credential.is_valid


def test_update_missing_credential_raises(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(PersistError):
        store.update_credential("nobody", {"status": CREDENTIAL_INVALID})


def test_reminder_marker_is_insert_if_absent(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.claim_reminder("a1", "pat") is True
    assert store.claim_reminder("a1", "pat") is False
    assert store.claim_reminder("a1", "doc") is True
    store.release_reminder("a1", "pat")
    assert not store.has_reminder("a1", "pat")
    assert store.has_reminder("a1", "doc")
    assert store.claim_reminder("a1", "pat") is True


def test_user_email_lookup(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.get_user_email("pat") == "pat@example.com"
    assert store.get_user_email("ghost") is None


def test_list_appointments_orders_by_date(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_appointment(_appointment("late", 90))
    store.save_appointment(_appointment("early", 5))
    assert [appointment.id for appointment in store.list_appointments(10)] == ["early", "late"]
