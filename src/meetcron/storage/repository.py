"""Summary: Store interface consumed by the MeetCron core.

Importance: Makes the appointment, credential, and identity surface explicit so each backing store gets one adapter.
Alternatives: Pass a loosely typed database client into every component.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from meetcron.models import Appointment, AppointmentFilter, Credential


CLAIM_PREFIX = "claim:"


def make_claim_token(now: datetime) -> str:
    """Summary: Build the sentinel written into meeting_link while a tick works on it.

    Importance: Encodes the claim time so stale claims can expire lexicographically.
    Alternatives: Keep claims in a separate lock table.
    """

    return CLAIM_PREFIX + format_timestamp(now)


def is_claim(meeting_link: str | None) -> bool:
    return bool(meeting_link) and meeting_link.startswith(CLAIM_PREFIX)


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as fixed-width UTC ISO text so string order matches time order."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class AppointmentRepository(ABC):
    """Summary: Abstract store for appointments, credentials, and reminder markers.

    Importance: The only mutable shared state a tick touches lives behind this interface.
    Alternatives: Split into separate appointment and credential repositories.
    """

    @abstractmethod
    def query_appointments(self, criteria: AppointmentFilter) -> list[Appointment]:
        """Summary: Return appointments matching a due-window filter.

        Importance: Feeds both the meet-link and reminder tasks.
        Alternatives: Return every appointment and filter in memory.
        """

    @abstractmethod
    def update_appointment(self, appointment_id: str, fields: dict[str, Any]) -> None:
        """Summary: Apply a single-row, last-writer-wins update.

        Importance: Persists the final meeting link or releases a claim.
        Alternatives: Replace the whole appointment record.
        """

    @abstractmethod
    def swap_meeting_link(
        self, appointment_id: str, expected: str | None, value: str | None
    ) -> bool:
        """Summary: Compare-and-set meeting_link from an observed value to a new one.

        Importance: Claims, saved links, and releases only land while the caller still holds the row.
        Alternatives: Hold a process-wide lock around the meet-link task.
        """

    @abstractmethod
    def get_credential(self, user_id: str) -> Credential | None:
        """Return the stored credential for a user, or None."""

    @abstractmethod
    def update_credential(self, user_id: str, fields: dict[str, Any]) -> None:
        """Summary: Persist a credential transition immediately.

        Importance: Later ticks must see refreshed tokens and invalidations.
        Alternatives: Batch credential writes at the end of a tick.
        """

    @abstractmethod
    def get_user_email(self, user_id: str) -> str | None:
        """Return the email address of a user, or None when unknown."""

    @abstractmethod
    def claim_reminder(self, appointment_id: str, user_id: str) -> bool:
        """Summary: Insert the reminder sent-marker if absent.

        Importance: Prevents repeat reminders across ticks that overlap the reminder window.
        Alternatives: Rely on a window tolerance narrower than the tick interval.
        """

    @abstractmethod
    def release_reminder(self, appointment_id: str, user_id: str) -> None:
        """Remove a sent-marker after a failed attempt so a later tick can retry."""

    @abstractmethod
    def save_credential(self, credential: Credential) -> None:
        """Summary: Insert or replace a user's credential.

        Importance: Entry point for tokens obtained by the out-of-band consent flow.
        Alternatives: Write credentials directly into the backing store.
        """
