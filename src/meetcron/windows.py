"""Summary: Time-window planning for due appointments.

Importance: Decides which appointments each task should act on for a given instant.
Alternatives: Let each task build its own store query inline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from meetcron.config import AppConfig
from meetcron.models import STATUS_CONFIRMED, STATUS_SCHEDULED, Appointment, AppointmentFilter
from meetcron.storage.repository import AppointmentRepository


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeWindow:
    """Closed interval of instants, both ends inclusive."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


def meet_link_window(now: datetime, horizon: timedelta = timedelta(minutes=30)) -> TimeWindow:
    """Summary: Window of appointments starting within the next horizon.

    Importance: Conference links are created shortly before an appointment begins.
    Alternatives: Create links at booking time.
    """

    return TimeWindow(start=now, end=now + horizon)


def reminder_window(
    now: datetime,
    lead: timedelta = timedelta(days=3),
    tolerance: timedelta = timedelta(minutes=30),
) -> TimeWindow:
    """Summary: Window centered on now + lead with a symmetric tolerance.

    Importance: Selects appointments whose reminder date has arrived on this tick.
    Alternatives: Select everything within lead and dedupe only by marker.
    """

    center = now + lead
    return TimeWindow(start=center - tolerance, end=center + tolerance)


@dataclass(frozen=True)
class WindowPlanner:
    """Summary: Computes due windows and fetches matching appointments from the store.

    Importance: Keeps the selection rules for both tasks in one place.
    Alternatives: Encode the rules as database views.
    """

    store: AppointmentRepository
    meet_link_horizon: timedelta = timedelta(minutes=30)
    reminder_lead: timedelta = timedelta(days=3)
    reminder_tolerance: timedelta = timedelta(minutes=30)
    reminder_statuses: tuple[str, ...] = (STATUS_SCHEDULED, STATUS_CONFIRMED)
    claim_ttl: timedelta = timedelta(minutes=15)

    @staticmethod
    def from_config(store: AppointmentRepository, config: AppConfig) -> "WindowPlanner":
        return WindowPlanner(
            store=store,
            meet_link_horizon=timedelta(minutes=config.meet_link_horizon_minutes),
            reminder_lead=timedelta(days=config.reminder_lead_days),
            reminder_tolerance=timedelta(minutes=config.reminder_tolerance_minutes),
            reminder_statuses=tuple(config.reminder_statuses),
            claim_ttl=timedelta(minutes=config.claim_ttl_minutes),
        )

    def due_for_meet_link(self, now: datetime) -> list[Appointment]:
        """Summary: Fetch online, visible, scheduled appointments without a link.

        Importance: The empty-link filter is what keeps processed appointments out of later ticks.
        Alternatives: Track processed ids in memory between ticks.
        """

        window = meet_link_window(now, self.meet_link_horizon)
        criteria = AppointmentFilter(
            start=window.start,
            end=window.end,
            statuses=(STATUS_SCHEDULED,),
            is_visible=True,
            is_online=True,
            require_empty_link=True,
            stale_claim_before=now - self.claim_ttl,
        )
        appointments = self.store.query_appointments(criteria)
        logger.info(
            "Found %s appointments needing meeting links between %s and %s.",
            len(appointments),
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return appointments

    def due_for_reminder(self, now: datetime) -> list[Appointment]:
        """Summary: Fetch visible appointments whose reminder date falls on this tick.

        Importance: Reminders land in calendars exactly lead days before the meeting.
        Alternatives: Create reminders at booking time.
        """

        window = reminder_window(now, self.reminder_lead, self.reminder_tolerance)
        criteria = AppointmentFilter(
            start=window.start,
            end=window.end,
            statuses=self.reminder_statuses,
            is_visible=True,
        )
        appointments = self.store.query_appointments(criteria)
        logger.info(
            "Found %s appointments needing reminders between %s and %s.",
            len(appointments),
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return appointments
