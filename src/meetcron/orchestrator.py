"""Summary: External resource orchestration for conference links and reminders.

Importance: Turns due appointments into calendar events through the provider collaborator.
Alternatives: Call the calendar API directly from the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import logging

from meetcron.calendar import CalendarProvider
from meetcron.errors import ExternalAPIError, NoConferenceLinkError
from meetcron.models import (
    REASON_EXTERNAL_API,
    REASON_NO_CREDENTIAL,
    REASON_UNEXPECTED,
    ROLE_STAFF,
    Appointment,
    EventSpec,
    Participant,
    ReminderOutcome,
)
from meetcron.storage.repository import AppointmentRepository


logger = logging.getLogger(__name__)

REMINDER_DURATION = timedelta(minutes=15)
REMINDER_ALERTS = (("popup", 0), ("email", 0))


@dataclass(frozen=True)
class ResourceOrchestrator:
    """Summary: Creates conference events and reminder events on behalf of participants.

    Importance: Encapsulates event shapes so the dispatcher only handles state and failures.
    Alternatives: Build provider payloads inside each task.
    """

    store: AppointmentRepository
    calendar: CalendarProvider
    timezone: str = "UTC"
    reminder_lead: timedelta = timedelta(days=3)

    def create_conference_link(self, appointment: Appointment, organizer_token: str) -> str:
        """Summary: Create an event with a Meet conference and return its entry-point URI.

        Importance: The staff participant's token organizes the event and both participants attend.
        Alternatives: Generate placeholder links without calling the provider.
        """

        patient_email = self.store.get_user_email(appointment.patient_id)
        staff_email = self.store.get_user_email(appointment.staff_id)
        if not patient_email or not staff_email:
            raise ExternalAPIError(
                f"Missing email addresses for appointment {appointment.id} participants"
            )
        spec = EventSpec(
            summary=_conference_summary(appointment),
            description=appointment.content,
            start=appointment.meeting_date,
            end=appointment.meeting_end,
            timezone=self.timezone,
            attendees=(patient_email, staff_email),
            conference_request_id=f"appointment-{appointment.id}",
        )
        result = self.calendar.create_event(organizer_token, spec)
        if not result.conference_uri:
            raise NoConferenceLinkError(
                f"Event {result.event_id} for appointment {appointment.id} has no conference link"
            )
        logger.info(
            "Created conference event %s for appointment %s.", result.event_id, appointment.id
        )
        return result.conference_uri

    def create_reminder(
        self,
        appointment: Appointment,
        participant_tokens: list[tuple[Participant, str | None]],
    ) -> list[ReminderOutcome]:
        """Summary: Create a reminder event in each participant's calendar independently.

        Importance: A failure or missing token for one participant never blocks the other.
        Alternatives: Create a single shared event with both participants as attendees.
        """

        outcomes: list[ReminderOutcome] = []
        for participant, token in participant_tokens:
            if token is None:
                outcomes.append(
                    ReminderOutcome(
                        participant=participant, created=False, reason=REASON_NO_CREDENTIAL
                    )
                )
                continue
            try:
                event_id = self.create_reminder_event(appointment, participant, token)
            except ExternalAPIError as exc:
                logger.warning(
                    "Reminder for %s %s on appointment %s failed: %s",
                    participant.role,
                    participant.user_id,
                    appointment.id,
                    exc,
                )
                outcomes.append(
                    ReminderOutcome(
                        participant=participant,
                        created=False,
                        reason=REASON_EXTERNAL_API,
                        detail=str(exc),
                    )
                )
            except Exception as exc:
                logger.exception(
                    "Unexpected reminder failure for user %s on appointment %s.",
                    participant.user_id,
                    appointment.id,
                )
                outcomes.append(
                    ReminderOutcome(
                        participant=participant,
                        created=False,
                        reason=REASON_UNEXPECTED,
                        detail=str(exc),
                    )
                )
            else:
                outcomes.append(
                    ReminderOutcome(participant=participant, created=True, event_id=event_id)
                )
        return outcomes

    def create_reminder_event(
        self, appointment: Appointment, participant: Participant, access_token: str
    ) -> str:
        """Summary: Create one 15-minute placeholder event lead days before the meeting.

        Importance: Immediate popup and email alerts make the reminder fire when it appears.
        Alternatives: Rely on the calendar's default reminders.
        """

        start = appointment.meeting_date - self.reminder_lead
        spec = EventSpec(
            summary=_reminder_summary(appointment, participant, self.reminder_lead.days),
            description=_reminder_description(appointment),
            start=start,
            end=start + REMINDER_DURATION,
            timezone=self.timezone,
            reminder_minutes=REMINDER_ALERTS,
        )
        result = self.calendar.create_event(access_token, spec)
        logger.info(
            "Created reminder event %s for user %s on appointment %s.",
            result.event_id,
            participant.user_id,
            appointment.id,
        )
        return result.event_id


def _conference_summary(appointment: Appointment) -> str:
    patient = appointment.patient.full_name if appointment.patient else ""
    staff = appointment.staff.full_name if appointment.staff else ""
    names = " & ".join(name for name in (patient, staff) if name)
    return f"Online appointment: {names}" if names else "Online appointment"


def _reminder_summary(appointment: Appointment, participant: Participant, days: int) -> str:
    if participant.role == ROLE_STAFF:
        other = appointment.patient.full_name if appointment.patient else ""
    else:
        other = appointment.staff.full_name if appointment.staff else ""
    if other:
        return f"Reminder: appointment with {other} in {days} days"
    return f"Reminder: appointment in {days} days"


def _reminder_description(appointment: Appointment) -> str:
    when = appointment.meeting_date.strftime("%b %d, %Y - %H:%M %Z").strip()
    lines = [f"Your appointment is scheduled for {when} ({appointment.duration} minutes)."]
    if appointment.is_online:
        lines.append("A video link will be added shortly before the appointment starts.")
    if appointment.content:
        lines.append(appointment.content)
    return "\n".join(lines)
