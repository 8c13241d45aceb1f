"""Summary: Domain model dataclasses for MeetCron.

Importance: Defines the appointment, credential, event, and tick-summary shapes shared across components.
Alternatives: Use Pydantic models or pass raw store rows around.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta


STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_IN_PROGRESS = "in progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELED = "canceled"
STATUS_NO_SHOW = "no show"

CREDENTIAL_VALID = "valid"
CREDENTIAL_INVALID = "invalid"

ROLE_PATIENT = "patient"
ROLE_STAFF = "staff"

TASK_MEET_LINK = "meet_link"
TASK_REMINDER = "reminder"

REASON_NO_CREDENTIAL = "NoCredential"
REASON_NO_CONFERENCE_LINK = "NoConferenceLink"
REASON_EXTERNAL_API = "ExternalAPIError"
REASON_PERSIST = "PersistError"
REASON_DEADLINE = "DeadlineExceeded"
REASON_UNEXPECTED = "UnexpectedError"


@dataclass(frozen=True)
class Participant:
    """Summary: Minimal identity projection of an appointment participant.

    Importance: Carries only what downstream steps need (id, name, role).
    Alternatives: Load full user profiles for every appointment.
    """

    user_id: str
    full_name: str
    role: str


@dataclass(frozen=True)
class Appointment:
    """Summary: Represents a scheduled appointment read from the store.

    Importance: Core unit selected by the due windows and mutated via its meeting link.
    Alternatives: Work directly with store rows as dictionaries.
    """

    id: str
    meeting_date: datetime
    duration: int
    is_online: bool
    is_visible: bool
    status: str
    meeting_link: str | None
    patient_id: str
    staff_id: str
    content: str = ""
    patient: Participant | None = None
    staff: Participant | None = None

    @property
    def meeting_end(self) -> datetime:
        return self.meeting_date + timedelta(minutes=self.duration)

    def participants(self) -> list[Participant]:
        """Summary: Return both participants, filling in bare projections when absent.

        Importance: Reminder creation treats patient and staff symmetrically.
        Alternatives: Require the store to always populate projections.
        """

        patient = self.patient or Participant(self.patient_id, "", ROLE_PATIENT)
        staff = self.staff or Participant(self.staff_id, "", ROLE_STAFF)
        return [patient, staff]


@dataclass(frozen=True)
class Credential:
    """Summary: Stored OAuth credential for one user.

    Importance: Drives the valid/invalid lifecycle evaluated on every tick.
    Alternatives: Keep only a refresh token and always refresh.
    """

    user_id: str
    access_token: str
    refresh_token: str | None
    status: str = CREDENTIAL_VALID
    updated_at: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == CREDENTIAL_VALID


@dataclass(frozen=True)
class AppointmentFilter:
    """Summary: Typed selection criteria for a due window query.

    Importance: Keeps the store interface explicit instead of passing query fragments.
    Alternatives: Expose a query builder from the store client.
    """

    start: datetime
    end: datetime
    statuses: tuple[str, ...]
    is_visible: bool = True
    is_online: bool | None = None
    require_empty_link: bool = False
    stale_claim_before: datetime | None = None


@dataclass(frozen=True)
class EventSpec:
    """Summary: Provider-neutral description of a calendar event to create.

    Importance: Lets the orchestrator build events without knowing the provider payload.
    Alternatives: Build provider JSON directly in the orchestrator.
    """

    summary: str
    description: str
    start: datetime
    end: datetime
    timezone: str = "UTC"
    attendees: tuple[str, ...] = ()
    conference_request_id: str | None = None
    reminder_minutes: tuple[tuple[str, int], ...] = ()


@dataclass(frozen=True)
class EventResult:
    """Summary: Provider answer for a created event.

    Importance: Exposes the event id and, for conferences, the entry-point URI.
    Alternatives: Return the raw provider payload.
    """

    event_id: str
    html_link: str | None = None
    conference_uri: str | None = None


@dataclass(frozen=True)
class ReminderOutcome:
    """Result of one participant's reminder attempt."""

    participant: Participant
    created: bool
    event_id: str | None = None
    reason: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class FailureRecord:
    """Summary: One per-record failure captured during a tick.

    Importance: Reasons reach the logs while the caller only sees counts.
    Alternatives: Log failures inline and keep no record.
    """

    appointment_id: str
    reason: str
    user_id: str | None = None
    detail: str | None = None


@dataclass
class TaskResult:
    """Summary: Counts and failures for one task within a tick.

    Importance: Aggregates per-record outcomes into a summary for the reporter.
    Alternatives: Return only a success flag per task.
    """

    name: str
    found: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[FailureRecord] = field(default_factory=list)
    error: str | None = None

    def record_success(self) -> None:
        self.succeeded += 1

    def record_skip(self) -> None:
        self.skipped += 1

    def record_failure(self, failure: FailureRecord) -> None:
        self.failed += 1
        self.failures.append(failure)


@dataclass
class TickResult:
    """Summary: Ephemeral summary of one tick.

    Importance: Returned to the trigger caller and logged, never stored.
    Alternatives: Persist a tick audit row per invocation.
    """

    started_at: datetime
    meet_link: TaskResult
    reminder: TaskResult
    execution_ms: int = 0

    @property
    def tasks(self) -> list[TaskResult]:
        return [self.meet_link, self.reminder]

