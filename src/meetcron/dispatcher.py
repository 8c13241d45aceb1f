"""Summary: Tick dispatcher running the meet-link and reminder tasks.

Importance: Entry point for each externally triggered tick; isolates failures per task and per record.
Alternatives: Run each task as its own scheduled function.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Callable

from meetcron.config import AppConfig
from meetcron.credentials import CredentialManager
from meetcron.errors import (
    ExternalAPIError,
    NoConferenceLinkError,
    NoCredentialError,
    PersistError,
    QueryError,
)
from meetcron.models import (
    REASON_DEADLINE,
    REASON_EXTERNAL_API,
    REASON_NO_CONFERENCE_LINK,
    REASON_NO_CREDENTIAL,
    REASON_PERSIST,
    REASON_UNEXPECTED,
    TASK_MEET_LINK,
    TASK_REMINDER,
    Appointment,
    FailureRecord,
    Participant,
    TaskResult,
    TickResult,
)
from meetcron.orchestrator import ResourceOrchestrator
from meetcron.reporter import log_tick_result
from meetcron.storage.repository import AppointmentRepository, make_claim_token
from meetcron.windows import WindowPlanner


logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
SKIPPED = "skipped"
FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ItemOutcome:
    """Outcome of one unit of work (an appointment, or one reminder participant)."""

    kind: str
    failure: FailureRecord | None = None

    @staticmethod
    def failed(
        appointment_id: str, reason: str, user_id: str | None = None, detail: str | None = None
    ) -> "ItemOutcome":
        return ItemOutcome(FAILED, FailureRecord(appointment_id, reason, user_id, detail))


@dataclass(frozen=True)
class TickDispatcher:
    """Summary: Runs both tasks of a tick under a deadline with bounded fan-out.

    Importance: Only configuration errors and unexpected top-level failures escape a tick.
    Alternatives: Process appointments sequentially without a deadline.
    """

    config: AppConfig
    store: AppointmentRepository
    planner: WindowPlanner
    credentials: CredentialManager
    orchestrator: ResourceOrchestrator
    clock: Callable[[], datetime] = field(default=utcnow)

    def run_tick(self, now: datetime | None = None) -> TickResult:
        """Summary: Execute one tick and return its summary.

        Importance: The two tasks run concurrently and neither can abort the other.
        Alternatives: Run the tasks one after another in the same thread.
        """

        self.config.validate()
        now = now or self.clock()
        started = time.monotonic()
        deadline = started + self.config.tick_timeout_seconds
        result = TickResult(
            started_at=now,
            meet_link=TaskResult(name=TASK_MEET_LINK),
            reminder=TaskResult(name=TASK_REMINDER),
        )
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="meetcron-task") as executor:
            tasks = [
                executor.submit(self._run_meet_link_task, now, deadline, result.meet_link),
                executor.submit(self._run_reminder_task, now, deadline, result.reminder),
            ]
            for task in tasks:
                task.result()
        result.execution_ms = int((time.monotonic() - started) * 1000)
        log_tick_result(result)
        return result

    def _run_meet_link_task(self, now: datetime, deadline: float, task: TaskResult) -> None:
        try:
            appointments = self.planner.due_for_meet_link(now)
        except QueryError as exc:
            logger.error("Meet-link query failed: %s", exc)
            task.error = str(exc)
            return
        except Exception as exc:
            logger.exception("Meet-link task aborted.")
            task.error = str(exc)
            return
        task.found = len(appointments)
        self._fan_out(appointments, self.process_meet_link, task, deadline)

    def _run_reminder_task(self, now: datetime, deadline: float, task: TaskResult) -> None:
        try:
            appointments = self.planner.due_for_reminder(now)
        except QueryError as exc:
            logger.error("Reminder query failed: %s", exc)
            task.error = str(exc)
            return
        except Exception as exc:
            logger.exception("Reminder task aborted.")
            task.error = str(exc)
            return
        task.found = len(appointments)
        self._fan_out(appointments, self.process_reminder, task, deadline)

    def _fan_out(
        self,
        appointments: list[Appointment],
        worker: Callable[[Appointment], list[ItemOutcome]],
        task: TaskResult,
        deadline: float,
    ) -> None:
        """Summary: Process appointments on a bounded pool, abandoning work at the deadline.

        Importance: Bounded workers respect provider rate limits; a slow call cannot stall the tick.
        Alternatives: Use asyncio with a semaphore.
        """

        if not appointments:
            return
        executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix=f"meetcron-{task.name}"
        )
        futures: dict[Future[list[ItemOutcome]], Appointment] = {
            executor.submit(worker, appointment): appointment for appointment in appointments
        }
        try:
            _, pending = wait(futures, timeout=max(0.0, deadline - time.monotonic()))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        for future, appointment in futures.items():
            if future in pending:
                logger.warning(
                    "Abandoned %s work for appointment %s at the tick deadline.",
                    task.name,
                    appointment.id,
                )
                task.record_failure(FailureRecord(appointment.id, REASON_DEADLINE))
                continue
            try:
                outcomes = future.result()
            except Exception as exc:
                logger.exception(
                    "Unexpected %s failure for appointment %s.", task.name, appointment.id
                )
                outcomes = [ItemOutcome.failed(appointment.id, REASON_UNEXPECTED, detail=str(exc))]
            for outcome in outcomes:
                if outcome.kind == SUCCEEDED:
                    task.record_success()
                elif outcome.kind == SKIPPED:
                    task.record_skip()
                elif outcome.failure is not None:
                    task.record_failure(outcome.failure)

    def process_meet_link(self, appointment: Appointment) -> list[ItemOutcome]:
        """Summary: Claim, create, and persist a conference link for one appointment.

        Importance: The claim closes the race between overlapping ticks; failures release it.
        Alternatives: Rely on the empty-link filter alone.
        """

        claim = make_claim_token(self.clock())
        try:
            claimed = self.store.swap_meeting_link(
                appointment.id, appointment.meeting_link or None, claim
            )
        except PersistError as exc:
            return [ItemOutcome.failed(appointment.id, REASON_PERSIST, detail=str(exc))]
        if not claimed:
            logger.info("Appointment %s already claimed by another tick.", appointment.id)
            return [ItemOutcome(SKIPPED)]
        try:
            token = self.credentials.require_token(appointment.staff_id)
            link = self.orchestrator.create_conference_link(appointment, token)
        except NoCredentialError as exc:
            reason, user_id, detail = REASON_NO_CREDENTIAL, exc.user_id, str(exc)
        except NoConferenceLinkError as exc:
            reason, user_id, detail = REASON_NO_CONFERENCE_LINK, None, str(exc)
        except ExternalAPIError as exc:
            logger.warning("Meet link for appointment %s failed: %s", appointment.id, exc)
            reason, user_id, detail = REASON_EXTERNAL_API, None, str(exc)
        except Exception as exc:
            logger.exception("Unexpected meet-link failure for appointment %s.", appointment.id)
            reason, user_id, detail = REASON_UNEXPECTED, None, str(exc)
        else:
            return [self._persist_link(appointment, claim, link)]
        self._release_claim(appointment.id, claim)
        return [ItemOutcome.failed(appointment.id, reason, user_id, detail)]

    def process_reminder(self, appointment: Appointment) -> list[ItemOutcome]:
        """Summary: Create reminders for both participants of one appointment.

        Importance: Each participant is claimed, resolved, and created independently.
        Alternatives: Treat the appointment as a single unit of success or failure.
        """

        outcomes: list[ItemOutcome] = []
        participant_tokens: list[tuple[Participant, str | None]] = []
        for participant in appointment.participants():
            try:
                if not self.store.claim_reminder(appointment.id, participant.user_id):
                    outcomes.append(ItemOutcome(SKIPPED))
                    continue
            except PersistError as exc:
                outcomes.append(
                    ItemOutcome.failed(
                        appointment.id, REASON_PERSIST, participant.user_id, str(exc)
                    )
                )
                continue
            try:
                token = self.credentials.resolve_token(participant.user_id)
            except ExternalAPIError as exc:
                logger.warning(
                    "Token for user %s unavailable on appointment %s: %s",
                    participant.user_id,
                    appointment.id,
                    exc,
                )
                self._release_reminder(appointment.id, participant.user_id)
                outcomes.append(
                    ItemOutcome.failed(
                        appointment.id, REASON_EXTERNAL_API, participant.user_id, str(exc)
                    )
                )
                continue
            except Exception as exc:
                logger.exception(
                    "Token resolution failed for user %s on appointment %s.",
                    participant.user_id,
                    appointment.id,
                )
                self._release_reminder(appointment.id, participant.user_id)
                outcomes.append(
                    ItemOutcome.failed(
                        appointment.id, REASON_UNEXPECTED, participant.user_id, str(exc)
                    )
                )
                continue
            participant_tokens.append((participant, token))
        for reminder in self.orchestrator.create_reminder(appointment, participant_tokens):
            if reminder.created:
                outcomes.append(ItemOutcome(SUCCEEDED))
                continue
            self._release_reminder(appointment.id, reminder.participant.user_id)
            outcomes.append(
                ItemOutcome.failed(
                    appointment.id,
                    reminder.reason or REASON_UNEXPECTED,
                    reminder.participant.user_id,
                    reminder.detail,
                )
            )
        return outcomes

    def _persist_link(self, appointment: Appointment, claim: str, link: str) -> ItemOutcome:
        try:
            saved = self.store.swap_meeting_link(appointment.id, claim, link)
        except PersistError as exc:
            # The claim stays in place until it expires, delaying any duplicate conference.
            logger.error(
                "Conference created for appointment %s but the link was not saved: %s",
                appointment.id,
                exc,
            )
            return ItemOutcome.failed(appointment.id, REASON_PERSIST, detail=str(exc))
        if not saved:
            # Another tick took over the expired claim; its link wins.
            logger.warning(
                "Claim on appointment %s expired before its link was saved; discarding %s.",
                appointment.id,
                link,
            )
            return ItemOutcome.failed(
                appointment.id, REASON_PERSIST, detail="claim lost before the link was saved"
            )
        logger.info("Saved meeting link for appointment %s.", appointment.id)
        return ItemOutcome(SUCCEEDED)

    def _release_claim(self, appointment_id: str, claim: str) -> None:
        try:
            released = self.store.swap_meeting_link(appointment_id, claim, None)
        except PersistError as exc:
            logger.warning("Could not release claim on appointment %s: %s", appointment_id, exc)
            return
        if not released:
            logger.info("Claim on appointment %s was already taken over.", appointment_id)

    def _release_reminder(self, appointment_id: str, user_id: str) -> None:
        try:
            self.store.release_reminder(appointment_id, user_id)
        except PersistError as exc:
            logger.warning(
                "Could not release reminder marker for %s/%s: %s", appointment_id, user_id, exc
            )
