"""Summary: Formatting and logging of tick summaries.

Importance: Callers see only counts while per-record reasons go to the logs.
Alternatives: Return the full failure list to the trigger caller.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from meetcron.models import TaskResult, TickResult


logger = logging.getLogger(__name__)

TASK_LABELS = {"meet_link": "meet links", "reminder": "reminders"}


def format_task(task: TaskResult) -> str:
    """Summary: Render one task's counts as a short phrase.

    Importance: Keeps the caller-facing message free of record identifiers.
    Alternatives: Return counts as structured JSON only.
    """

    label = TASK_LABELS.get(task.name, task.name)
    if task.error is not None:
        return f"{label}: task failed"
    text = f"{label}: {task.succeeded} created, {task.failed} failed of {task.found} due"
    if task.skipped:
        text += f", {task.skipped} skipped"
    return text


def format_summary(result: TickResult) -> str:
    return "; ".join(format_task(task) for task in result.tasks)


def log_tick_result(result: TickResult) -> None:
    """Summary: Log the tick summary and each failure reason.

    Importance: Detailed reasons are only ever visible to operators.
    Alternatives: Emit metrics per failure reason.
    """

    for task in result.tasks:
        if task.error is not None:
            logger.error("Task %s aborted: %s", task.name, task.error)
        for failure in task.failures:
            logger.warning(
                "Task %s failed for appointment %s (user %s): %s %s",
                task.name,
                failure.appointment_id,
                failure.user_id or "-",
                failure.reason,
                failure.detail or "",
            )
    logger.info("Tick finished in %sms: %s", result.execution_ms, format_summary(result))


def success_response(result: TickResult) -> dict[str, Any]:
    """Summary: Build the JSON body returned to the trigger caller on a completed tick.

    Importance: Matches the response contract of the trigger endpoint.
    Alternatives: Return the TickResult dataclass directly.
    """

    return {
        "success": True,
        "message": f"Tick executed successfully ({format_summary(result)})",
        "timestamp": result.started_at.isoformat(),
        "executionTime": result.execution_ms,
    }


def failure_response(error: Exception, started_at: datetime, execution_ms: int) -> dict[str, Any]:
    """Build the JSON body for a fatal tick failure."""

    return {
        "success": False,
        "message": "Tick failed",
        "timestamp": started_at.isoformat(),
        "executionTime": execution_ms,
        "error": str(error),
    }
