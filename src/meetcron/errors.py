"""Summary: Exception taxonomy for MeetCron ticks.

Importance: Lets the dispatcher decide which failures abort a tick and which are folded into counts.
Alternatives: Raise built-in exceptions and inspect messages at the call site.
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for all MeetCron domain errors."""


class ConfigError(SchedulerError):
    """Summary: Required configuration is missing or malformed.

    Importance: Fatal; aborts the tick before any task runs.
    Alternatives: Fall back to defaults and fail later at the provider.
    """


class QueryError(SchedulerError):
    """Summary: The store could not be read while fetching a due window.

    Importance: Aborts only the affected task so the other task still runs.
    Alternatives: Treat every store failure as fatal to the tick.
    """


class NoCredentialError(SchedulerError):
    """No usable OAuth token exists for a participant."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No usable credential for user {user_id}")
        self.user_id = user_id


class TokenRefreshError(SchedulerError):
    """Summary: A refresh request did not yield a new access token.

    Importance: Only a permanent rejection (invalid_grant) invalidates the stored credential.
    Alternatives: Invalidate on every refresh failure, including outages.
    """

    def __init__(self, message: str, permanent: bool = True) -> None:
        super().__init__(message)
        self.permanent = permanent


class ExternalAPIError(SchedulerError):
    """Summary: The calendar provider failed to create a resource.

    Importance: Skips the affected appointment without an in-tick retry.
    Alternatives: Retry with backoff inside the same tick.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NoConferenceLinkError(ExternalAPIError):
    """The created event carried no video conference entry point."""


class PersistError(SchedulerError):
    """A write back to the store (meeting link, credential, marker) failed."""
