"""Summary: Calendar provider interfaces and implementations.

Importance: Encapsulates token probing, event creation, and token refresh against calendar services.
Alternatives: Use provider SDKs directly without a shared abstraction.
"""

from __future__ import annotations

import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from meetcron.config import AppConfig
from meetcron.errors import ExternalAPIError
from meetcron.models import EventResult, EventSpec
from meetcron.oauth import OAuthTokenResult, refresh_oauth_token


logger = logging.getLogger(__name__)

TOKEN_REJECTED_STATUSES = frozenset({401, 403})


class CalendarProvider(ABC):
    """Summary: Abstract interface for the calendar collaborator.

    Importance: Standardizes probe, create, and refresh across mocked and real providers.
    Alternatives: Couple orchestration to a single calendar API.
    """

    @abstractmethod
    def probe(self, access_token: str) -> bool:
        """Summary: Check whether an access token is still accepted.

        Importance: Cheap read that decides whether a refresh is needed.
        Alternatives: Track expiry timestamps and refresh ahead of time.
        """

    @abstractmethod
    def create_event(self, access_token: str, spec: EventSpec) -> EventResult:
        """Summary: Create an event in the token owner's primary calendar.

        Importance: Single write used for both conference links and reminders.
        Alternatives: Expose separate conference and reminder endpoints.
        """

    @abstractmethod
    def refresh_token(self, refresh_token: str) -> OAuthTokenResult:
        """Summary: Exchange a refresh token for a new access token.

        Importance: Lets the credential manager recover from expired tokens.
        Alternatives: Refresh tokens in a background job.
        """


class GoogleCalendarProvider(CalendarProvider):
    """Summary: Google Calendar v3 provider using OAuth bearer tokens.

    Importance: Creates Meet conferences and reminder events on users' behalf.
    Alternatives: Use google-api-python-client.
    """

    def __init__(self, config: AppConfig) -> None:
        """Summary: Initialize the Google provider.

        Importance: Stores the API base URL, timeouts, and OAuth client config.
        Alternatives: Read settings from the environment on each request.
        """

        self._config = config
        self._base_url = config.google_calendar_base_url.rstrip("/")
        self._timeout = config.http_timeout_seconds

    def probe(self, access_token: str) -> bool:
        """Summary: Probe a token with a one-item calendar list read.

        Importance: Only 401 and 403 mean the token was rejected; other failures propagate.
        Alternatives: Call the tokeninfo endpoint.
        """

        url = f"{self._base_url}/users/me/calendarList?maxResults=1"
        try:
            _calendar_api_request("GET", url, access_token, None, self._timeout)
        except ExternalAPIError as exc:
            if exc.status not in TOKEN_REJECTED_STATUSES:
                raise
            logger.info("Token probe rejected: %s", exc)
            return False
        return True

    def create_event(self, access_token: str, spec: EventSpec) -> EventResult:
        """Summary: Insert an event into the primary calendar.

        Importance: Requests conference data when the event asks for one.
        Alternatives: Patch an existing event to add conference data.
        """

        params = {"sendUpdates": "all" if spec.attendees else "none"}
        if spec.conference_request_id:
            params["conferenceDataVersion"] = "1"
        url = f"{self._base_url}/calendars/primary/events?" + urllib.parse.urlencode(params)
        payload = build_event_payload(spec)
        response = _calendar_api_request("POST", url, access_token, payload, self._timeout)
        return parse_event_response(response)

    def refresh_token(self, refresh_token: str) -> OAuthTokenResult:
        return refresh_oauth_token(self._config, refresh_token)


class MockCalendarProvider(CalendarProvider):
    """Summary: In-memory provider that fabricates events and Meet links.

    Importance: Supports offline demos and dry runs without Google credentials.
    Alternatives: Point the Google provider at a local stub server.
    """

    def __init__(self) -> None:
        self.created: list[tuple[str, EventSpec]] = []

    def probe(self, access_token: str) -> bool:
        return bool(access_token)

    def create_event(self, access_token: str, spec: EventSpec) -> EventResult:
        self.created.append((access_token, spec))
        event_id = f"mock-{secrets.token_hex(6)}"
        conference_uri = None
        if spec.conference_request_id:
            code = secrets.token_hex(5)
            conference_uri = f"https://meet.google.com/{code[:3]}-{code[3:7]}-{code[7:]}"
        return EventResult(event_id=event_id, html_link=None, conference_uri=conference_uri)

    def refresh_token(self, refresh_token: str) -> OAuthTokenResult:
        access_token = f"mock-access-{secrets.token_hex(4)}"
        return OAuthTokenResult(
            access_token=access_token,
            refresh_token=None,
            expires_at=None,
            token_type="Bearer",
            raw={"access_token": access_token},
        )


def build_calendar_provider(config: AppConfig) -> CalendarProvider:
    """Summary: Select the calendar provider named by configuration.

    Importance: Keeps provider choice out of the orchestration code.
    Alternatives: Instantiate providers directly in the app factory.
    """

    if config.calendar_provider == "mock":
        return MockCalendarProvider()
    return GoogleCalendarProvider(config)


def build_event_payload(spec: EventSpec) -> dict[str, Any]:
    """Summary: Convert an EventSpec into a Google Calendar event body.

    Importance: Keeps provider payload details out of the orchestrator.
    Alternatives: Have callers pass raw JSON payloads.
    """

    payload: dict[str, Any] = {
        "summary": spec.summary,
        "description": spec.description,
        "start": {"dateTime": spec.start.isoformat(), "timeZone": spec.timezone},
        "end": {"dateTime": spec.end.isoformat(), "timeZone": spec.timezone},
    }
    if spec.attendees:
        payload["attendees"] = [{"email": email} for email in spec.attendees]
    if spec.conference_request_id:
        payload["conferenceData"] = {
            "createRequest": {
                "requestId": spec.conference_request_id,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }
    if spec.reminder_minutes:
        payload["reminders"] = {
            "useDefault": False,
            "overrides": [
                {"method": method, "minutes": minutes} for method, minutes in spec.reminder_minutes
            ],
        }
    return payload


def parse_event_response(payload: dict[str, Any]) -> EventResult:
    """Summary: Extract the event id and video entry point from a created event.

    Importance: The conference URI is what gets written back to the appointment.
    Alternatives: Fall back to the hangoutLink field only.
    """

    event_id = payload.get("id")
    if not event_id:
        raise ExternalAPIError("Calendar response did not include an event id")
    conference_uri = None
    conference_data = payload.get("conferenceData") or {}
    for entry_point in conference_data.get("entryPoints", []):
        if entry_point.get("entryPointType") == "video" and entry_point.get("uri"):
            conference_uri = entry_point["uri"]
            break
    if conference_uri is None and conference_data:
        conference_uri = payload.get("hangoutLink")
    return EventResult(
        event_id=event_id,
        html_link=payload.get("htmlLink"),
        conference_uri=conference_uri,
    )


def _calendar_api_request(
    method: str,
    url: str,
    access_token: str,
    payload: dict[str, Any] | None,
    timeout: float,
) -> dict[str, Any]:
    """Summary: Send a JSON request to the Calendar API.

    Importance: Encapsulates Calendar API calls without new dependencies.
    Alternatives: Use a third-party HTTP client or SDK.
    """

    headers = {"Authorization": f"Bearer {access_token}"}
    data = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    request = urllib.request.Request(url, data=data, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8")
        raise ExternalAPIError(
            f"Calendar API request failed ({exc.code}): {error_body or exc.reason}",
            status=exc.code,
        ) from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        raise ExternalAPIError(f"Calendar API unreachable: {exc}") from exc
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExternalAPIError("Calendar API returned invalid JSON") from exc
