"""Summary: PostgREST-backed storage implementation for MeetCron.

Importance: Lets ticks run against a hosted Postgres exposed through PostgREST and its admin auth API.
Alternatives: Connect to Postgres directly with a database driver.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from meetcron.errors import PersistError, QueryError, SchedulerError
from meetcron.models import (
    ROLE_PATIENT,
    ROLE_STAFF,
    Appointment,
    AppointmentFilter,
    Credential,
    Participant,
)
from meetcron.storage.repository import (
    CLAIM_PREFIX,
    AppointmentRepository,
    format_timestamp,
    make_claim_token,
    parse_timestamp,
)


APPOINTMENT_SELECT = (
    "appointment_id,meeting_date,duration,is_online,is_visible,status,meeting_link,"
    "patient_id,staff_id,content,"
    "patient:user_details!appointment_patient_id_fkey1(user_id,full_name),"
    "staff:user_details!appointment_staff_id_fkey1(user_id,full_name)"
)


class RestStore(AppointmentRepository):
    """Summary: Repository adapter speaking the PostgREST and admin auth HTTP APIs.

    Importance: Gives the hosted backing store the same typed surface as SQLite.
    Alternatives: Use a vendor client library.
    """

    def __init__(self, base_url: str, service_key: str, timeout: float = 10) -> None:
        """Summary: Initialize with the project URL and a privileged service key.

        Importance: The service key bypasses row-level security for scheduler writes.
        Alternatives: Use a dedicated database role per task.
        """

        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout

    def query_appointments(self, criteria: AppointmentFilter) -> list[Appointment]:
        params: list[tuple[str, str]] = [
            ("select", APPOINTMENT_SELECT),
            ("meeting_date", f"gte.{format_timestamp(criteria.start)}"),
            ("meeting_date", f"lte.{format_timestamp(criteria.end)}"),
            ("is_visible", f"eq.{str(criteria.is_visible).lower()}"),
            ("order", "meeting_date.asc"),
        ]
        if criteria.statuses:
            params.append(("status", f"in.({','.join(_quote_list(criteria.statuses))})"))
        if criteria.is_online is not None:
            params.append(("is_online", f"eq.{str(criteria.is_online).lower()}"))
        if criteria.require_empty_link:
            options = ["meeting_link.is.null", "meeting_link.eq."]
            if criteria.stale_claim_before is not None:
                stale = make_claim_token(criteria.stale_claim_before)
                options.append(
                    f'and(meeting_link.like.{CLAIM_PREFIX}*,meeting_link.lt."{stale}")'
                )
            params.append(("or", f"({','.join(options)})"))
        try:
            rows = self._request("GET", "/rest/v1/appointment", params)
        except SchedulerError as exc:
            raise QueryError(f"Appointment query failed: {exc}") from exc
        return [_row_to_appointment(row) for row in rows or []]

    def update_appointment(self, appointment_id: str, fields: dict[str, Any]) -> None:
        try:
            self._request(
                "PATCH",
                "/rest/v1/appointment",
                [("appointment_id", f"eq.{appointment_id}")],
                payload=_serialize(fields),
            )
        except SchedulerError as exc:
            raise PersistError(f"Appointment {appointment_id} update failed: {exc}") from exc

    def swap_meeting_link(
        self, appointment_id: str, expected: str | None, value: str | None
    ) -> bool:
        params = [("appointment_id", f"eq.{appointment_id}")]
        if expected:
            params.append(("meeting_link", f'eq."{expected}"'))
        else:
            params.append(("or", "(meeting_link.is.null,meeting_link.eq.)"))
        try:
            rows = self._request(
                "PATCH",
                "/rest/v1/appointment",
                params,
                payload={"meeting_link": value},
                prefer="return=representation",
            )
        except SchedulerError as exc:
            raise PersistError(f"Meeting link swap on {appointment_id} failed: {exc}") from exc
        return len(rows or []) == 1

    def get_credential(self, user_id: str) -> Credential | None:
        try:
            rows = self._request(
                "GET",
                "/rest/v1/user_oauth_credentials",
                [
                    ("select", "user_id,access_token,refresh_token,status,updated_at"),
                    ("user_id", f"eq.{user_id}"),
                ],
            )
        except SchedulerError as exc:
            raise QueryError(f"Credential lookup for {user_id} failed: {exc}") from exc
        if not rows:
            return None
        row = rows[0]
        return Credential(
            user_id=row["user_id"],
            access_token=row["access_token"],
            refresh_token=row.get("refresh_token"),
            status=row.get("status") or "valid",
            updated_at=row.get("updated_at"),
        )

    def update_credential(self, user_id: str, fields: dict[str, Any]) -> None:
        payload = _serialize({**fields, "updated_at": datetime.now(timezone.utc)})
        try:
            self._request(
                "PATCH",
                "/rest/v1/user_oauth_credentials",
                [("user_id", f"eq.{user_id}")],
                payload=payload,
            )
        except SchedulerError as exc:
            raise PersistError(f"Credential update for {user_id} failed: {exc}") from exc

    def save_credential(self, credential: Credential) -> None:
        payload = {
            "user_id": credential.user_id,
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
            "status": credential.status,
            "updated_at": format_timestamp(datetime.now(timezone.utc)),
        }
        try:
            self._request(
                "POST",
                "/rest/v1/user_oauth_credentials",
                [("on_conflict", "user_id")],
                payload=payload,
                prefer="resolution=merge-duplicates",
            )
        except SchedulerError as exc:
            raise PersistError(
                f"Credential save for {credential.user_id} failed: {exc}"
            ) from exc

    def get_user_email(self, user_id: str) -> str | None:
        try:
            payload = self._request("GET", f"/auth/v1/admin/users/{urllib.parse.quote(user_id)}")
        except SchedulerError as exc:
            raise QueryError(f"User lookup for {user_id} failed: {exc}") from exc
        user = payload.get("user", payload) if isinstance(payload, dict) else {}
        return user.get("email") or None

    def claim_reminder(self, appointment_id: str, user_id: str) -> bool:
        try:
            rows = self._request(
                "POST",
                "/rest/v1/reminder_log",
                [("on_conflict", "appointment_id,user_id")],
                payload={
                    "appointment_id": appointment_id,
                    "user_id": user_id,
                    "created_at": format_timestamp(datetime.now(timezone.utc)),
                },
                prefer="resolution=ignore-duplicates,return=representation",
            )
        except SchedulerError as exc:
            raise PersistError(f"Reminder marker for {appointment_id} failed: {exc}") from exc
        return len(rows or []) == 1

    def release_reminder(self, appointment_id: str, user_id: str) -> None:
        try:
            self._request(
                "DELETE",
                "/rest/v1/reminder_log",
                [("appointment_id", f"eq.{appointment_id}"), ("user_id", f"eq.{user_id}")],
            )
        except SchedulerError as exc:
            raise PersistError(
                f"Reminder marker release for {appointment_id} failed: {exc}"
            ) from exc

    def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        payload: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        """Summary: Send an authenticated JSON request to the store.

        Importance: Centralizes headers, timeouts, and error wrapping for every call.
        Alternatives: Use requests with a shared session.
        """

        url = self._base_url + path
        if params:
            url += "?" + urllib.parse.urlencode(params)
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8")
            raise SchedulerError(
                f"Store request {method} {path} failed ({exc.code}): {error_body or exc.reason}"
            ) from exc
        except (urllib.error.URLError, TimeoutError) as exc:
            raise SchedulerError(f"Store unreachable: {exc}") from exc
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SchedulerError("Store returned invalid JSON") from exc


def _quote_list(values: tuple[str, ...]) -> list[str]:
    return [f'"{value}"' for value in values]


def _serialize(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        key: format_timestamp(value) if isinstance(value, datetime) else value
        for key, value in fields.items()
    }


def _participant(row: dict[str, Any], key: str, fallback_id: str, role: str) -> Participant:
    nested = row.get(key) or {}
    return Participant(
        user_id=nested.get("user_id") or fallback_id,
        full_name=nested.get("full_name") or "",
        role=role,
    )


def _row_to_appointment(row: dict[str, Any]) -> Appointment:
    return Appointment(
        id=str(row["appointment_id"]),
        meeting_date=parse_timestamp(row["meeting_date"]),
        duration=int(row.get("duration") or 30),
        is_online=bool(row.get("is_online")),
        is_visible=bool(row.get("is_visible")),
        status=row.get("status") or "",
        meeting_link=row.get("meeting_link"),
        patient_id=str(row["patient_id"]),
        staff_id=str(row["staff_id"]),
        content=row.get("content") or "",
        patient=_participant(row, "patient", str(row["patient_id"]), ROLE_PATIENT),
        staff=_participant(row, "staff", str(row["staff_id"]), ROLE_STAFF),
    )
