"""Summary: SQLite storage implementation for MeetCron.

Importance: Provides a local-first appointment and credential store for development, demos, and tests.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from meetcron.errors import PersistError, QueryError
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


APPOINTMENT_FIELDS = {
    "meeting_link",
    "status",
    "is_visible",
    "is_online",
    "meeting_date",
    "duration",
}
CREDENTIAL_FIELDS = {"access_token", "refresh_token", "status", "updated_at"}


class SqliteStore(AppointmentRepository):
    """Summary: SQLite-backed repository for appointments and credentials.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first tick.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    full_name TEXT NOT NULL DEFAULT '',
                    email TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    meeting_date TEXT NOT NULL,
                    duration INTEGER NOT NULL DEFAULT 30,
                    is_online INTEGER NOT NULL DEFAULT 0,
                    is_visible INTEGER NOT NULL DEFAULT 1,
                    status TEXT NOT NULL DEFAULT 'pending',
                    meeting_link TEXT,
                    patient_id TEXT NOT NULL,
                    staff_id TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT ''
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS credentials (
                    user_id TEXT PRIMARY KEY,
                    access_token TEXT NOT NULL,
                    refresh_token TEXT,
                    status TEXT NOT NULL DEFAULT 'valid',
                    updated_at TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS reminder_log (
                    appointment_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (appointment_id, user_id)
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_appointments_meeting_date "
                "ON appointments (meeting_date)"
            )
            connection.commit()

    def save_user(self, user_id: str, full_name: str, email: str) -> None:
        """Summary: Insert or replace a user identity.

        Importance: Seeds participant names and emails for the orchestrator.
        Alternatives: Sync users from the auth provider.
        """

        with self._write() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO users (id, full_name, email) VALUES (?, ?, ?)",
                (user_id, full_name, email),
            )

    def save_appointment(self, appointment: Appointment) -> None:
        """Summary: Insert or replace an appointment row.

        Importance: Seeds schedules for local runs and tests.
        Alternatives: Create appointments through a booking API.
        """

        with self._write() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO appointments (
                    id, meeting_date, duration, is_online, is_visible, status,
                    meeting_link, patient_id, staff_id, content
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    appointment.id,
                    format_timestamp(appointment.meeting_date),
                    appointment.duration,
                    int(appointment.is_online),
                    int(appointment.is_visible),
                    appointment.status,
                    appointment.meeting_link,
                    appointment.patient_id,
                    appointment.staff_id,
                    appointment.content,
                ),
            )

    def save_credential(self, credential: Credential) -> None:
        """Summary: Insert or replace a user's OAuth credential.

        Importance: Stands in for the out-of-band consent flow that creates credentials.
        Alternatives: Accept credentials only through an OAuth callback.
        """

        with self._write() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO credentials (
                    user_id, access_token, refresh_token, status, updated_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    credential.user_id,
                    credential.access_token,
                    credential.refresh_token,
                    credential.status,
                    credential.updated_at or format_timestamp(datetime.now(timezone.utc)),
                ),
            )

    def query_appointments(self, criteria: AppointmentFilter) -> list[Appointment]:
        clauses = ["a.meeting_date >= ?", "a.meeting_date <= ?", "a.is_visible = ?"]
        params: list[Any] = [
            format_timestamp(criteria.start),
            format_timestamp(criteria.end),
            int(criteria.is_visible),
        ]
        if criteria.statuses:
            placeholders = ", ".join("?" for _ in criteria.statuses)
            clauses.append(f"a.status IN ({placeholders})")
            params.extend(criteria.statuses)
        if criteria.is_online is not None:
            clauses.append("a.is_online = ?")
            params.append(int(criteria.is_online))
        if criteria.require_empty_link:
            link_clause = "(a.meeting_link IS NULL OR a.meeting_link = ''"
            if criteria.stale_claim_before is not None:
                link_clause += " OR (a.meeting_link LIKE ? AND a.meeting_link < ?)"
                params.extend([CLAIM_PREFIX + "%", make_claim_token(criteria.stale_claim_before)])
            clauses.append(link_clause + ")")
        query = f"""
            SELECT a.id, a.meeting_date, a.duration, a.is_online, a.is_visible, a.status,
                   a.meeting_link, a.patient_id, a.staff_id, a.content,
                   p.full_name, s.full_name
            FROM appointments a
            LEFT JOIN users p ON p.id = a.patient_id
            LEFT JOIN users s ON s.id = a.staff_id
            WHERE {" AND ".join(clauses)}
            ORDER BY a.meeting_date ASC
        """
        try:
            with self._connection() as connection:
                rows = connection.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise QueryError(f"Appointment query failed: {exc}") from exc
        return [_row_to_appointment(row) for row in rows]

    def get_appointment(self, appointment_id: str) -> Appointment | None:
        with self._connection() as connection:
            row = connection.execute(
                """
                SELECT a.id, a.meeting_date, a.duration, a.is_online, a.is_visible, a.status,
                       a.meeting_link, a.patient_id, a.staff_id, a.content,
                       p.full_name, s.full_name
                FROM appointments a
                LEFT JOIN users p ON p.id = a.patient_id
                LEFT JOIN users s ON s.id = a.staff_id
                WHERE a.id = ?
                """,
                (appointment_id,),
            ).fetchone()
        return _row_to_appointment(row) if row else None

    def list_appointments(self, limit: int) -> list[Appointment]:
        """Summary: List upcoming appointments ordered by meeting date.

        Importance: Supports the CLI listing command.
        Alternatives: Query appointments only through due windows.
        """

        with self._connection() as connection:
            rows = connection.execute(
                """
                SELECT a.id, a.meeting_date, a.duration, a.is_online, a.is_visible, a.status,
                       a.meeting_link, a.patient_id, a.staff_id, a.content,
                       p.full_name, s.full_name
                FROM appointments a
                LEFT JOIN users p ON p.id = a.patient_id
                LEFT JOIN users s ON s.id = a.staff_id
                ORDER BY a.meeting_date ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_appointment(row) for row in rows]

    def update_appointment(self, appointment_id: str, fields: dict[str, Any]) -> None:
        assignments, params = _assignments(fields, APPOINTMENT_FIELDS)
        with self._write() as cursor:
            cursor.execute(
                f"UPDATE appointments SET {assignments} WHERE id = ?",
                (*params, appointment_id),
            )

    def swap_meeting_link(
        self, appointment_id: str, expected: str | None, value: str | None
    ) -> bool:
        with self._write() as cursor:
            if expected:
                cursor.execute(
                    "UPDATE appointments SET meeting_link = ? WHERE id = ? AND meeting_link = ?",
                    (value, appointment_id, expected),
                )
            else:
                cursor.execute(
                    "UPDATE appointments SET meeting_link = ? "
                    "WHERE id = ? AND (meeting_link IS NULL OR meeting_link = '')",
                    (value, appointment_id),
                )
            return cursor.rowcount == 1

    def get_credential(self, user_id: str) -> Credential | None:
        with self._connection() as connection:
            row = connection.execute(
                """
                SELECT user_id, access_token, refresh_token, status, updated_at
                FROM credentials WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        if not row:
            return None
        return Credential(
            user_id=row[0],
            access_token=row[1],
            refresh_token=row[2],
            status=row[3],
            updated_at=row[4],
        )

    def update_credential(self, user_id: str, fields: dict[str, Any]) -> None:
        fields = {**fields, "updated_at": format_timestamp(datetime.now(timezone.utc))}
        assignments, params = _assignments(fields, CREDENTIAL_FIELDS)
        with self._write() as cursor:
            cursor.execute(
                f"UPDATE credentials SET {assignments} WHERE user_id = ?",
                (*params, user_id),
            )
            if cursor.rowcount != 1:
                raise PersistError(f"Credential for user {user_id} not found")

    def get_user_email(self, user_id: str) -> str | None:
        with self._connection() as connection:
            row = connection.execute("SELECT email FROM users WHERE id = ?", (user_id,)).fetchone()
        return row[0] if row and row[0] else None

    def claim_reminder(self, appointment_id: str, user_id: str) -> bool:
        with self._write() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO reminder_log (appointment_id, user_id, created_at) "
                "VALUES (?, ?, ?)",
                (appointment_id, user_id, format_timestamp(datetime.now(timezone.utc))),
            )
            return cursor.rowcount == 1

    def release_reminder(self, appointment_id: str, user_id: str) -> None:
        with self._write() as cursor:
            cursor.execute(
                "DELETE FROM reminder_log WHERE appointment_id = ? AND user_id = ?",
                (appointment_id, user_id),
            )

    def has_reminder(self, appointment_id: str, user_id: str) -> bool:
        with self._connection() as connection:
            row = connection.execute(
                "SELECT 1 FROM reminder_log WHERE appointment_id = ? AND user_id = ?",
                (appointment_id, user_id),
            ).fetchone()
        return row is not None

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Cursor]:
        """Summary: Context manager for a committed write.

        Importance: Maps database failures on writes to PersistError.
        Alternatives: Let sqlite3 errors propagate to callers.
        """

        try:
            with self._connection() as connection:
                cursor = connection.cursor()
                yield cursor
                connection.commit()
        except sqlite3.Error as exc:
            raise PersistError(f"Store write failed: {exc}") from exc

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path, timeout=30)
        try:
            yield connection
        finally:
            connection.close()


def _assignments(fields: dict[str, Any], allowed: set[str]) -> tuple[str, list[Any]]:
    unknown = set(fields) - allowed
    if unknown or not fields:
        raise PersistError(f"Unsupported update fields: {sorted(unknown) or 'none'}")
    columns = sorted(fields)
    params = [_to_column(fields[column]) for column in columns]
    return ", ".join(f"{column} = ?" for column in columns), params


def _to_column(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def _row_to_appointment(row: tuple[Any, ...]) -> Appointment:
    return Appointment(
        id=row[0],
        meeting_date=parse_timestamp(row[1]),
        duration=int(row[2]),
        is_online=bool(row[3]),
        is_visible=bool(row[4]),
        status=row[5],
        meeting_link=row[6],
        patient_id=row[7],
        staff_id=row[8],
        content=row[9] or "",
        patient=Participant(row[7], row[10] or "", ROLE_PATIENT),
        staff=Participant(row[8], row[11] or "", ROLE_STAFF),
    )

