"""Summary: Command-line interface for MeetCron.

Importance: Runs ticks locally, serves the HTTP trigger, and seeds the local store.
Alternatives: Use a CLI framework like Typer or Click.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import datetime, timezone

from meetcron.app import AppContext, build_context, store_credential
from meetcron.config import AppConfig
from meetcron.errors import ConfigError
from meetcron.models import STATUS_SCHEDULED, Appointment
from meetcron.reporter import failure_response, success_response
from meetcron.storage.repository import is_claim
from meetcron.storage.sqlite_store import SqliteStore


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="MeetCron CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("tick", help="Run one tick and print the summary")

    loop = subparsers.add_parser("loop", help="Run ticks at a fixed interval")
    loop.add_argument("--interval", type=int, default=60, help="Seconds between ticks")
    loop.add_argument("--count", type=int, default=0, help="Stop after N ticks (0 = forever)")

    subparsers.add_parser("serve", help="Serve the HTTP tick trigger")

    add_user = subparsers.add_parser("add-user", help="Create or update a user")
    add_user.add_argument("user_id", type=str)
    add_user.add_argument("full_name", type=str)
    add_user.add_argument("email", type=str)

    add_appointment = subparsers.add_parser("add-appointment", help="Create an appointment")
    add_appointment.add_argument("appointment_id", type=str)
    add_appointment.add_argument("meeting_date", type=str, help="ISO 8601 start time")
    add_appointment.add_argument("patient_id", type=str)
    add_appointment.add_argument("staff_id", type=str)
    add_appointment.add_argument("--duration", type=int, default=30)
    add_appointment.add_argument("--status", type=str, default=STATUS_SCHEDULED)
    add_appointment.add_argument("--online", action="store_true")
    add_appointment.add_argument("--hidden", action="store_true")
    add_appointment.add_argument("--content", type=str, default="")

    credential_parser = subparsers.add_parser(
        "store-credential", help="Store OAuth tokens for a user"
    )
    credential_parser.add_argument("user_id", type=str)
    credential_parser.add_argument("access_token", type=str)
    credential_parser.add_argument("--refresh-token", type=str, default=None)

    list_appointments = subparsers.add_parser("list-appointments", help="List appointments")
    list_appointments.add_argument("--limit", type=int, default=20)

    show_appointment = subparsers.add_parser(
        "show-appointment", help="Show one appointment and its reminder markers"
    )
    show_appointment.add_argument("appointment_id", type=str)

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Summary: Execute the CLI command based on arguments.

    Importance: Provides a single entry point for local workflows.
    Alternatives: Use separate scripts per command.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "serve":
        import uvicorn

        from meetcron.api import create_app

        uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)
        return 0

    context = build_context(config)

    if args.command == "tick":
        return _run_tick(context)

    if args.command == "loop":
        completed = 0
        while True:
            _run_tick(context)
            completed += 1
            if args.count and completed >= args.count:
                return 0
            time.sleep(args.interval)

    if args.command == "list-appointments":
        store = _sqlite_store(context)
        for appointment in store.list_appointments(args.limit):
            print(
                f"{appointment.id}: {appointment.meeting_date.isoformat()} "
                f"{appointment.status} online={appointment.is_online} "
                f"link={_link_label(appointment.meeting_link)}"
            )
        return 0

    if args.command == "show-appointment":
        store = _sqlite_store(context)
        appointment = store.get_appointment(args.appointment_id)
        if appointment is None:
            print(f"Appointment {args.appointment_id} not found.", file=sys.stderr)
            return 1
        print(f"{appointment.id}: {appointment.meeting_date.isoformat()} {appointment.status}")
        print(f"  online={appointment.is_online} visible={appointment.is_visible}")
        print(f"  link={_link_label(appointment.meeting_link)}")
        for participant in appointment.participants():
            sent = store.has_reminder(appointment.id, participant.user_id)
            print(
                f"  {participant.role} {participant.user_id} {participant.full_name}: "
                f"reminder={'sent' if sent else 'pending'}"
            )
        return 0

    if args.command == "add-user":
        _sqlite_store(context).save_user(args.user_id, args.full_name, args.email)
        print(f"Saved user {args.user_id}.")
        return 0

    if args.command == "add-appointment":
        meeting_date = datetime.fromisoformat(args.meeting_date)
        if meeting_date.tzinfo is None:
            meeting_date = meeting_date.replace(tzinfo=timezone.utc)
        _sqlite_store(context).save_appointment(
            Appointment(
                id=args.appointment_id,
                meeting_date=meeting_date,
                duration=args.duration,
                is_online=args.online,
                is_visible=not args.hidden,
                status=args.status,
                meeting_link=None,
                patient_id=args.patient_id,
                staff_id=args.staff_id,
                content=args.content,
            )
        )
        print(f"Saved appointment {args.appointment_id}.")
        return 0

    if args.command == "store-credential":
        store_credential(context, args.user_id, args.access_token, args.refresh_token)
        print(f"Stored credential for {args.user_id}.")
        return 0

    parser.error(f"Unknown command: {args.command}")
    return 2


def _run_tick(context: AppContext) -> int:
    started_at = datetime.now(timezone.utc)
    started = time.monotonic()
    try:
        result = context.dispatcher.run_tick(started_at)
    except ConfigError as exc:
        elapsed = int((time.monotonic() - started) * 1000)
        print(json.dumps(failure_response(exc, started_at, elapsed)))
        return 1
    print(json.dumps(success_response(result)))
    return 0


def _link_label(meeting_link: str | None) -> str:
    if is_claim(meeting_link):
        return "pending (claimed by a running tick)"
    return meeting_link or "-"


def _sqlite_store(context: AppContext) -> SqliteStore:
    if not isinstance(context.store, SqliteStore):
        raise SystemExit("This command requires the sqlite store backend.")
    return context.store


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
