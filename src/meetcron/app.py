"""Summary: Application factory wiring core components.

Importance: Centralizes dependency creation for the CLI and the HTTP trigger.
Alternatives: Instantiate components manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from meetcron.calendar import CalendarProvider, build_calendar_provider
from meetcron.config import AppConfig
from meetcron.credentials import CredentialManager
from meetcron.dispatcher import TickDispatcher
from meetcron.models import CREDENTIAL_VALID, Credential
from meetcron.orchestrator import ResourceOrchestrator
from meetcron.storage.repository import AppointmentRepository
from meetcron.storage.rest_store import RestStore
from meetcron.storage.sqlite_store import SqliteStore
from meetcron.token_codec import TokenCodec, build_codec
from meetcron.windows import WindowPlanner


@dataclass(frozen=True)
class AppContext:
    """Summary: Bundle of components sharing one configuration.

    Importance: Simplifies passing dependencies to the CLI and API layers.
    Alternatives: Use a dependency injection container.
    """

    config: AppConfig
    store: AppointmentRepository
    calendar: CalendarProvider
    codec: TokenCodec | None
    credentials: CredentialManager
    planner: WindowPlanner
    orchestrator: ResourceOrchestrator
    dispatcher: TickDispatcher


def build_store(config: AppConfig) -> AppointmentRepository:
    """Summary: Build the repository adapter named by configuration.

    Importance: One adapter per backing store behind the same interface.
    Alternatives: Support only a single backing store.
    """

    if config.store_backend == "rest":
        return RestStore(config.store_url, config.store_service_key, config.http_timeout_seconds)
    store = SqliteStore(config.db_path)
    store.initialize()
    return store


def store_credential(
    context: AppContext, user_id: str, access_token: str, refresh_token: str | None = None
) -> Credential:
    """Summary: Encrypt and save a user's tokens as a valid credential.

    Importance: Shared by the CLI and HTTP surfaces that receive tokens from the consent flow.
    Alternatives: Let each entrypoint encode tokens itself.
    """

    codec = context.codec
    credential = Credential(
        user_id=user_id,
        access_token=codec.encode(access_token) if codec else access_token,
        refresh_token=(
            codec.encode(refresh_token) if codec and refresh_token else refresh_token
        ),
        status=CREDENTIAL_VALID,
    )
    context.store.save_credential(credential)
    return credential


def build_context(
    config: AppConfig,
    store: AppointmentRepository | None = None,
    calendar: CalendarProvider | None = None,
) -> AppContext:
    """Summary: Build every component from configuration.

    Importance: Provides a single construction path; tests may inject a store or calendar.
    Alternatives: Construct dependencies separately per request.
    """

    store = store or build_store(config)
    calendar = calendar or build_calendar_provider(config)
    codec = build_codec(config.token_secret)
    credentials = CredentialManager(store=store, calendar=calendar, codec=codec)
    planner = WindowPlanner.from_config(store, config)
    orchestrator = ResourceOrchestrator(
        store=store,
        calendar=calendar,
        timezone=config.timezone,
        reminder_lead=timedelta(days=config.reminder_lead_days),
    )
    dispatcher = TickDispatcher(
        config=config,
        store=store,
        planner=planner,
        credentials=credentials,
        orchestrator=orchestrator,
    )
    return AppContext(
        config=config,
        store=store,
        calendar=calendar,
        codec=codec,
        credentials=credentials,
        planner=planner,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
    )
