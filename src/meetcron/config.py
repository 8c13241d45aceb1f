"""Summary: Application configuration for MeetCron.

Importance: Builds one explicit settings object at process start that every component receives.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass

from meetcron.errors import ConfigError


STORE_BACKENDS = ("sqlite", "rest")
CALENDAR_PROVIDERS = ("google", "mock")


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for the store, OAuth, and tick scheduling.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Read environment variables ad hoc inside each component.
    """

    store_backend: str
    db_path: str
    store_url: str
    store_service_key: str
    google_client_id: str
    google_client_secret: str
    google_token_url: str
    google_calendar_base_url: str
    calendar_provider: str
    token_secret: str
    api_key: str
    api_host: str
    api_port: int
    meet_link_horizon_minutes: int
    reminder_lead_days: int
    reminder_tolerance_minutes: int
    reminder_statuses: list[str]
    max_workers: int
    tick_timeout_seconds: float
    http_timeout_seconds: float
    claim_ttl_minutes: int
    timezone: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        try:
            return AppConfig(
                store_backend=os.getenv("MEETCRON_STORE_BACKEND", defaults["store_backend"]),
                db_path=os.getenv("MEETCRON_DB_PATH", defaults["db_path"]),
                store_url=os.getenv("MEETCRON_STORE_URL", defaults["store_url"]),
                store_service_key=os.getenv(
                    "MEETCRON_STORE_SERVICE_KEY", defaults["store_service_key"]
                ),
                google_client_id=os.getenv("GOOGLE_CLIENT_ID", defaults["google_client_id"]),
                google_client_secret=os.getenv(
                    "GOOGLE_CLIENT_SECRET", defaults["google_client_secret"]
                ),
                google_token_url=os.getenv("GOOGLE_TOKEN_URL", defaults["google_token_url"]),
                google_calendar_base_url=os.getenv(
                    "GOOGLE_CALENDAR_BASE_URL", defaults["google_calendar_base_url"]
                ),
                calendar_provider=os.getenv(
                    "MEETCRON_CALENDAR_PROVIDER", defaults["calendar_provider"]
                ),
                token_secret=os.getenv("MEETCRON_TOKEN_SECRET", defaults["token_secret"]),
                api_key=os.getenv("MEETCRON_API_KEY", defaults["api_key"]),
                api_host=os.getenv("MEETCRON_API_HOST", defaults["api_host"]),
                api_port=int(os.getenv("MEETCRON_API_PORT", defaults["api_port"])),
                meet_link_horizon_minutes=int(
                    os.getenv(
                        "MEETCRON_MEET_LINK_HORIZON_MINUTES",
                        defaults["meet_link_horizon_minutes"],
                    )
                ),
                reminder_lead_days=int(
                    os.getenv("MEETCRON_REMINDER_LEAD_DAYS", defaults["reminder_lead_days"])
                ),
                reminder_tolerance_minutes=int(
                    os.getenv(
                        "MEETCRON_REMINDER_TOLERANCE_MINUTES",
                        defaults["reminder_tolerance_minutes"],
                    )
                ),
                reminder_statuses=_split_list(
                    os.getenv("MEETCRON_REMINDER_STATUSES", defaults["reminder_statuses"])
                ),
                max_workers=int(os.getenv("MEETCRON_MAX_WORKERS", defaults["max_workers"])),
                tick_timeout_seconds=float(
                    os.getenv("MEETCRON_TICK_TIMEOUT_SECONDS", defaults["tick_timeout_seconds"])
                ),
                http_timeout_seconds=float(
                    os.getenv("MEETCRON_HTTP_TIMEOUT_SECONDS", defaults["http_timeout_seconds"])
                ),
                claim_ttl_minutes=int(
                    os.getenv("MEETCRON_CLAIM_TTL_MINUTES", defaults["claim_ttl_minutes"])
                ),
                timezone=os.getenv("MEETCRON_TIMEZONE", defaults["timezone"]),
            )
        except KeyError as exc:
            raise ConfigError(f"Missing default for configuration key {exc}") from exc
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric configuration value: {exc}") from exc

    def validate(self) -> None:
        """Summary: Check that everything a tick needs is present.

        Importance: Missing configuration must abort a tick before any task touches the store.
        Alternatives: Let the first provider or store call fail with a confusing error.
        """

        if self.store_backend not in STORE_BACKENDS:
            raise ConfigError(f"Unknown store backend: {self.store_backend}")
        if self.calendar_provider not in CALENDAR_PROVIDERS:
            raise ConfigError(f"Unknown calendar provider: {self.calendar_provider}")
        if self.store_backend == "rest" and (not self.store_url or not self.store_service_key):
            raise ConfigError("Missing store URL or service key for the rest backend")
        if self.store_backend == "sqlite" and not self.db_path:
            raise ConfigError("Missing database path for the sqlite backend")
        if self.calendar_provider == "google" and (
            not self.google_client_id or not self.google_client_secret
        ):
            raise ConfigError("Missing OAuth client credentials for google")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if self.tick_timeout_seconds <= 0:
            raise ConfigError("tick_timeout_seconds must be positive")
        if self.claim_ttl_minutes * 60 <= self.tick_timeout_seconds:
            # A claim must outlive the tick that wrote it.
            raise ConfigError("claim_ttl_minutes must exceed tick_timeout_seconds")


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise ConfigError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]
