"""Summary: Credential lifecycle management for per-user OAuth tokens.

Importance: Resolves a usable access token on demand, refreshing once or invalidating when refresh fails.
Alternatives: Refresh every token on a background schedule ahead of expiry.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from meetcron.calendar import CalendarProvider
from meetcron.errors import ExternalAPIError, NoCredentialError, TokenRefreshError
from meetcron.models import CREDENTIAL_INVALID, Credential
from meetcron.storage.repository import AppointmentRepository
from meetcron.token_codec import TokenCodec


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialManager:
    """Summary: Evaluates the valid/invalid credential state machine lazily per user.

    Importance: Guarantees probe before refresh and at most one refresh call per resolution.
    Alternatives: Track expiry timestamps and skip the probe entirely.
    """

    store: AppointmentRepository
    calendar: CalendarProvider
    codec: TokenCodec | None = None

    def resolve_token(self, user_id: str) -> str | None:
        """Summary: Return a usable access token for a user, or None.

        Importance: Every state transition is persisted before returning so later ticks see it.
        Provider outages raise ExternalAPIError and leave the credential untouched.
        Alternatives: Raise on every failure and let callers decide.
        """

        credential = self.store.get_credential(user_id)
        if credential is None:
            logger.info("No stored credential for user %s.", user_id)
            return None
        if not credential.is_valid:
            logger.info("Credential for user %s is invalid; skipping.", user_id)
            return None
        access_token = self._decode(credential.access_token)
        if self.calendar.probe(access_token):
            return access_token
        return self._refresh(credential)

    def require_token(self, user_id: str) -> str:
        """Summary: Resolve a token or raise NoCredentialError.

        Importance: Lets task code treat a missing token as a typed, non-fatal failure.
        Alternatives: Check for None at every call site.
        """

        token = self.resolve_token(user_id)
        if token is None:
            raise NoCredentialError(user_id)
        return token

    def _refresh(self, credential: Credential) -> str | None:
        if not credential.refresh_token:
            logger.warning("Probe failed and no refresh token for user %s.", credential.user_id)
            self.store.update_credential(credential.user_id, {"status": CREDENTIAL_INVALID})
            return None
        try:
            result = self.calendar.refresh_token(self._decode(credential.refresh_token))
        except TokenRefreshError as exc:
            if not exc.permanent:
                # Outage at the token endpoint; the credential stays valid for the next tick.
                logger.warning(
                    "Token refresh unavailable for user %s: %s", credential.user_id, exc
                )
                raise ExternalAPIError(f"Token refresh unavailable: {exc}") from exc
            logger.warning("Token refresh rejected for user %s: %s", credential.user_id, exc)
            self.store.update_credential(credential.user_id, {"status": CREDENTIAL_INVALID})
            return None
        fields = {"access_token": self._encode(result.access_token)}
        # Providers may rotate refresh tokens; keep the newest one.
        if result.refresh_token:
            fields["refresh_token"] = self._encode(result.refresh_token)
        self.store.update_credential(credential.user_id, fields)
        logger.info("Refreshed access token for user %s.", credential.user_id)
        return result.access_token

    def _encode(self, value: str) -> str:
        return self.codec.encode(value) if self.codec else value

    def _decode(self, value: str) -> str:
        return self.codec.decode(value) if self.codec else value
