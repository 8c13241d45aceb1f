"""Summary: OAuth token refresh against the Google token endpoint.

Importance: Renews short-lived access tokens from stored refresh tokens without extra dependencies.
Alternatives: Use google-auth or another provider SDK.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from meetcron.config import AppConfig
from meetcron.errors import ConfigError, TokenRefreshError


INVALID_GRANT_STATUSES = frozenset({400, 401})


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Normalized OAuth token response data.

    Importance: Provides a consistent token representation for storage.
    Alternatives: Store the raw provider response without normalization.
    """

    access_token: str
    refresh_token: str | None
    expires_at: str | None
    token_type: str | None
    raw: dict[str, Any]

    @staticmethod
    def from_response(payload: dict[str, Any]) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Normalizes expiry and optional fields.
        Alternatives: Use provider-specific token response classes.
        """

        if not payload.get("access_token"):
            raise TokenRefreshError(
                "Token response did not include an access token", permanent=False
            )
        expires_in = payload.get("expires_in")
        expires_at = None
        if isinstance(expires_in, int):
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat()
        return OAuthTokenResult(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=expires_at,
            token_type=payload.get("token_type"),
            raw=payload,
        )


def refresh_oauth_token(config: AppConfig, refresh_token: str) -> OAuthTokenResult:
    """Summary: Exchange a refresh token for a new access token.

    Importance: Single network call behind the probe-then-refresh credential lifecycle.
    Alternatives: Re-run the consent flow whenever an access token expires.
    """

    payload = _refresh_payload(config, refresh_token)
    response = _post_form(config.google_token_url, payload, config.http_timeout_seconds)
    return OAuthTokenResult.from_response(response)


def _refresh_payload(config: AppConfig, refresh_token: str) -> dict[str, str]:
    """Summary: Build token request parameters for a refresh grant.

    Importance: Ensures the client credentials accompany every refresh.
    Alternatives: Assemble payloads inline inside the refresh function.
    """

    _ensure_oauth_config(config.google_client_id, config.google_client_secret)
    return {
        "client_id": config.google_client_id,
        "client_secret": config.google_client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }


def _ensure_oauth_config(client_id: str, client_secret: str) -> None:
    if not client_id or not client_secret:
        raise ConfigError("Missing OAuth client credentials for google")


def _post_form(url: str, payload: dict[str, str], timeout: float) -> dict[str, Any]:
    """Summary: Send a form-encoded POST request and parse JSON.

    Importance: Avoids new dependencies while supporting OAuth refreshes.
    Alternatives: Use requests or a provider SDK.
    """

    data = urllib.parse.urlencode(payload).encode("utf-8")
    request = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8")
        # Google answers invalid_grant with 400, and 401 for a revoked client.
        raise TokenRefreshError(
            f"Token refresh failed ({exc.code}): {error_body or exc.reason}",
            permanent=exc.code in INVALID_GRANT_STATUSES,
        ) from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        raise TokenRefreshError(f"Token endpoint unreachable: {exc}", permanent=False) from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TokenRefreshError(
            "Token endpoint returned invalid JSON", permanent=False
        ) from exc
