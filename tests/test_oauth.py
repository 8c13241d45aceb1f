"""Summary: Tests for the OAuth refresh helpers.

Importance: Ensures refresh requests carry client credentials and responses are normalized.
Alternatives: Rely on live OAuth testing only.
"""

from __future__ import annotations

from dataclasses import replace
import io
from typing import Any
import urllib.error
import urllib.request

import pytest

from meetcron import oauth
from meetcron.config import AppConfig
from meetcron.errors import ConfigError, TokenRefreshError
from meetcron.oauth import OAuthTokenResult, _refresh_payload, refresh_oauth_token


def _config() -> AppConfig:
    return AppConfig(
        store_backend="sqlite",
        db_path="meetcron.db",
        store_url="",
        store_service_key="",
        google_client_id="client",
        google_client_secret="secret",
        google_token_url="https://oauth2.googleapis.com/token",
        google_calendar_base_url="https://www.googleapis.com/calendar/v3",
        calendar_provider="google",
        token_secret="",
        api_key="",
        api_host="127.0.0.1",
        api_port=8000,
        meet_link_horizon_minutes=30,
        reminder_lead_days=3,
        reminder_tolerance_minutes=30,
        reminder_statuses=["scheduled", "confirmed"],
        max_workers=4,
        tick_timeout_seconds=240.0,
        http_timeout_seconds=5.0,
        claim_ttl_minutes=15,
        timezone="UTC",
    )


def test_refresh_payload_includes_client_credentials() -> None:
    """Summary: Verify refresh payloads include the grant type and client credentials.

    Importance: Google rejects refresh grants without the client pair.
    Alternatives: Validate payloads only via live requests.
    """

    payload = _refresh_payload(_config(), "refresh-1")
    assert payload == {
        "client_id": "client",
        "client_secret": "secret",
        "refresh_token": "refresh-1",
        "grant_type": "refresh_token",
    }


def test_refresh_payload_requires_client() -> None:
    with pytest.raises(ConfigError):
        _refresh_payload(replace(_config(), google_client_secret=""), "refresh-1")


def test_token_result_normalizes_expiry() -> None:
    result = OAuthTokenResult.from_response(
        {"access_token": "new", "expires_in": 3600, "token_type": "Bearer"}
    )
    assert result.access_token == "new"
    assert result.refresh_token is None
    assert result.expires_at is not None


def test_token_result_requires_access_token() -> None:
    with pytest.raises(TokenRefreshError):
        OAuthTokenResult.from_response({"error": "invalid_grant"})


def test_refresh_posts_to_token_url(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, dict[str, str], float]] = []

    def fake_post(url: str, payload: dict[str, str], timeout: float) -> dict[str, Any]:
        calls.append((url, payload, timeout))
        return {"access_token": "new", "refresh_token": "rotated"}

    monkeypatch.setattr(oauth, "_post_form", fake_post)
    result = refresh_oauth_token(_config(), "refresh-1")
    assert result.access_token == "new"
    assert result.refresh_token == "rotated"
    assert calls[0][0] == "https://oauth2.googleapis.com/token"
    assert calls[0][1]["refresh_token"] == "refresh-1"
    assert calls[0][2] == 5.0


@pytest.mark.parametrize(
    ("status", "permanent"),
    [(400, True), (401, True), (500, False), (503, False)],
)
def test_post_form_marks_rejected_grants_permanent(
    monkeypatch: pytest.MonkeyPatch, status: int, permanent: bool
) -> None:
    """Summary: Verify only invalid_grant style answers are permanent refresh failures.

    Importance: Server errors must leave the stored credential valid for the next tick.
    Alternatives: Parse the error body for the OAuth error code.
    """

    def fake_urlopen(request: Any, timeout: float) -> Any:
        raise urllib.error.HTTPError(
            request.full_url, status, "error", {}, io.BytesIO(b'{"error": "invalid_grant"}')
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(TokenRefreshError) as caught:
        oauth._post_form("https://oauth2.googleapis.com/token", {"grant_type": "x"}, 5)
    assert caught.value.permanent is permanent


def test_post_form_unreachable_is_transient(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(request: Any, timeout: float) -> Any:
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(TokenRefreshError) as caught:
        oauth._post_form("https://oauth2.googleapis.com/token", {"grant_type": "x"}, 5)
    assert caught.value.permanent is False
