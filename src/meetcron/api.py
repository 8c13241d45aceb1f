"""Summary: FastAPI application exposing the tick trigger.

Importance: Lets an external cron (or a hosted scheduler) drive ticks over HTTP.
Alternatives: Run ticks from a CLI loop or a system timer.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from meetcron.app import AppContext, build_context, store_credential
from meetcron.config import AppConfig
from meetcron.errors import ConfigError, PersistError
from meetcron.reporter import failure_response, success_response


logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type", "x-api-key"]


class CredentialStoreRequest(BaseModel):
    """Summary: Request payload for storing a user's OAuth tokens.

    Importance: Receives tokens from the consent flow that runs outside the scheduler.
    Alternatives: Store tokens in an external vault.
    """

    user_id: str
    access_token: str
    refresh_token: str | None = None


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to the tick dispatcher.

    Importance: Ensures the HTTP layer shares the same configuration and store.
    Alternatives: Instantiate components globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="MeetCron API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )
    context = context or build_context(config)

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Keeps arbitrary callers from triggering ticks on public deployments.
        Alternatives: Restrict the endpoint by network policy only.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.get("/health")
    def health() -> dict[str, str]:
        """Summary: Health check endpoint.

        Importance: Supports uptime checks in local and cloud deployments.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok"}

    @app.options("/tick")
    @app.options("/")
    def preflight() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.post("/tick", dependencies=[Depends(require_api_key)])
    @app.post("/", dependencies=[Depends(require_api_key)])
    def tick() -> JSONResponse:
        """Summary: Run one tick and return its summary.

        Importance: The caller only ever sees counts; per-record reasons stay in the logs.
        Alternatives: Queue the tick and return immediately.
        """

        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        try:
            result = context.dispatcher.run_tick(started_at)
        except ConfigError as exc:
            logger.error("Tick aborted by configuration error: %s", exc)
            elapsed = int((time.monotonic() - started) * 1000)
            return JSONResponse(status_code=500, content=failure_response(exc, started_at, elapsed))
        except Exception as exc:
            logger.exception("Tick failed.")
            elapsed = int((time.monotonic() - started) * 1000)
            return JSONResponse(status_code=500, content=failure_response(exc, started_at, elapsed))
        return JSONResponse(status_code=200, content=success_response(result))

    @app.post("/credentials", dependencies=[Depends(require_api_key)])
    def save_credential(payload: CredentialStoreRequest) -> dict[str, str]:
        """Summary: Store tokens for a user as a valid credential.

        Importance: Re-validates a user after they complete the consent flow again.
        Alternatives: Require the CLI for credential seeding.
        """

        try:
            credential = store_credential(
                context, payload.user_id, payload.access_token, payload.refresh_token
            )
        except PersistError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"user_id": credential.user_id, "status": credential.status}

    return app


def build_app() -> FastAPI:
    """Summary: Build the app from the environment for ASGI servers.

    Importance: Used as a factory by uvicorn so configuration loads at process start.
    Alternatives: Create the app at import time.
    """

    return create_app(AppConfig.from_env())
