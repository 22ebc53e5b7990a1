"""FastAPI application for the event-driven secret cache.

Exposes the webhook that receives Event Grid deliveries, plus health and
readiness endpoints. The VaultMirror is owned by the application
(``app.state.mirror``) and is bootstrapped in the lifespan, before the server
accepts requests.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from secretcache import __version__
from secretcache.config import Settings, load_settings
from secretcache.dispatch import dispatch_delivery
from secretcache.logging_utils import clear_request_id, set_request_id
from secretcache.mirror import VaultMirror
from secretcache.models import ErrorResponse, StatusResponse
from secretcache.vault import get_vault_client

logger = logging.getLogger(__name__)

WEBHOOK_PATHS = ("/api/updates", "/hook")


def build_mirror(settings: Settings) -> VaultMirror:
    """Create a mirror over the configured vault backend.

    Raises:
        ConfigurationError: If the backend is misconfigured
    """
    client = get_vault_client(settings)
    return VaultMirror(
        client,
        bootstrap_timeout=settings.bootstrap_timeout,
        max_workers=settings.max_workers,
        refresh_max_attempts=settings.refresh_max_attempts,
        refresh_backoff_seconds=settings.refresh_backoff_seconds,
    )


def create_app(
    mirror: VaultMirror | None = None,
    settings: Settings | None = None,
    close_mirror: bool | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        mirror: Mirror to serve (default: built from settings at startup)
        settings: Settings used when the mirror has to be built
            (default: loaded from the environment at startup)
        close_mirror: Whether shutdown closes the mirror
            (default: only when the app built it)

    Returns:
        Configured FastAPI app
    """
    owns_mirror = mirror is None if close_mirror is None else close_mirror

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.mirror is None:
            app.state.mirror = build_mirror(settings or load_settings())
        current = app.state.mirror
        if not current.is_ready:
            # A BootstrapError here aborts startup
            await run_in_threadpool(current.bootstrap)
        yield
        if owns_mirror:
            await run_in_threadpool(current.close)

    app = FastAPI(
        title="Event-Driven Secret Cache",
        version=__version__,
        description="In-memory mirror of vault secrets refreshed by Event Grid notifications",
        lifespan=lifespan,
    )
    app.state.mirror = mirror

    @app.get("/health")
    def health_check():
        """Liveness endpoint."""
        return {"status": "ok"}

    @app.get(
        "/v1/status",
        response_model=StatusResponse,
        responses={503: {"model": StatusResponse}},
    )
    def get_status(request: Request):
        """Readiness endpoint.

        Reports whether bootstrap completed and how many secrets are cached.
        Secret values and names are never exposed.
        """
        current: VaultMirror | None = request.app.state.mirror
        ready = current is not None and current.is_ready
        body = StatusResponse(
            status="ok" if ready else "starting",
            ready=ready,
            secret_count=current.secret_count if current is not None else 0,
            version=app.version,
            timestamp=datetime.now(UTC),
            metrics=current.metrics.get_snapshot() if current is not None else {},
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    async def receive_events(
        request: Request,
        aeg_event_type: str | None = Header(default=None, alias="Aeg-Event-Type"),
    ) -> JSONResponse:
        """Handle an Event Grid delivery.

        Answers the subscription validation handshake, or starts a background
        refresh for each changed secret and acknowledges immediately.

        Returns:
            200 with {"validationResponse": code} for a handshake,
            200 acknowledgement for notifications,
            400 for malformed deliveries or rejected handshakes
        """
        current: VaultMirror | None = request.app.state.mirror
        if current is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Secret cache is not initialized",
            )

        set_request_id(request.headers.get("X-Request-ID"))
        try:
            body = await request.body()
            result = dispatch_delivery(body, aeg_event_type, current)
        except Exception:
            logger.exception("Unexpected error handling webhook delivery")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorResponse(
                    error="internal_error", message="Failed to process delivery"
                ).model_dump(),
            )
        finally:
            clear_request_id()

        return JSONResponse(status_code=result.status_code, content=result.body)

    for path in WEBHOOK_PATHS:
        app.add_api_route(path, receive_events, methods=["POST"], response_class=JSONResponse)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTPExceptions and return the error schema."""
        if isinstance(exc.detail, dict):
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.detail,
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "http_error",
                "message": str(exc.detail),
            },
        )

    return app
