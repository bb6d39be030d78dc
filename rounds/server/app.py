from __future__ import annotations

import contextlib
from functools import partial
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from rounds.logic.timer import TimerConfig
from rounds.messaging.websocket import open_feed_connection
from rounds.server.settings import RoundFeedSettings
from rounds.server.websocket import snapshot_stream_endpoint
from rounds.session.engine import RoundSyncEngine
from rounds.session.history import HistoryClient
from rounds.session.supervisor import ReconnectPolicy
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    engine: RoundSyncEngine = request.app.state.engine
    return JSONResponse(
        {
            "status": "ok",
            "ready": engine.ready,
            "connectivity_error": engine.supervisor.connectivity_error,
            "variants": len(engine.catalogue),
        },
    )


async def list_rounds(request: Request) -> JSONResponse:
    engine: RoundSyncEngine = request.app.state.engine
    return JSONResponse(engine.snapshot().model_dump(mode="json"))


def _unknown_variant(code: str) -> JSONResponse:
    return JSONResponse({"error": f"Unknown variant {code!r}"}, status_code=404)


async def get_round(request: Request) -> JSONResponse:
    engine: RoundSyncEngine = request.app.state.engine
    code = request.path_params["code"]
    if code not in engine.catalogue:
        return _unknown_variant(code)
    return JSONResponse(engine.store.get_snapshot(code).model_dump(mode="json"))


async def get_history(request: Request) -> JSONResponse:
    engine: RoundSyncEngine = request.app.state.engine
    code = request.path_params["code"]
    if code not in engine.catalogue:
        return _unknown_variant(code)
    results = engine.store.get_history(code)
    return JSONResponse({"variant_code": code, "results": [r.model_dump(mode="json") for r in results]})


def build_engine(settings: RoundFeedSettings) -> RoundSyncEngine:
    """Wire an engine to the real feed and, if configured, the history endpoint."""
    history_client = None
    if settings.history_url:
        history_client = HistoryClient(settings.history_url, timeout=settings.history_timeout_seconds)
    return RoundSyncEngine(
        partial(open_feed_connection, settings.feed_url),
        history_client=history_client,
        reconnect_policy=ReconnectPolicy(
            initial_delay_seconds=settings.reconnect_initial_delay_seconds,
            max_delay_seconds=settings.reconnect_max_delay_seconds,
            readiness_timeout_seconds=settings.readiness_timeout_seconds,
        ),
        timer_config=TimerConfig(tick_seconds=settings.tick_seconds),
        history_limit=settings.history_limit,
        result_grace_seconds=settings.result_grace_seconds,
    )


def create_app(
    settings: RoundFeedSettings | None = None,
    engine: RoundSyncEngine | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = RoundFeedSettings()

    # An engine passed in belongs to the caller, along with its history client.
    owns_engine = engine is None
    if engine is None:
        engine = build_engine(settings)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await snapshot_stream_endpoint(websocket, engine)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        await engine.start()
        try:
            yield
        finally:
            await engine.stop()
            if owns_engine and engine.history_client is not None:
                await engine.history_client.close()

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/rounds", list_rounds, methods=["GET"]),
        Route("/rounds/{code}", get_round, methods=["GET"]),
        Route("/rounds/{code}/history", get_history, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.engine = engine

    logger.info("round feed server ready", feed_url=settings.feed_url)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = RoundFeedSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
