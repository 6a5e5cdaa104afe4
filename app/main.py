from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.app_state import AppState, build_notifier
from app.db import db_manager
from app.exceptions import StoreError
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers import chat_router, realtime_router

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let queued WhatsApp notices finish before the worker exits
    await app.state.chat.dispatcher.drain()


def create_app(testing: bool = False) -> FastAPI:
    LoggingConfig()
    settings = get_settings()
    logger.info("Starting %s (env=%s)", settings.app_name, settings.environment)

    app = FastAPI(title="Grupo Chat", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Tests swap in their own AppState bound to the test session.
    notifier = None if testing or settings.is_test else build_notifier(settings)
    app.state.chat = AppState(db_manager.db_session, notifier=notifier, settings=settings)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503, content={"detail": "Chat storage is unavailable"}
        )

    @app.get("/health")
    def health() -> dict:
        return {
            "status": "ok",
            "app": settings.app_name,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(chat_router.router)
    app.include_router(realtime_router.router)

    return app


app = create_app()
