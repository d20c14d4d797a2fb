"""
FastAPI application
Barbe - barbershop booking backend
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import RemoteStoreError, SupabaseClient
from .routes.appointments import router as appointments_router
from .routes.notifications import router as notifications_router
from .services.cleanup import CleanupSweep
from .services.dispatcher import NotificationDispatcher
from .services.notifications import TelegramNotifier
from .services.periodic import PeriodicTask
from .services.push import PushSender
from .services.schedule import ScheduleService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    timers = []
    if settings.ENABLE_SWEEPS:
        timers = [
            PeriodicTask(
                "notification-dispatcher",
                settings.NOTIFY_INTERVAL_SECONDS,
                app.state.dispatcher.run,
            ),
            PeriodicTask(
                "appointment-cleanup",
                settings.CLEANUP_INTERVAL_HOURS * 3600,
                app.state.cleanup.run,
                run_on_start=True,
            ),
        ]
        for timer in timers:
            timer.start()

    yield

    for timer in timers:
        await timer.stop()
    await app.state.store.close()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SupabaseClient] = None,
    push_sender: Optional[PushSender] = None,
    notifier: Optional[TelegramNotifier] = None,
) -> FastAPI:
    """Build the app and its components around one Settings instance"""
    if settings is None:
        settings = get_settings()
    if store is None:
        store = SupabaseClient(settings)
    if push_sender is None:
        push_sender = PushSender(settings)
    if notifier is None:
        notifier = TelegramNotifier(settings, store=store)
    schedule = ScheduleService(settings)

    app = FastAPI(title="Barbe", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.schedule = schedule
    app.state.notifier = notifier
    app.state.push_sender = push_sender
    app.state.dispatcher = NotificationDispatcher(settings, store, push_sender, notifier, schedule)
    app.state.cleanup = CleanupSweep(settings, store, schedule)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RemoteStoreError)
    async def remote_store_error_handler(request: Request, exc: RemoteStoreError):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=502,
            content={"error": "supabase error", "status": exc.response.status, "body": exc.response.body},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # malformed input is a plain 400, like a missing field
        if request.method == "POST" and request.url.path == "/appointments":
            detail = "missing fields"
        else:
            detail = "invalid request"
        logger.warning(f"{request.method} {request.url.path}: rejected input: {exc.errors()}")
        return JSONResponse(
            status_code=400,
            content={"detail": detail, "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(httpx.TransportError)
    async def transport_error_handler(request: Request, exc: httpx.TransportError):
        logger.error(f"{request.method} {request.url.path}: store unreachable: {exc}")
        return JSONResponse(status_code=503, content={"error": "store unavailable"})

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "push": settings.push_enabled,
            "telegram": settings.telegram_enabled,
        }

    app.include_router(appointments_router)
    app.include_router(notifications_router)
    return app


def run():
    """Console entry point"""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
