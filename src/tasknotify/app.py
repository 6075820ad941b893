"""Application factory for the notification service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_settings import apply_logging_settings, parse_logging_settings
from .routers.checks import router as checks_router
from .routers.timezone import router as timezone_router
from .routers.watchers import router as watchers_router
from .services.delivery import LogChannel, NotificationChannel, WebhookChannel
from .services.engine import build_engine
from .services.scheduler import NotificationScheduler
from .store.sqlite import SqliteTaskStore

logger = logging.getLogger(__name__)


def _configure_logging(settings_path: Path | None = None) -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("tasknotify").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    # The settings file only narrows package loggers further
    if settings_path is not None and settings_path.exists():
        apply_logging_settings(parse_logging_settings(settings_path))


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def _build_channel(settings: Settings) -> NotificationChannel:
    if settings.delivery_webhook_url is None:
        logger.warning("DELIVERY_WEBHOOK_URL not set; notifications are only logged")
        return LogChannel()
    return WebhookChannel(
        str(settings.delivery_webhook_url),
        timeout=settings.delivery_timeout_seconds,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    # Configure logging first thing
    _configure_logging(_resolve_under(PROJECT_ROOT, settings.logging_settings_path))

    database_path = _resolve_under(PROJECT_ROOT, settings.database_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = SqliteTaskStore(database_path)
        await store.initialize()
        channel = _build_channel(settings)
        engine = build_engine(settings, store, channel)

        scheduler: NotificationScheduler | None = None
        if settings.scheduler_enabled:
            scheduler = NotificationScheduler(
                engine,
                completion_interval=settings.completion_check_interval_seconds,
                window_interval=settings.window_check_interval_seconds,
                daily_summary_interval=settings.daily_summary_interval_seconds,
                initial_delay=settings.initial_check_delay_seconds,
            )
            scheduler.start()

        app.state.store = store
        app.state.engine = engine
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            app.state.engine = None
            if scheduler is not None:
                # bounded so a stuck tick cannot hold up shutdown
                try:
                    await asyncio.wait_for(scheduler.shutdown(), timeout=10.0)
                except asyncio.TimeoutError:
                    logger.warning("Scheduler shutdown timed out after 10s")
            if isinstance(channel, WebhookChannel):
                await channel.aclose()
            await store.close()

    app = FastAPI(
        title="Task Notification Service",
        version="0.1.0",
        description="Due-soon, overdue, completion and digest notifications "
        "for task owners and their consented watchers.",
        lifespan=lifespan,
    )

    app.include_router(checks_router)
    app.include_router(watchers_router)
    app.include_router(timezone_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, object]:
        scheduler = getattr(app.state, "scheduler", None)
        return {
            "status": "ok",
            "engine": getattr(app.state, "engine", None) is not None,
            "scheduler": bool(scheduler and scheduler.running),
        }

    return app


__all__ = ["create_app"]
