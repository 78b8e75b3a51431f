"""FastAPI application entry point with lifecycle management."""

from fastapi import FastAPI
from contextlib import asynccontextmanager
import asyncio
import uvicorn

from .config import settings
from .routes import limiter, router
from .background import BackgroundTaskTracker
from .crud import create_models
from .db import async_session, dispose_engine
from .cache import cache_manager
from .errors import register_exception_handlers
from .logger import logger
from .mailer import Mailer
from .middleware import (
    graceful_shutdown_middleware,
    add_request_id_middleware,
    request_logging_middleware,
    recover_middleware,
    security_headers_middleware,
    cors_middleware,
    authenticate_middleware,
    set_shutdown_manager,
)
from .monitoring import setup_monitoring

# ==================== Graceful Shutdown ====================


class ShutdownTimeoutError(RuntimeError):
    """Requests or background tasks were still running when the shutdown timeout expired."""


class GracefulShutdownManager:
    """Manages graceful shutdown of the application.

    Tracks active requests, then waits for background tasks, all within one
    shutdown timeout.
    """

    def __init__(self, background: BackgroundTaskTracker | None = None):
        self.is_shutting_down = False
        self.active_requests = 0
        self.shutdown_timeout = settings.GRACEFUL_SHUTDOWN_TIMEOUT
        self.background = background or BackgroundTaskTracker()

    def request_started(self):
        """Track a new incoming request."""
        if not self.is_shutting_down:
            self.active_requests += 1

    def request_finished(self):
        """Mark a request as completed."""
        self.active_requests -= 1

    async def initiate_shutdown(self):
        """Stop admitting requests, wait for in-flight ones, then drain background tasks.

        Raises ShutdownTimeoutError if anything is still running once
        shutdown_timeout has elapsed.
        """
        if self.is_shutting_down:
            return

        logger.info("Graceful shutdown initiated")
        self.is_shutting_down = True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.shutdown_timeout

        if self.active_requests > 0:
            logger.info(f"Waiting for {self.active_requests} active request(s) to complete...")
            while self.active_requests > 0:
                if loop.time() >= deadline:
                    raise ShutdownTimeoutError(
                        f"shutdown timeout ({self.shutdown_timeout}s) reached with "
                        f"{self.active_requests} request(s) still active"
                    )
                await asyncio.sleep(0.1)
            logger.info("All active requests completed successfully")

        logger.info("Completing background tasks", extra={"properties": {"tasks": self.background.active}})
        drained = await self.background.drain(max(0.0, deadline - loop.time()))
        if not drained:
            raise ShutdownTimeoutError(
                f"shutdown timeout ({self.shutdown_timeout}s) reached with "
                f"{self.background.active} background task(s) still running"
            )
        logger.info("Background tasks completed")


background_tasks = BackgroundTaskTracker()
shutdown_manager = GracefulShutdownManager(background_tasks)
set_shutdown_manager(shutdown_manager)

# ==================== Application Lifecycle ====================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - handles startup and graceful shutdown."""
    logger.info(
        f"Starting {settings.APP_NAME} in {settings.APP_ENV} mode",
        extra={"properties": {"version": settings.APP_VERSION, "port": settings.PORT}},
    )

    if settings.CACHE_ENABLED:
        await cache_manager.connect()

    logger.info(f"{settings.APP_NAME} started successfully - ready to accept requests")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    try:
        await shutdown_manager.initiate_shutdown()
    finally:
        if settings.CACHE_ENABLED:
            await cache_manager.disconnect()
        await dispose_engine()

    logger.info(f"{settings.APP_NAME} shutdown complete")

# ==================== Application Setup ====================


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

app.state.models = create_models(async_session)
app.state.mailer = Mailer()
app.state.background = background_tasks
app.state.limiter = limiter

register_exception_handlers(app)

# Middleware registration (last registered = outermost layer)
app.middleware("http")(authenticate_middleware)
app.middleware("http")(cors_middleware)
app.middleware("http")(security_headers_middleware)
app.middleware("http")(recover_middleware)
app.middleware("http")(request_logging_middleware)
app.middleware("http")(add_request_id_middleware)
app.middleware("http")(graceful_shutdown_middleware)

# Include API routes
app.include_router(router)

# Setup Prometheus monitoring (outermost middleware)
setup_monitoring(app)


def run():
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        timeout_keep_alive=60,
        timeout_graceful_shutdown=settings.GRACEFUL_SHUTDOWN_TIMEOUT,
        log_config=None,
    )
