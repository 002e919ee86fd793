"""
FastAPI application factory and entry point.

create_app() builds and configures the FastAPI application:
  1. Settings — constructed once (or passed in by tests) and stored on app.state
  2. Logging — structlog configured from those settings
  3. Database — engine and session factory on app.state
  4. Rate limiters — one per concern, on app.state
  5. Lifespan manager — DB table creation on startup, engine disposal on shutdown
  6. Middleware — CORS, request id / request logging
  7. Exception handlers — maps domain errors to HTTP responses
  8. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn ghostcard.main:create_app --factory --reload

The --reload flag watches for file changes and restarts automatically,
which is ideal for development but should not be used in production.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ghostcard.config import Settings
from ghostcard.database import Base, build_engine, build_session_factory
from ghostcard.exceptions import register_exception_handlers
from ghostcard.logging_config import setup_logging
from ghostcard.rate_limit import build_rate_limiters
from ghostcard.routers import auth, cards, charges, transactions

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Creates all database tables if they don't exist. This is a convenience
      for development — in production, you'd use Alembic migrations exclusively
      so you have version-controlled, reversible schema changes.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    settings: Settings = app.state.settings
    logger.info("application_startup", app_name=settings.APP_NAME, version=settings.APP_VERSION)

    async with app.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield

    logger.info("application_shutdown")
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration to run with. Loaded from the environment /
            .env when omitted.
    """
    settings = settings or Settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Virtual card issuance, merchant charges and spending analytics",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.rate_limiters = build_rate_limiters(settings)

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------

    # CORS: Allow specified frontend origins to make requests.
    # In production, lock this down to your actual frontend domain(s).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Tag every log line of a request with its id, and echo the id back."""
        request_id = str(uuid.uuid4())
        start_time = time.perf_counter()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        logger.info(
            "request_started",
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            return response
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=round(time.perf_counter() - start_time, 4),
            )
            raise
        finally:
            structlog.contextvars.clear_contextvars()

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    register_exception_handlers(app)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "An unexpected error occurred",
                "error_type": "internal_error",
            },
        )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(cards.router, prefix="/cards", tags=["Cards"])
    app.include_router(charges.router, prefix="/charges", tags=["Charges"])
    app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])

    # -----------------------------------------------------------------------
    # Health check
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint for deployment probes (Kubernetes, Docker, etc.).

        Returns a simple JSON response indicating the service is running.
        """
        return {"status": "ok", "version": settings.APP_VERSION}

    return app
