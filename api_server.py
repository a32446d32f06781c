"""
FastAPI Server for the Bot Vault ledger service
Exposes bot lifecycle, wallet, KYC and referral endpoints
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text

from config.config import (
    API_RATE_LIMIT,
    ENVIRONMENT,
    PROFIT_SCHEDULER_ENABLED,
    SERVICE_API_KEY,
    WEBAPP_URL,
    validate_config,
)
from config.logging import setup_logging
from config.sentry import init_sentry
from src.api.router import router as api_router
from src.core.exceptions import LedgerError
from src.database.engine import check_connection, dispose_engine, get_session_maker
from src.database.seed import seed_bot_templates
from src.services.container import ServiceContainer, build_services
from src.tasks.profit_scheduler import ProfitScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events
    """
    logger.info("Starting Bot Vault API Server...")

    if not await check_connection():
        logger.error("Database is not reachable, requests will fail until it is")

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(get_session_maker())
    services: ServiceContainer = app.state.services

    async with services.session_maker() as session:
        await seed_bot_templates(session)

    # Running bots survive restarts
    await services.engine.restore()

    profit_scheduler = None
    if PROFIT_SCHEDULER_ENABLED:
        profit_scheduler = ProfitScheduler(services.engine)
        profit_scheduler.start()

    yield

    logger.info("Shutting down Bot Vault API Server...")

    if profit_scheduler:
        profit_scheduler.stop()

    await dispose_engine()
    logger.info("Database connections closed")


def create_app(
    services: Optional[ServiceContainer] = None,
    service_api_key: str = SERVICE_API_KEY,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        services: Prebuilt service container (tests); built at startup otherwise
        service_api_key: Key expected from internal collaborators

    Returns:
        FastAPI app
    """
    app = FastAPI(
        title="Bot Vault API",
        description="Bot investment lifecycle and wallet ledger",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.services = services
    app.state.service_api_key = service_api_key

    # Rate limiting per client IP
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[API_RATE_LIMIT],
        storage_uri="memory://",
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    if WEBAPP_URL and WEBAPP_URL not in allowed_origins:
        allowed_origins.append(WEBAPP_URL)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if ENVIRONMENT == "production" and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "service": "Bot Vault API",
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health(request: Request):
        """
        Health check endpoint (database + profit engine)
        """
        services: Optional[ServiceContainer] = request.app.state.services
        if services is None:
            return JSONResponse(status_code=503, content={"status": "starting"})

        try:
            async with services.session_maker() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "unhealthy"})

        return {
            "status": "healthy",
            "running_bots": len(services.engine.registered_ids),
        }

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError):
        """
        Map ledger errors to their HTTP status with a stable error code
        """
        if not exc.recoverable:
            logger.critical(f"{exc.code} on {request.url.path}: {exc.message}")
        elif exc.http_status >= 500:
            logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.code} on {request.url.path}: {exc.message}")

        return JSONResponse(
            status_code=exc.http_status,
            content={"success": False, "error": exc.to_dict()},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """
        Handle HTTPException properly - return correct status code and detail
        """
        if exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code}: {exc.detail}")
        elif exc.status_code >= 400:
            logger.warning(f"HTTP {exc.status_code}: {exc.detail}")

        content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
        return JSONResponse(
            status_code=exc.status_code,
            content=content
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Global exception handler for unexpected errors
        """
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
            }
        )

    return app


setup_logging()
init_sentry()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    try:
        validate_config()
    except ValueError as e:
        logger.error(str(e))
        raise SystemExit(1)

    logger.info("Configuration validated successfully")

    uvicorn.run(
        "api_server:app",
        host="127.0.0.1",
        port=8003,
        reload=ENVIRONMENT == "development",
        log_level="info",
    )
