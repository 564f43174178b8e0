import logging
import traceback
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from apicopilot.api.v1 import api_router
from apicopilot.core.config import settings
from apicopilot.core.logging_config import setup_logging, RequestLoggingMiddleware
from apicopilot.core.shutdown import lifespan_manager
from apicopilot.db.session import check_db_connection

# Configure structured logging (JSON in production, colored in development)
setup_logging()
logger = logging.getLogger("apicopilot")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: str
    detail: str | None = None
    timestamp: str
    path: str | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    environment: str
    checks: dict[str, bool]


app = FastAPI(
    title="API Copilot",
    description="Embeddable AI assistant that calls a tenant's registered REST APIs",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan_manager,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler that returns consistent error responses.
    In production, internal details are hidden from the caller.
    """
    error_id = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")

    logger.error(
        f"Unhandled exception [{error_id}]: {exc}\n"
        f"Path: {request.url.path}\n"
        f"Method: {request.method}\n"
        f"Traceback: {traceback.format_exc()}"
    )

    if settings.ENVIRONMENT.lower() == "production":
        body = ErrorResponse(
            error="Internal server error",
            detail=f"An unexpected error occurred. Reference ID: {error_id}",
            timestamp=datetime.now(timezone.utc).isoformat(),
            path=request.url.path,
        )
    else:
        body = ErrorResponse(
            error=exc.__class__.__name__,
            detail=str(exc),
            timestamp=datetime.now(timezone.utc).isoformat(),
            path=request.url.path,
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(),
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware with timing and request IDs
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check for probes. The database is critical; a missing chat engine
    (no provider key configured) degrades the service.
    """
    db_healthy = await check_db_connection()
    checks = {
        "database": db_healthy,
        "chat_engine": getattr(app.state, "chat_service", None) is not None,
    }

    response = HealthResponse(
        status="healthy" if all(checks.values()) else ("degraded" if db_healthy else "unhealthy"),
        service="apicopilot-backend",
        version="1.0.0",
        environment=settings.ENVIRONMENT,
        checks=checks,
    )

    if not db_healthy:
        logger.warning(f"Health check failed (critical): {checks}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )

    return response
