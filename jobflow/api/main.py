"""
HTTP surface of the workflow engine.

``create_app`` wires the services, maps domain errors to status codes and
mounts one route per intent under ``API_V1_STR``.
"""

import time
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobflow.api.routes import api_router
from jobflow.application.services import Services, build_services
from jobflow.core.config import Settings
from jobflow.core.config import settings as default_settings
from jobflow.core.observability import configure_logging, get_logger, set_correlation_id
from jobflow.domain.shared.exceptions import DomainError, ErrorType

logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[ErrorType, int] = {
    ErrorType.VALIDATION: 422,
    ErrorType.PRECONDITION: 400,
    ErrorType.INVALID_TRANSITION: 409,
    ErrorType.CONFLICT: 409,
    ErrorType.AUTHORIZATION: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.REPOSITORY: 500,
}


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation id and logs its outcome."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        start_time = time.time()

        response = await call_next(request)

        logger.info(
            "Request finished",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Correlation-ID"] = correlation_id
        return response


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(exc.error_type, 400)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


def create_app(services: Services | None = None, config: Settings | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        services: Pre-built services (tests inject their own store and clock)
        config: Settings used when ``services`` is not given
    """
    config = config or default_settings
    configure_logging(config)

    app = FastAPI(
        title=config.PROJECT_NAME,
        description="Job lifecycle and confirmation workflow engine for forklift field service.",
        version="0.1.0",
        openapi_url=f"{config.API_V1_STR}/openapi.json",
    )
    app.state.services = services or build_services(config=config)
    app.add_middleware(ObservabilityMiddleware)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.include_router(api_router, prefix=config.API_V1_STR)

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok", "environment": config.ENVIRONMENT}

    return app
