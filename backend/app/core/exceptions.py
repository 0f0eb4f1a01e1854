"""
Error types and FastAPI exception handlers.

Service code raises the domain errors below; the handlers registered by
setup_exception_handlers translate them into HTTP responses.
"""

import logging
import traceback
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LivabilityError(Exception):
    """Base error for the livability pipeline."""


class ConfigurationError(LivabilityError):
    """Raised when a required credential or setting is missing."""


class GeocodingError(LivabilityError):
    """Raised when an address cannot be located."""

    def __init__(self, address: str, message: str = "Could not locate address"):
        self.address = address
        super().__init__(f"{message}: {address}")


class OutsideTaiwanError(LivabilityError):
    """Raised for coordinates outside the supported area."""

    def __init__(self, latitude: float, longitude: float):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            "Coordinates are outside Taiwan. Please provide valid Taiwan coordinates."
        )


class NotFoundError(LivabilityError):
    """Raised when a stored record the caller depends on does not exist."""


class UpstreamServiceError(LivabilityError):
    """Raised for failed calls to an external data provider."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ):
        self.service = service
        self.status_code = status_code
        self.details = details
        prefix = f"{service} request failed"
        if status_code is not None:
            prefix = f"{prefix} ({status_code})"
        super().__init__(f"{prefix}: {message}")


class TDXAuthError(UpstreamServiceError):
    """Raised when the TDX token endpoint rejects the client credentials."""

    def __init__(self, status_code: int, details: str = ""):
        super().__init__("TDX Auth", "token request rejected", status_code=status_code, details=details)


class OverpassUnavailableError(UpstreamServiceError):
    """Raised when every configured Overpass instance failed."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Overpass", "all instances failed: " + "; ".join(errors))


async def geocoding_error_handler(request: Request, exc: GeocodingError) -> JSONResponse:
    logger.info(f"Geocoding failed for {exc.address!r}")
    return JSONResponse(status_code=400, content={"detail": "Could not locate address"})


async def outside_taiwan_handler(request: Request, exc: OutsideTaiwanError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error in {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def upstream_error_handler(request: Request, exc: UpstreamServiceError) -> JSONResponse:
    logger.error(
        f"Upstream failure in {request.method} {request.url.path}: {exc}",
        extra={"service": exc.service, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=502,
        content={"detail": f"Failed to fetch data: {exc}", "service": exc.service},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log any unhandled exception with its request context.

    The response carries an error id clients can quote when reporting issues.
    """
    error_id = id(exc)

    logger.error(
        f'Unhandled exception [{error_id}] in {request.method} {request.url.path}: {str(exc)}',
        exc_info=True,
        extra={
            'error_id': error_id,
            'method': request.method,
            'path': request.url.path,
            'query_params': dict(request.query_params),
            'client': request.client.host if request.client else 'unknown',
            'error_type': type(exc).__name__,
            'traceback': traceback.format_exc(),
        }
    )

    return JSONResponse(
        status_code=500,
        content={
            'detail': 'Internal server error',
            'error_id': error_id,
            'error_type': type(exc).__name__,
        }
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI application."""
    app.add_exception_handler(GeocodingError, geocoding_error_handler)
    app.add_exception_handler(OutsideTaiwanError, outside_taiwan_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(UpstreamServiceError, upstream_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
