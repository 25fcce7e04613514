from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from devkit.config import ConfigurationError, ServiceSettings, load_settings
from devkit.metrics import HttpRequestMetrics
from devkit.middleware import ObservabilityMiddleware
from devkit.observability import (
    configure_logging,
    configure_otel,
    configure_probe_access_log_filter,
    install_secret_redaction,
)
from geo_engine.location import LocationPermissionDenied, LocationTimeout, LocationUnavailable

from api.dependencies import ApiComponents, build_components
from api.errors import ApiError, DiscoveryUnavailable
from api.response import error_response, success_response
from api.routers.clinics import router as clinics_router
from api.routers.geo import router as geo_router


def _location_error(exc: LocationUnavailable) -> ApiError:
    if isinstance(exc, LocationPermissionDenied):
        return ApiError("LOCATION_PERMISSION_DENIED", "Location access denied. Please enable location services.", 403)
    if isinstance(exc, LocationTimeout):
        return ApiError("LOCATION_TIMEOUT", "Location request timed out.", 504)
    return ApiError("LOCATION_UNAVAILABLE", "Location information is unavailable.", 503)


def create_app(
    settings: ServiceSettings | None = None,
    components: ApiComponents | None = None,
) -> FastAPI:
    settings = settings or load_settings("clinic-api")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    configure_probe_access_log_filter()
    install_secret_redaction(settings.secret_values())
    components = components or build_components(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await components.close()

    app = FastAPI(title="Clinic Discovery API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.components = components
    app.state.http_metrics = HttpRequestMetrics(namespace="clinic_api")
    app.add_middleware(
        ObservabilityMiddleware,
        metrics=app.state.http_metrics,
        tracer_name="clinic-api",
    )
    app.include_router(clinics_router)
    app.include_router(geo_router)

    @app.get("/healthz")
    async def healthz() -> dict:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict:
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = app.state.http_metrics.render()
        return Response(content=payload, media_type="text/plain; version=0.0.4")

    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_response(exc.code, exc.message))

    @app.exception_handler(LocationUnavailable)
    async def handle_location_error(request: Request, exc: LocationUnavailable) -> JSONResponse:
        return await handle_api_error(request, _location_error(exc))

    @app.exception_handler(DiscoveryUnavailable)
    async def handle_discovery_unavailable(_: Request, exc: DiscoveryUnavailable) -> JSONResponse:
        return JSONResponse(status_code=503, content=error_response("DISCOVERY_UNAVAILABLE", str(exc)))

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=503, content=error_response("NOT_CONFIGURED", str(exc)))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(err["msg"] for err in exc.errors())
        return JSONResponse(
            status_code=422,
            content=error_response("VALIDATION_ERROR", message),
        )

    return app
