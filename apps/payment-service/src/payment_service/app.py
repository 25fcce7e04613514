from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from devkit.config import ConfigurationError, ServiceSettings, load_settings
from devkit.metrics import HttpRequestMetrics
from devkit.middleware import ObservabilityMiddleware
from devkit.observability import (
    configure_logging,
    configure_otel,
    configure_probe_access_log_filter,
    install_secret_redaction,
)
from shared.security import SignatureValidationError, authenticate_webhook

from payment_service.exceptions import (
    GatewayError,
    PaymentNotFoundError,
    PersistenceError,
    WebhookPayloadError,
)
from payment_service.gateway import PaystackGateway, build_checkout_config
from payment_service.reconciler import PaymentReconciler
from payment_service.response import error_response, success_response
from payment_service.schemas import PaymentCreateRequest
from payment_service.store import PaymentIntentStore
from payment_service.webhook import parse_webhook_event

logger = logging.getLogger(__name__)

WEBHOOK_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-signature, x-paystack-signature",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@dataclass
class PaymentComponents:
    store: PaymentIntentStore
    reconciler: PaymentReconciler

    async def close(self) -> None:
        await self.store.close()


def build_components(settings: ServiceSettings) -> PaymentComponents:
    store = PaymentIntentStore(
        database_url=settings.DATABASE_URL,
        namespace=settings.PAYMENT_REFERENCE_NAMESPACE,
        currency=settings.PAYMENT_CURRENCY,
    )
    gateway = None
    if settings.PAYSTACK_API_BASE_URL:
        gateway = PaystackGateway(
            base_url=settings.PAYSTACK_API_BASE_URL,
            secret_key=settings.PAYSTACK_SECRET_KEY,
        )
    return PaymentComponents(store=store, reconciler=PaymentReconciler(store, gateway=gateway))


def _webhook_response(status_code: int, content: dict[str, object]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=WEBHOOK_CORS_HEADERS)


def create_app(
    settings: ServiceSettings | None = None,
    components: PaymentComponents | None = None,
) -> FastAPI:
    settings = settings or load_settings("payment-service")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    configure_probe_access_log_filter()
    install_secret_redaction(settings.secret_values())
    components = components or build_components(settings)
    store = components.store
    reconciler = components.reconciler

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await components.close()

    app = FastAPI(title="Payment Service", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.components = components
    app.state.http_metrics = HttpRequestMetrics(namespace="payment_service")
    app.add_middleware(
        ObservabilityMiddleware,
        metrics=app.state.http_metrics,
        tracer_name="payment-service",
    )

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(_: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=503, content=error_response("PERSISTENCE_ERROR", str(exc)))

    @app.exception_handler(PaymentNotFoundError)
    async def handle_not_found(_: Request, exc: PaymentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content=error_response("NOT_FOUND", str(exc)))

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("configuration_missing", extra={"component": "payment_service", "setting": exc.name})
        return JSONResponse(status_code=503, content=error_response("NOT_CONFIGURED", str(exc)))

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(_: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=502, content=error_response("GATEWAY_UNAVAILABLE", str(exc)))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(err["msg"] for err in exc.errors())
        return JSONResponse(status_code=422, content=error_response("VALIDATION_ERROR", message))

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict[str, object]:
        await store.ensure_ready()
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=app.state.http_metrics.render(), media_type="text/plain; version=0.0.4")

    @app.post("/v1/payments")
    async def create_payment(body: PaymentCreateRequest) -> dict[str, object]:
        # nothing is written unless the checkout can actually be opened
        public_key = settings.require("PAYSTACK_PUBLIC_KEY")
        amount = body.amount if body.amount is not None else settings.PREMIUM_ADVICE_AMOUNT
        intent = await store.create(body.user_id, amount, email=body.email)
        return success_response(
            {
                "payment": intent.to_dict(),
                "checkout": build_checkout_config(intent, public_key=public_key, email=body.email),
            },
            meta={},
        )

    @app.get("/v1/payments")
    async def list_payments(user_id: str = Query(..., min_length=1)) -> dict[str, object]:
        items = [item.to_dict() for item in await store.list_for_user(user_id)]
        return success_response(items, meta={"count": len(items)})

    # must stay ahead of /v1/payments/{reference}
    @app.get("/v1/payments/stats")
    async def payment_stats() -> dict[str, object]:
        stats = await store.payment_stats()
        return success_response(stats.to_dict(), meta={"currency": settings.PAYMENT_CURRENCY})

    @app.get("/v1/payments/{reference}")
    async def get_payment(reference: str) -> dict[str, object]:
        intent = await store.get_by_reference(reference)
        if intent is None:
            raise PaymentNotFoundError(reference)
        return success_response(intent.to_dict(), meta={})

    @app.post("/v1/payments/{reference}/client-success")
    async def client_success(reference: str) -> dict[str, object]:
        result = await reconciler.reconcile_client_success(reference)
        return success_response(
            {
                "applied": result.applied,
                "status": result.resulting_status.value if result.resulting_status else None,
                "reference": reference,
            },
            meta={},
        )

    @app.post("/v1/payments/{reference}/client-close")
    async def client_close(reference: str) -> dict[str, object]:
        intent = await store.get_by_reference(reference)
        if intent is None:
            raise PaymentNotFoundError(reference)
        logger.info(
            "payment_checkout_closed",
            extra={"component": "payment_service", "reference": reference, "status": intent.status.value},
        )
        return success_response({"applied": False, "status": intent.status.value, "reference": reference}, meta={})

    @app.api_route("/webhooks/paystack", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def paystack_webhook(request: Request) -> Response:
        if request.method == "OPTIONS":
            return PlainTextResponse("ok", headers=WEBHOOK_CORS_HEADERS)
        if request.method != "POST":
            return PlainTextResponse("Method not allowed", status_code=405, headers=WEBHOOK_CORS_HEADERS)

        raw_body = await request.body()
        signature = request.headers.get("x-signature") or request.headers.get("x-paystack-signature")
        if not settings.PAYSTACK_SECRET_KEY:
            logger.error("configuration_missing", extra={"component": "payment_webhook", "setting": "PAYSTACK_SECRET_KEY"})
        try:
            verified = authenticate_webhook(raw_body, signature, settings.PAYSTACK_SECRET_KEY)
        except SignatureValidationError as exc:
            logger.warning("payment_webhook_rejected", extra={"component": "payment_webhook"})
            return _webhook_response(500, {"error": str(exc), "success": False})

        try:
            event = parse_webhook_event(verified)
            result = await reconciler.reconcile(event)
        except WebhookPayloadError as exc:
            logger.warning("payment_webhook_malformed", extra={"component": "payment_webhook", "error": str(exc)})
            return _webhook_response(500, {"error": str(exc), "success": False})
        except PaymentNotFoundError as exc:
            logger.warning(
                "payment_webhook_unknown_reference",
                extra={"component": "payment_webhook", "reference": exc.reference},
            )
            return _webhook_response(200, {"success": True, "status": "unknown_reference", "reference": exc.reference})
        except PersistenceError:
            logger.exception("payment_webhook_store_failed", extra={"component": "payment_webhook"})
            return _webhook_response(500, {"error": "payment store unavailable", "success": False})

        status = result.resulting_status.value if result.resulting_status else "ignored"
        return _webhook_response(200, {"success": True, "status": status, "reference": result.reference})

    return app
