import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

# OpenTelemetry Imports (Basic Setup)
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from trackpro.auth import router as auth_router
from trackpro.billing import router as billing_router
from trackpro.core.config import settings
from trackpro.core.exceptions import APIException, WebhookVerificationError
from trackpro.core.limiter import limiter
from trackpro.logging_config import correlation_id_cv, setup_logging
from trackpro.tracking import router as tracking_router
from trackpro.webhooks import router as webhooks_router

# Call setup_logging early, before creating app or loggers
setup_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def setup_opentelemetry(app: FastAPI):
    if settings.OPENTELEMETRY_ENABLED:
        logger.info("Setting up OpenTelemetry")
        resource = Resource(attributes={SERVICE_NAME: "OrderTrackingPro"})

        provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(provider)

        if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
            endpoint = settings.OTEL_EXPORTER_OTLP_ENDPOINT
            logger.info(f"Configuring OTLP Exporter to: {endpoint}/v1/traces")
            try:
                exporter = OTLPSpanExporter(endpoint=f"{endpoint.strip('/')}/v1/traces")
                provider.add_span_processor(BatchSpanProcessor(exporter))
            except Exception as e:
                logger.error(f"Failed to initialize OTLP Exporter: {e}. Falling back to Console Exporter.")
                provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        else:
            logger.warning("OTEL_EXPORTER_OTLP_ENDPOINT not set. Defaulting to ConsoleSpanExporter.")
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

        FastAPIInstrumentor.instrument_app(app)
        logger.info("OpenTelemetry setup complete.")
    else:
        logger.info("OpenTelemetry tracing is disabled via OPENTELEMETRY_ENABLED setting.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_opentelemetry(app)
    logger.info(
        "Application startup complete.",
        extra={"props": {"environment": settings.ENVIRONMENT, "billing_required": settings.BILLING_REQUIRED}},
    )
    yield
    logger.info("Application shutdown.")


app = FastAPI(title="Order Tracking Pro", lifespan=lifespan)

# --- Add Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = correlation_id_cv.set(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_cv.reset(token)
    response.headers[REQUEST_ID_HEADER] = correlation_id
    return response


# --- Exception Handlers ---


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    if isinstance(exc, WebhookVerificationError):
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={"props": {"path": request.url.path, "status_code": exc.status_code}},
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        f"Unhandled error: {exc}", extra={"props": {"path": request.url.path}}
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Mount Routers ---
app.include_router(auth_router)
app.include_router(tracking_router)
app.include_router(billing_router)
app.include_router(webhooks_router)


@app.get("/health")
@limiter.limit("10/minute")
async def health_check(request: Request):
    logger.debug("Health check endpoint called")
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "config": {
            "database_url": bool(settings.DATABASE_URL),
            "shopify_api_key": bool(settings.SHOPIFY_API_KEY),
            "shopify_api_secret": bool(settings.SHOPIFY_API_SECRET),
            "shopify_webhook_secret": bool(settings.SHOPIFY_WEBHOOK_SECRET),
            "backend_url": bool(settings.BACKEND_URL),
            "frontend_url": bool(settings.FRONTEND_URL),
        },
    }


if __name__ == "__main__":
    # Production runs under the uvicorn CLI
    import uvicorn

    logger.info("Starting Uvicorn directly for local testing")
    uvicorn.run(app, host="0.0.0.0", port=8000)
