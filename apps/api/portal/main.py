import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from portal.api.errors import register_error_handlers
from portal.api.routes import router as api_router
from portal.core.config import get_settings
from portal.core.context import RequestContextMiddleware
from portal.core.dependencies import build_blob_store, build_credential_verifier
from portal.logging import configure_logging
from portal.middleware.correlation_id import CorrelationIdMiddleware
from portal.middleware.request_logging import RequestLoggingMiddleware
from portal.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("portal.lifecycle")
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("portal.started", extra={"action": "startup"})
    yield
    logger.info("portal.stopped", extra={"action": "shutdown"})


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.state.credential_verifier = build_credential_verifier(settings)
app.state.blob_store = build_blob_store(settings)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-correlation-id", "x-request-id"],
)
app.include_router(api_router)
register_error_handlers(app)

if settings.otel_enabled:
    setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
