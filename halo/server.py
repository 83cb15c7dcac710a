import logging
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from halo.models import ErrorResponse
from halo.proxy.errors import (
    InvalidTarget,
    ProxyError,
    Unresolvable,
    UpstreamFailure,
)
from halo.routes import register_catch_all, router
from halo.utils.exception_logging import (
    format_exception_message,
    format_stack,
    log_exception_with_details,
)
from halo.vars import DEVELOPMENT_MODE, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")

# No docs or schema routes: /docs and friends belong to proxied sites
app = FastAPI(title=SERVICE_NAME, docs_url=None, redoc_url=None, openapi_url=None)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)


class FilteringSpanExporter(SpanExporter):
    """
    Drops the per-chunk ASGI body spans that streamed binary responses produce.
    """

    dropped_event_types = frozenset({"http.response.body"})

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def _keep(self, span: ReadableSpan) -> bool:
        attributes = span.attributes or {}
        return attributes.get("asgi.event.type") not in self.dropped_event_types

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if self._keep(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=(OTLP_HEADERS.split(",") if OTLP_HEADERS else None),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )
    logger.info(f"[Server] Exporting traces to {OTLP_ENDPOINT}")

FastAPIInstrumentor.instrument_app(app)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def internal_error(exc: BaseException) -> ErrorResponse:
    if DEVELOPMENT_MODE:
        return ErrorResponse(
            error="Internal Server Error",
            message=format_exception_message(exc),
            stack=format_stack(exc),
        )
    return ErrorResponse(
        error="Internal Server Error", message="An unexpected error occurred"
    )


def error_response(exc: ProxyError) -> ErrorResponse:
    if isinstance(exc, InvalidTarget):
        return ErrorResponse(error=exc.message)
    if isinstance(exc, Unresolvable):
        return ErrorResponse(error="Not Found", message=exc.message, hint=exc.reason)
    if isinstance(exc, UpstreamFailure):
        return ErrorResponse(error="Proxy error", message=exc.message)
    return internal_error(getattr(exc, "cause", None) or exc)


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    if isinstance(exc, Unresolvable):
        logger.info(f"[Server] {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_response(exc).body())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_exception_with_details(logger, f"[Server] {request.method} {request.url.path}", exc)
    return JSONResponse(status_code=500, content=internal_error(exc).body())


app.include_router(router)
register_catch_all(app.router)
