import logging
import threading
from contextlib import asynccontextmanager
from typing import Dict, Optional, Sequence

import uvicorn
from fastapi import FastAPI
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
from prometheus_client import CollectorRegistry, Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.types import ASGIApp

from webrelay.vars import LOG_LEVEL, METRICS_PATH, OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")

_tracing_lock = threading.Lock()
_tracing_configured = False


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops the per-message ASGI send/receive spans, which
    would otherwise outnumber the proxy and dispatch spans many times over.
    """

    NOISY_EVENTS = {"http.response.start", "http.response.body", "http.request"}

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") in self.NOISY_EVENTS
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def parse_otlp_headers(value: str) -> Optional[Dict[str, str]]:
    """Parse ``key=value,key2=value2`` into a header dict."""
    headers = {}
    for item in value.split(","):
        name, separator, header_value = item.partition("=")
        if separator and name.strip():
            headers[name.strip()] = header_value.strip()
    return headers or None


def configure_tracing() -> None:
    """Install the SDK tracer provider once per process."""
    global _tracing_configured
    with _tracing_lock:
        if _tracing_configured:
            return
        tracer_provider = TracerProvider(
            resource=Resource.create({"service.name": SERVICE_NAME})
        )
        if OTLP_ENDPOINT:
            logger.info(f"[Server] Exporting traces to {OTLP_ENDPOINT}")
            otlp_exporter = OTLPSpanExporter(
                endpoint=OTLP_ENDPOINT,
                headers=parse_otlp_headers(OTLP_HEADERS),
            )
            tracer_provider.add_span_processor(
                BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
            )
        trace.set_tracer_provider(tracer_provider)
        _tracing_configured = True


def create_app(target: ASGIApp) -> FastAPI:
    """
    Host a webrelay App or ReverseProxy behind FastAPI with Prometheus
    metrics and OpenTelemetry request tracing. Every path except the metrics
    endpoint reaches ``target``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        aclose = getattr(target, "aclose", None)
        if aclose is not None:
            logger.info("[Server] Closing upstream connections")
            await aclose()

    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

    # A registry per app keeps repeated create_app calls from colliding
    registry = CollectorRegistry()
    if METRICS_PATH:
        Instrumentator(registry=registry).instrument(app).expose(
            app, endpoint=METRICS_PATH, include_in_schema=False
        )
    app_info = Info("webrelay_app_info", "Application Info", registry=registry)
    app_info.info({"app_name": SERVICE_NAME})

    configure_tracing()
    FastAPIInstrumentor.instrument_app(app, excluded_urls=METRICS_PATH or "")

    app.mount("/", target)
    return app


def run(
    app: ASGIApp,
    host: str,
    port: int,
    background: bool = False,
) -> Optional[uvicorn.Server]:
    """
    Serve ``app`` with uvicorn. Blocks until shutdown (SIGINT/SIGTERM), or
    with ``background=True`` starts on a daemon thread and returns the server;
    set ``server.should_exit = True`` to stop it.
    """
    config = uvicorn.Config(app, host=host, port=port, log_level=LOG_LEVEL)
    server = uvicorn.Server(config)
    logger.info(f"[Server] Listening on {host}:{port}")

    if not background:
        server.run()
        return None

    thread = threading.Thread(target=server.run, name=f"webrelay-{port}", daemon=True)
    thread.start()
    return server
