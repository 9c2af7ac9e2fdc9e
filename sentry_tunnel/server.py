import logging
from contextlib import asynccontextmanager
from typing import Sequence

import httpx
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
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from sentry_tunnel.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME, TUNNEL_PATH
from sentry_tunnel.tunnel import router
from sentry_tunnel.tunnel.policy import get_policy

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    policy = get_policy()
    policy.log_summary()
    logger.info(f"Expecting requests to path '{TUNNEL_PATH}'")

    # One pool for the whole process; per-request timeouts come from the policy
    app.state.upstream_client = httpx.AsyncClient(
        timeout=httpx.Timeout(policy.upstream_timeout),
    )
    try:
        yield
    finally:
        await app.state.upstream_client.aclose()


app = FastAPI(title="Sentry Tunnel", lifespan=lifespan)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)


class StreamChunkSpanFilter(SpanExporter):
    """
    Exporter wrapper for relayed responses. The ASGI instrumentation opens one
    ``http.response.body`` span per chunk streamed back from Sentry; those are
    dropped and every other span goes to the wrapped exporter.
    """

    def __init__(self, exporter: SpanExporter, event_type: str = "http.response.body"):
        self.exporter = exporter
        self.event_type = event_type

    def is_chunk(self, span: ReadableSpan) -> bool:
        attributes = span.attributes or {}
        return attributes.get("asgi.event.type") == self.event_type

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if not self.is_chunk(span)]
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
        BatchSpanProcessor(StreamChunkSpanFilter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics")

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
