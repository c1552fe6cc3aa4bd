"""OpenTelemetry tracing for the bridge.

Spans wrap each inbound plugin message (``sidebot.router.dispatch``) and each
Claude call (``sidebot.ai.complete``). The exporter is chosen by
``Settings.otel_exporter``:

  - ``"console"`` (default): spans print to stdout.
  - ``"otlp"``: spans ship to ``OTEL_EXPORTER_OTLP_ENDPOINT``.
  - ``"none"``: spans are created but never exported.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

logger = logging.getLogger(__name__)

_SERVICE_NAME = "sidebot-bridge"
_TRACER_NAME = "sidebot"
_initialized = False


def _otlp_processor() -> SpanProcessor | None:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
    except ImportError:
        logger.warning("[Telemetry] OTLP exporter not installed — falling back to console.")
        return None
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    logger.info("[Telemetry] OTLP exporter → %s", endpoint)
    return BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint))


def init_telemetry(exporter: str = "console") -> None:
    """Install the global TracerProvider once per process."""
    global _initialized
    if _initialized:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": _SERVICE_NAME}))

    exporter = exporter.lower()
    if exporter == "none":
        logger.info("[Telemetry] Span export disabled.")
    else:
        processor = _otlp_processor() if exporter == "otlp" else None
        if processor is None:
            processor = SimpleSpanProcessor(ConsoleSpanExporter())
            logger.info("[Telemetry] Console exporter active.")
        provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)
    _initialized = True


def get_tracer() -> trace.Tracer:
    """Return the bridge tracer (safe to call before ``init_telemetry``)."""
    return trace.get_tracer(_TRACER_NAME)
