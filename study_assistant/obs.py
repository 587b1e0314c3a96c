"""Observability utilities built on OpenTelemetry spans.

- init_tracing: installs a TracerProvider once; with TRACE_TO_CONSOLE set, spans are
  exported to stdout so users can see pipeline timings without a collector. Any other
  exporter can be configured externally through the OpenTelemetry SDK.
- span: context manager wrapping a unit of work (ingestion stages, retrieval, generation).

Environment/config dependencies are read from study_assistant.config.settings.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from study_assistant.config import settings

_tracing_inited: bool = False


def init_tracing() -> None:
    """Initialize the global tracer provider.

    Safe to call multiple times; only the first call has an effect.
    """
    global _tracing_inited
    if _tracing_inited:
        return
    tp = TracerProvider()
    if settings.TRACE_TO_CONSOLE:
        tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)
    _tracing_inited = True


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[trace.Span]:
    """Run the enclosed block inside an OpenTelemetry span.

    Args:
        name: Span name, e.g. 'rag.retrieve'.
        attributes: Optional primitive attributes set on the span.

    Yields:
        Span: The active span, for callers that want to add attributes.

    Notes:
        Exceptions are recorded on the span and re-raised.
    """
    tracer = trace.get_tracer("study_assistant")
    with tracer.start_as_current_span(name) as current:
        for k, v in (attributes or {}).items():
            if v is not None:
                current.set_attribute(k, v)
        yield current
