"""Component-level OpenTelemetry instrumentation for registered members."""

import functools
import inspect
import logging
import os
import sys
from typing import Callable, Optional, TypeVar

from opentelemetry import context, trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.trace import Span, Status, StatusCode

from declmcp import __version__

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global tracer instance
_tracer: Optional[trace.Tracer] = None
_provider: Optional[TracerProvider] = None


def init_telemetry(
    service_name: str = "declmcp-server",
    exporter: Optional[SpanExporter] = None,
) -> Optional[TracerProvider]:
    """Initialize OpenTelemetry tracing for registered members.

    Spans go to ``exporter``, or to the console on stderr when none is given.
    """
    global _provider, _tracer

    resource = Resource.create(
        {
            "service.name": os.environ.get("OTEL_SERVICE_NAME", service_name),
            "service.version": os.environ.get("SERVICE_VERSION", __version__),
        }
    )
    provider = TracerProvider(resource=resource)

    if exporter is None:
        exporter = ConsoleSpanExporter(out=sys.stderr)
    provider.add_span_processor(
        BatchSpanProcessor(
            exporter,
            schedule_delay_millis=1000,
            export_timeout_millis=5000,
        )
    )

    # Only replace the default proxy provider to avoid the override warning
    existing_provider = trace.get_tracer_provider()
    if type(existing_provider).__name__ == "ProxyTracerProvider":
        trace.set_tracer_provider(provider)

    _provider = provider
    _tracer = None
    logger.info(f"Telemetry enabled for service {service_name}")
    return provider


def shutdown_telemetry() -> None:
    """Flush pending spans and disable instrumentation of new members."""
    global _provider, _tracer
    if _provider is not None:
        _provider.force_flush(timeout_millis=1000)
        _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> trace.Tracer:
    """Get or create the global tracer instance."""
    global _tracer

    # If no provider is set, telemetry is disabled - return no-op tracer
    if _provider is None:
        return trace.get_tracer("declmcp.components.noop", __version__)

    if _tracer is None:
        _tracer = _provider.get_tracer("declmcp.components", __version__)
    return _tracer


def _add_component_attributes(span: Span, kind: str, name: str, func: Callable) -> None:
    """Add standard component attributes to a span."""
    span.set_attribute("mcp.component.type", kind)
    span.set_attribute("mcp.component.name", name)
    span.set_attribute(f"mcp.{kind}.function", getattr(func, "__name__", type(func).__name__))
    span.set_attribute(f"mcp.{kind}.module", getattr(func, "__module__", None) or "unknown")


def _add_result_attributes(span: Span, kind: str, result: object) -> None:
    if result is None:
        return
    if isinstance(result, (str, int, float, bool)):
        span.set_attribute(f"mcp.{kind}.result.type", type(result).__name__)
        if isinstance(result, str):
            span.set_attribute(f"mcp.{kind}.result.length", len(result))
    elif isinstance(result, (list, dict)):
        span.set_attribute(f"mcp.{kind}.result.count", len(result))
        span.set_attribute(f"mcp.{kind}.result.type", "array" if isinstance(result, list) else "object")
    else:
        span.set_attribute(f"mcp.{kind}.result.class", type(result).__name__)


def _record_error(span: Span, kind: str, error: Exception) -> None:
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.add_event(f"{kind}.execution.error", {"error.type": type(error).__name__})


def instrument_component(func: Callable[..., T], kind: str, name: str) -> Callable[..., T]:
    """Wrap an implementation member so each call runs inside a span.

    The span is named ``mcp.<kind>.<name>.execute``. When telemetry has not
    been initialized the member is returned unchanged.
    """
    if _provider is None:
        return func

    tracer = get_tracer()
    span_name = f"mcp.{kind}.{name}.execute"

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            span = tracer.start_span(span_name)
            token = context.attach(trace.set_span_in_context(span))
            try:
                _add_component_attributes(span, kind, name, func)
                span.set_attribute("mcp.execution.async", True)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _record_error(span, kind, e)
                    raise
                span.set_status(Status(StatusCode.OK))
                _add_result_attributes(span, kind, result)
                return result
            finally:
                span.end()
                context.detach(token)

        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        span = tracer.start_span(span_name)
        token = context.attach(trace.set_span_in_context(span))
        try:
            _add_component_attributes(span, kind, name, func)
            span.set_attribute("mcp.execution.async", False)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record_error(span, kind, e)
                raise
            span.set_status(Status(StatusCode.OK))
            _add_result_attributes(span, kind, result)
            return result
        finally:
            span.end()
            context.detach(token)

    return sync_wrapper
