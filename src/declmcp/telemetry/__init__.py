"""OpenTelemetry instrumentation for registered members."""

from declmcp.telemetry.instrumentation import (
    get_tracer,
    init_telemetry,
    instrument_component,
    shutdown_telemetry,
)

__all__ = ["get_tracer", "init_telemetry", "instrument_component", "shutdown_telemetry"]
