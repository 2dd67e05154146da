"""Prometheus metrics instrumentation for SHEGA."""

from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

# Inbound bus messages by pipeline outcome
ingest_messages_total = Counter(
    "shega_ingest_messages_total",
    "Inbound bus messages processed by the ingestion router",
    ["outcome"],
)

# Alert items published back onto the bus
alerts_published_total = Counter(
    "shega_alerts_published_total",
    "Alert items derived from telemetry",
    ["type", "level"],
)

# Control commands handed to the transport
commands_dispatched_total = Counter(
    "shega_commands_dispatched_total",
    "Control commands dispatched to devices",
    ["device_type", "result"],
)

# Live fan-out connections gauge
websocket_connections = Gauge(
    "shega_websocket_connections_active",
    "Number of active Socket.IO connections",
)


def setup_metrics(app) -> Instrumentator:
    """Set up Prometheus metrics instrumentation for FastAPI app."""
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/metrics"],
    )
    instrumentator.instrument(app)
    return instrumentator


def expose_metrics(app, instrumentator: Instrumentator) -> None:
    """Expose the /metrics endpoint."""
    instrumentator.expose(app, include_in_schema=False, should_gzip=True)


def record_ingest_outcome(outcome: str) -> None:
    ingest_messages_total.labels(outcome=outcome).inc()


def record_alert_item(alert_type: str, level: str) -> None:
    alerts_published_total.labels(type=alert_type, level=level).inc()


def record_command(device_type: str, result: str) -> None:
    commands_dispatched_total.labels(device_type=device_type, result=result).inc()


def increment_websocket_connections() -> None:
    """Increment active Socket.IO connections count."""
    websocket_connections.inc()


def decrement_websocket_connections() -> None:
    """Decrement active Socket.IO connections count."""
    websocket_connections.dec()
