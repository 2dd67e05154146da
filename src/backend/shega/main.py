"""SHEGA FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from shega.api import router as api_router
from shega.core.config import settings
from shega.core.deps import async_session_factory, engine
from shega.core.logging_config import configure_logging
from shega.core.topics import get_topics
from shega.models.base import Base
from shega.services.command_dispatcher import CommandDispatcher
from shega.services.device_registry import SqlDeviceRegistry
from shega.services.ingestion_router import IngestionRouter
from shega.services.mqtt_service import BusConnection
from shega.services.socketio import SocketIOFanout, create_combined_app
from shega.services.telemetry_store import SqlTelemetryStore
from shega.services.threshold_evaluator import ThresholdConfig

configure_logging(settings.log_level)
logger = structlog.get_logger()


def build_bus_connection() -> BusConnection:
    return BusConnection(
        broker_host=settings.mqtt_broker_host,
        broker_port=settings.mqtt_broker_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        client_id=settings.mqtt_client_id,
        tls_enabled=settings.mqtt_tls_enabled,
        ca_cert_path=settings.mqtt_ca_cert,
        qos=settings.mqtt_qos,
        reconnect_interval=settings.mqtt_reconnect_interval,
        max_reconnect_interval=settings.mqtt_max_reconnect_interval,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting SHEGA backend", environment=settings.environment)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    topics = get_topics()
    bus = build_bus_connection()
    registry = SqlDeviceRegistry(async_session_factory)
    fanout = SocketIOFanout()

    ingestion = IngestionRouter(
        registry=registry,
        store=SqlTelemetryStore(async_session_factory),
        fanout=fanout,
        publisher=bus,
        topics=topics,
        thresholds=ThresholdConfig.from_settings(settings),
        source_id=settings.mqtt_client_id,
    )
    for pattern in topics.ingest_subscriptions:
        bus.subscribe(pattern, ingestion.on_message)

    app.state.bus = bus
    app.state.ingestion_router = ingestion
    app.state.command_dispatcher = CommandDispatcher(
        registry=registry,
        publisher=bus,
        topics=topics,
        fanout=fanout,
    )

    if settings.mqtt_enabled:
        await bus.start()
        logger.info("MQTT ingestion started", broker=settings.mqtt_broker_host, prefix=topics.prefix)
    else:
        logger.info("MQTT disabled; ingestion and command dispatch are offline")

    yield

    # Shutdown
    logger.info("Shutting down SHEGA backend")
    await bus.stop()
    await engine.dispose()


fastapi_app = FastAPI(
    title=settings.app_name,
    description="Home environmental-safety telemetry: ingestion, alerting and device control",
    version="0.1.0",
    lifespan=lifespan,
)

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

fastapi_app.include_router(api_router, prefix="/api/v1")

if settings.metrics_enabled:
    from shega.core.metrics import expose_metrics, setup_metrics

    expose_metrics(fastapi_app, setup_metrics(fastapi_app))


@fastapi_app.get("/health")
async def health(request: Request) -> dict:
    """Liveness plus bus connection state."""
    bus = getattr(request.app.state, "bus", None)
    return {
        "status": "ok",
        "mqtt_connected": bool(bus and bus.is_connected),
    }


# Socket.IO wraps FastAPI; run with `uvicorn shega.main:app`
app = create_combined_app(fastapi_app)
