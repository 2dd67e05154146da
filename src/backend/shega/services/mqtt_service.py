"""MQTT bus connection manager.

Owns the single aiomqtt client for the process. The router and dispatcher
receive it by injection instead of reaching for a module-level client.
Publishing is best-effort: a return means the transport took the message,
never that a device received it.
"""

import asyncio
import json
import ssl
from typing import Any, Awaitable, Callable

import aiomqtt
import structlog

from shega.services.contracts import Publisher

logger = structlog.get_logger()

# Type for async message handlers
MessageHandler = Callable[[str, bytes], Awaitable[Any]]


class PublishError(Exception):
    """Raised when the transport rejects or cannot take a publish."""
    pass


class BusConnection(Publisher):
    """Async MQTT client with explicit lifecycle and reconnect."""

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        username: str | None = None,
        password: str | None = None,
        client_id: str = "shega-backend",
        tls_enabled: bool = False,
        ca_cert_path: str | None = None,
        qos: int = 0,
        reconnect_interval: int = 2,
        max_reconnect_interval: int = 60,
        will: aiomqtt.Will | None = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username or None
        self.password = password or None
        self.client_id = client_id
        self.tls_enabled = tls_enabled
        self.ca_cert_path = ca_cert_path or None
        self.qos = qos
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_interval = max_reconnect_interval
        self.will = will

        self._client: aiomqtt.Client | None = None
        self._listener_task: asyncio.Task | None = None
        self._handlers: dict[str, MessageHandler] = {}
        self._connected = asyncio.Event()
        self._on_connect: list[Callable[[], Awaitable[None]]] = []

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def subscribe(self, topic_pattern: str, handler: MessageHandler) -> None:
        """Register a handler; subscriptions are (re)applied on every connect."""
        self._handlers[topic_pattern] = handler
        logger.info("Registered MQTT handler", topic_pattern=topic_pattern)

    def on_connect(self, callback: Callable[[], Awaitable[None]]) -> None:
        self._on_connect.append(callback)

    async def start(self) -> None:
        logger.info("Starting MQTT bus connection", broker=self.broker_host, port=self.broker_port)
        self._listener_task = asyncio.create_task(self._listen_loop(), name="shega-mqtt-listener")

    async def stop(self) -> None:
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        self._connected.clear()
        self._client = None
        logger.info("MQTT bus connection stopped")

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Block until the broker connection is up; False on timeout."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def publish(self, topic: str, payload: dict[str, Any] | str, retain: bool = False) -> None:
        """Hand one message to the transport.

        Raises:
            PublishError: Not connected, or the client rejected the publish.
        """
        client = self._client
        if client is None or not self.is_connected:
            raise PublishError("MQTT client not connected")
        body = payload if isinstance(payload, str) else json.dumps(payload)
        try:
            await client.publish(topic, body, qos=self.qos, retain=retain)
        except aiomqtt.MqttError as e:
            raise PublishError(str(e)) from e
        logger.debug("Published MQTT message", topic=topic, qos=self.qos)

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "hostname": self.broker_host,
            "port": self.broker_port,
            "identifier": self.client_id,
            "username": self.username,
            "password": self.password,
        }
        if self.tls_enabled:
            context = ssl.create_default_context(cafile=self.ca_cert_path)
            kwargs["tls_context"] = context
        if self.will is not None:
            kwargs["will"] = self.will
        return kwargs

    async def _listen_loop(self) -> None:
        """Main connection loop with exponential backoff reconnection."""
        interval = self.reconnect_interval
        while True:
            try:
                async with aiomqtt.Client(**self._client_kwargs()) as client:
                    self._client = client
                    self._connected.set()
                    interval = self.reconnect_interval  # Reset on success
                    logger.info("Connected to MQTT broker", broker=self.broker_host, port=self.broker_port)

                    for topic in self._handlers:
                        await client.subscribe(topic, qos=self.qos)
                        logger.info("Subscribed to MQTT topic", topic=topic)

                    for callback in self._on_connect:
                        try:
                            await callback()
                        except Exception as e:
                            logger.error("MQTT on-connect callback failed", error=str(e))

                    async for message in client.messages:
                        await self._dispatch_message(str(message.topic), message.payload)

            except aiomqtt.MqttError as e:
                self._mark_disconnected()
                logger.warning("MQTT connection lost, reconnecting", error=str(e), retry_in=interval)
                await asyncio.sleep(interval)
                interval = min(interval * 2, self.max_reconnect_interval)
            except asyncio.CancelledError:
                self._mark_disconnected()
                logger.info("MQTT listener task cancelled")
                raise
            except Exception as e:
                self._mark_disconnected()
                logger.error("Unexpected MQTT error, reconnecting", error=str(e), retry_in=interval)
                await asyncio.sleep(interval)
                interval = min(interval * 2, self.max_reconnect_interval)

    def _mark_disconnected(self) -> None:
        self._connected.clear()
        self._client = None

    async def _dispatch_message(self, topic: str, payload: Any) -> None:
        if isinstance(payload, str):
            payload = payload.encode()
        elif payload is None:
            payload = b""
        elif not isinstance(payload, (bytes, bytearray)):
            payload = str(payload).encode()

        for pattern, handler in self._handlers.items():
            if self.topic_matches(topic, pattern):
                try:
                    await handler(topic, bytes(payload))
                except Exception as e:
                    logger.error("MQTT handler error", topic=topic, pattern=pattern, error=str(e))
                return

        logger.debug("No handler for MQTT topic", topic=topic)

    @staticmethod
    def topic_matches(topic: str, pattern: str) -> bool:
        topic_parts = topic.split("/")
        pattern_parts = pattern.split("/")
        for i, pat in enumerate(pattern_parts):
            if pat == "#":
                return True
            if i >= len(topic_parts):
                return False
            if pat != "+" and pat != topic_parts[i]:
                return False
        return len(topic_parts) == len(pattern_parts)
