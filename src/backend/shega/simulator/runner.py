"""Simulation loop: ticks every home and publishes through the bus."""

import asyncio
import json
import random
import time
from typing import Any

import aiomqtt
import structlog

from shega.core.topics import BusTopics
from shega.schemas.telemetry import DeviceKind
from shega.services.mqtt_service import BusConnection, PublishError
from shega.simulator.nodes import Home, StoveNode

logger = structlog.get_logger()


class Simulation:
    """Drives ``homes`` simulated households against one MQTT broker.

    Stove nodes listen on the shared stove control topic and act only on
    commands whose embedded ``deviceId`` is theirs.
    """

    def __init__(
        self,
        bus: BusConnection,
        homes: int = 3,
        interval: float = 60.0,
        topics: BusTopics | None = None,
        rng: random.Random | None = None,
        tick_seconds: float = 1.0,
        local_alerts: bool = True,
    ):
        self.bus = bus
        self.topics = topics or BusTopics()
        self.rng = rng or random.Random()
        self.tick_seconds = tick_seconds
        self.homes = [
            Home(i, self.rng, interval=interval, topics=self.topics, local_alerts=local_alerts)
            for i in range(homes)
        ]
        self.stoves: dict[str, StoveNode] = {h.stove_node.device_id: h.stove_node for h in self.homes}

        self.bus.subscribe(self.topics.control(DeviceKind.STOVENODE.value), self.on_control)
        self.bus.on_connect(self.announce_online)

    async def announce_online(self) -> None:
        await self.bus.publish(self.topics.availability, {"clientId": self.bus.client_id, "status": "online"})

    async def on_control(self, topic: str, payload: bytes) -> bool:
        """Apply a control message to the addressed stove; unknown targets are ignored."""
        try:
            message: Any = json.loads(payload.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Bad control payload", topic=topic, error=str(e))
            return False
        if not isinstance(message, dict):
            return False

        stove = self.stoves.get(str(message.get("deviceId", "")))
        if stove is None:
            return False

        command = message.get("command")
        return stove.apply_command(command if isinstance(command, dict) else message)

    async def tick(self, now: float | None = None) -> int:
        """Advance every home once and publish what is due; returns publish count."""
        now = time.time() if now is None else now
        published = 0
        for home in self.homes:
            for topic, payload in home.tick(now):
                try:
                    await self.bus.publish(topic, payload)
                    home.mark_sent(topic, now)
                    published += 1
                except PublishError as e:
                    logger.warning("Simulator publish failed", topic=topic, error=str(e))
        return published

    async def run(self) -> None:
        logger.info("Simulating homes", homes=len(self.homes), interval=self.homes[0].interval if self.homes else None)
        await self.bus.start()
        try:
            await self.bus.wait_connected()
            while True:
                await self.tick()
                await asyncio.sleep(self.tick_seconds)
        finally:
            await self.bus.stop()


def availability_will(topics: BusTopics, client_id: str) -> aiomqtt.Will:
    """Last-will message marking the simulator offline."""
    return aiomqtt.Will(
        topic=topics.availability,
        payload=json.dumps({"clientId": client_id, "status": "offline"}),
        qos=0,
        retain=False,
    )
