#!/usr/bin/env python3
"""SHEGA multi-home simulator CLI."""

import argparse
import asyncio
import random
import uuid

from shega.core.config import settings
from shega.core.logging_config import configure_logging
from shega.core.topics import BusTopics
from shega.services.mqtt_service import BusConnection
from shega.simulator.runner import Simulation, availability_will

FAST_INTERVAL_SECONDS = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Simulate homes, each with an AirNode and a StoveNode, publishing over MQTT",
    )
    parser.add_argument("--broker-host", default=settings.mqtt_broker_host, help="MQTT broker host")
    parser.add_argument("--broker-port", type=int, default=settings.mqtt_broker_port, help="MQTT broker port")
    parser.add_argument("--homes", type=int, default=3, help="Number of homes to simulate")
    parser.add_argument("--interval", type=float, default=60.0, help="Publish interval in seconds")
    parser.add_argument("--qos", type=int, choices=(0, 1, 2), default=0, help="MQTT QoS for publishes")
    parser.add_argument("--fast", action="store_true", help="Override interval to 5 seconds")
    parser.add_argument("--prefix", default=settings.mqtt_topic_prefix, help="Topic prefix")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs")
    parser.add_argument("--no-local-alerts", action="store_true", help="Do not publish node-side alerts")
    parser.add_argument("--log-level", default=settings.log_level)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    topics = BusTopics(prefix=args.prefix)
    client_id = f"shega-sim-{uuid.uuid4().hex[:8]}"
    bus = BusConnection(
        broker_host=args.broker_host,
        broker_port=args.broker_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        client_id=client_id,
        qos=args.qos,
        will=availability_will(topics, client_id),
    )
    simulation = Simulation(
        bus,
        homes=args.homes,
        interval=FAST_INTERVAL_SECONDS if args.fast else args.interval,
        topics=topics,
        rng=random.Random(args.seed),
        local_alerts=not args.no_local_alerts,
    )

    try:
        asyncio.run(simulation.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
