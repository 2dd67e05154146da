"""MQTT topic layout shared by the backend and the simulator."""

from dataclasses import dataclass

from shega.core.config import settings


@dataclass(frozen=True)
class BusTopics:
    """Topic names derived from a single prefix.

    Devices of one type share a control topic and filter commands by the
    ``deviceId`` embedded in the payload.
    """

    prefix: str = "shega"

    @property
    def air_data(self) -> str:
        return f"{self.prefix}/airnode/data"

    @property
    def stove_status(self) -> str:
        return f"{self.prefix}/stovenode/status"

    @property
    def alerts(self) -> str:
        return f"{self.prefix}/alerts"

    @property
    def availability(self) -> str:
        return f"{self.prefix}/device/availability"

    @property
    def ingest_subscriptions(self) -> list[str]:
        """Patterns the ingestion router listens on."""
        return [
            f"{self.prefix}/+/data",
            f"{self.prefix}/+/status",
            self.alerts,
        ]

    def control(self, device_type: str) -> str:
        return f"{self.prefix}/{device_type.lower()}/control"


def get_topics() -> BusTopics:
    return BusTopics(prefix=settings.mqtt_topic_prefix)
