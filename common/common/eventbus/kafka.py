from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict

from confluent_kafka import Producer

from .config import get_brokers
from .core import Event

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 이벤트 발행기."""

    def __init__(self, brokers: str) -> None:
        self._producer = Producer({"bootstrap.servers": brokers})
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(asdict(event), ensure_ascii=False).encode("utf-8")

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.id.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)


_bus: KafkaEventBus | None = None
_bus_lock = threading.Lock()


def get_kafka_event_bus() -> KafkaEventBus | None:
    """프로세스 전역 KafkaEventBus 를 반환한다. 브로커 미설정 시 None."""

    global _bus

    if _bus is not None:
        return _bus

    brokers = get_brokers()
    if brokers is None:
        return None

    with _bus_lock:
        if _bus is None:
            _bus = KafkaEventBus(brokers)
            logger.info("Kafka producer initialized (brokers=%s)", brokers)
    return _bus
