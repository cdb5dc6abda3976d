from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Event:
    """Kafka 로 발행되는 이벤트 봉투.

    payload 는 직렬화 직전 형태(dict)로 두고, JSON 인코딩은 KafkaEventBus 가 맡는다.
    id 는 메시지 키로도 쓰여 같은 이벤트의 재발행을 컨슈머가 걸러낼 수 있다.
    """

    id: str
    payload: Any


@dataclass(frozen=True, slots=True)
class Topic:
    base: str
