from __future__ import annotations

import os


KAFKA_BOOTSTRAP_SERVERS = "KAFKA_BOOTSTRAP_SERVERS"


def get_brokers() -> str | None:
    """Kafka 브로커 주소를 반환한다.

    설정되지 않았으면 None 을 반환하고, 호출 측은 이벤트 발행을 건너뛴다.
    (로컬 개발/메모리 저장소 모드에서는 Kafka 없이 동작해야 하기 때문)
    """

    value = os.getenv(KAFKA_BOOTSTRAP_SERVERS, "").strip()
    return value or None
