from __future__ import annotations

import time
from typing import Any, Mapping

from .core import Event


def new_json_event(payload: Mapping[str, Any], *, event_id: str | None = None) -> Event:
    """dict 페이로드를 Event 로 감싼다. event_id 가 없으면 나노초 타임스탬프를 쓴다."""
    return Event(id=event_id or str(time.time_ns()), payload=dict(payload))
