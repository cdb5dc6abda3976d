from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic.functional_serializers import PlainSerializer


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def serialize_optional_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return serialize_datetime_to_utc_iso8601(value)


UtcDateTime = Annotated[
    datetime,
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]

# 사용 전 코드의 used_at 처럼 비어 있을 수 있는 시각
OptionalUtcDateTime = Annotated[
    Optional[datetime],
    PlainSerializer(
        serialize_optional_datetime,
        return_type=Optional[str],
        when_used="json",
    ),
]
