from __future__ import annotations

from .core import Topic


TOPIC_POINT_CODE = Topic("loyalty.point_code")
