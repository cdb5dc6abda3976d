from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class RedemptionRecord(BaseModel):
    """교환 코드 사용 이력. 한 번 기록되면 수정/삭제하지 않는다."""

    id: str | None = None
    user_id: str
    business_id: str
    program_id: str
    point_amount: int
    code_id: str
    redeemed_at: datetime
