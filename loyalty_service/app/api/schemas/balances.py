from __future__ import annotations

from pydantic import BaseModel, Field


class BalanceResponse(BaseModel):
    user_id: str
    business_id: str
    points: int


class SetBalanceRequest(BaseModel):
    """외부 거래 기록 흐름에서 잔액을 직접 맞출 때 사용한다."""

    points: int = Field(ge=0)
