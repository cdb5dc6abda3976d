"""포인트 코드 도메인 모델.

비즈니스가 발급하는 1회용 적립(earn)/교환(redeem) 코드와 처리 결과를 표현한다.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class PointCodeKind(StrEnum):
    EARN = "earn"
    REDEEM = "redeem"


class PointCodeError(StrEnum):
    """포인트 코드 처리 실패 사유."""

    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    PERMISSION_DENIED = "permission_denied"
    STORAGE_FAILURE = "storage_failure"


class PointCode(BaseModel):
    """1회용 포인트 코드.

    - is_used 는 False -> True 로 딱 한 번만 바뀌고 되돌려지지 않는다.
    - metadata 는 클라이언트 표시용(프로그램 이름 등)이며 서비스는 해석하지 않는다.
    """

    id: str
    code: str
    kind: PointCodeKind
    business_id: str
    program_id: str
    point_amount: int = Field(ge=0)
    is_used: bool = False
    used_by: str | None = None
    used_at: datetime | None = None
    created_at: datetime
    expires_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class PointCodeResult(BaseModel):
    """process/validate 결과. 예상 가능한 실패는 예외 대신 error 로 표현한다."""

    success: bool
    message: str
    error: PointCodeError | None = None
    point_code: PointCode | None = None
    balance: int | None = None  # 처리 후 고객의 비즈니스별 잔액

    @classmethod
    def failure(
        cls,
        error: PointCodeError,
        message: str,
        point_code: PointCode | None = None,
    ) -> "PointCodeResult":
        return cls(success=False, message=message, error=error, point_code=point_code)


class InvalidationResult(BaseModel):
    success: bool
    message: str
    error: PointCodeError | None = None
