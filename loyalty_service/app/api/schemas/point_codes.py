from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from common.types.datetime import OptionalUtcDateTime, UtcDateTime

from ...models.point_code import PointCode, PointCodeKind, PointCodeResult
from ...models.redemption import RedemptionRecord


class GenerateCodeRequest(BaseModel):
    business_id: str = Field(min_length=1)
    program_id: str = Field(min_length=1)
    point_amount: int = Field(ge=0)
    expiry_minutes: int | None = Field(default=None, gt=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def expiry_or(self, default: int) -> int:
        return self.expiry_minutes if self.expiry_minutes is not None else default


class ProcessCodeRequest(BaseModel):
    code: str = Field(min_length=1, description="고객이 입력/스캔한 코드 문자열")
    user_id: str = Field(min_length=1)


class ValidateCodeRequest(BaseModel):
    code: str = Field(min_length=1)


class PointCodeResponse(BaseModel):
    id: str
    code: str
    kind: PointCodeKind
    business_id: str
    program_id: str
    point_amount: int
    is_used: bool
    used_by: str | None
    used_at: OptionalUtcDateTime
    created_at: UtcDateTime
    expires_at: UtcDateTime
    metadata: dict[str, Any]

    @classmethod
    def from_domain(cls, point_code: PointCode) -> "PointCodeResponse":
        return cls(
            id=point_code.id,
            code=point_code.code,
            kind=point_code.kind,
            business_id=point_code.business_id,
            program_id=point_code.program_id,
            point_amount=point_code.point_amount,
            is_used=point_code.is_used,
            used_by=point_code.used_by,
            used_at=point_code.used_at,
            created_at=point_code.created_at,
            expires_at=point_code.expires_at,
            metadata=point_code.metadata,
        )


class PointCodeResultResponse(BaseModel):
    success: bool
    message: str
    point_code: PointCodeResponse | None = None
    balance: int | None = None

    @classmethod
    def from_domain(cls, result: PointCodeResult) -> "PointCodeResultResponse":
        return cls(
            success=result.success,
            message=result.message,
            point_code=(
                PointCodeResponse.from_domain(result.point_code)
                if result.point_code is not None
                else None
            ),
            balance=result.balance,
        )


class InvalidationResponse(BaseModel):
    success: bool
    message: str


class ListActiveCodesResponse(BaseModel):
    total: int
    items: list[PointCodeResponse]


class RedemptionItem(BaseModel):
    id: str | None
    user_id: str
    business_id: str
    program_id: str
    point_amount: int
    code_id: str
    redeemed_at: UtcDateTime

    @classmethod
    def from_domain(cls, record: RedemptionRecord) -> "RedemptionItem":
        return cls(
            id=record.id,
            user_id=record.user_id,
            business_id=record.business_id,
            program_id=record.program_id,
            point_amount=record.point_amount,
            code_id=record.code_id,
            redeemed_at=record.redeemed_at,
        )
