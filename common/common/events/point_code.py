"""포인트 코드 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class PointCodeEventType:
    """포인트 코드 이벤트 타입 상수."""

    POINT_CODE_EARNED = "point_code.earned"
    POINT_CODE_REDEEMED = "point_code.redeemed"
    POINT_CODE_INVALIDATED = "point_code.invalidated"


@dataclass(slots=True)
class PointCodeProcessedEvent:
    """고객이 포인트 코드를 사용(적립/교환)했을 때 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    user_id: str
    business_id: str
    program_id: str
    code_id: str
    point_amount: int
    balance: int | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        balance = data.get("balance")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            user_id=str(data["user_id"]),
            business_id=str(data["business_id"]),
            program_id=str(data["program_id"]),
            code_id=str(data["code_id"]),
            point_amount=int(data["point_amount"]),
            balance=int(balance) if balance is not None else None,
        )


@dataclass(slots=True)
class PointCodeInvalidatedEvent:
    """비즈니스가 미사용 코드를 무효화했을 때 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    business_id: str
    code_id: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            business_id=str(data["business_id"]),
            code_id=str(data["code_id"]),
        )
