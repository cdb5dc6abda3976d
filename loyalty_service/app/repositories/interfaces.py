from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol

from ..models.point_code import PointCode
from ..models.redemption import RedemptionRecord


class DuplicateCodeError(Exception):
    """같은 코드 문자열이 이미 code_index 에 존재할 때 발생한다."""

    def __init__(self, code: str) -> None:
        super().__init__(f"point code already exists: {code}")
        self.code = code


class RedeemStatus(StrEnum):
    REDEEMED = "redeemed"
    CODE_UNAVAILABLE = "code_unavailable"  # 이미 사용됐거나 만료/삭제됨
    INSUFFICIENT_BALANCE = "insufficient_balance"


@dataclass(slots=True)
class RedeemOutcome:
    """교환 처리 결과. balance 는 성공 시 차감 후 잔액, 잔액 부족 시 현재 잔액이다."""

    status: RedeemStatus
    point_code: PointCode | None = None
    balance: int = 0


class PointCodeRepositoryInterface(Protocol):
    """point_codes + code_index 컬렉션이 따라야 할 계약.

    - 상태 전이(mark_used, delete_unused)는 조건부 단일 연산이어야 한다.
      동시에 두 요청이 들어와도 하나만 성공한다.
    """

    def insert(self, point_code: PointCode) -> PointCode:  # pragma: no cover - Protocol
        """코드와 역색인을 함께 저장한다. 코드 충돌 시 DuplicateCodeError."""
        ...

    def find_id_by_code(self, code: str) -> str | None:  # pragma: no cover - Protocol
        ...

    def find_by_id(self, code_id: str) -> PointCode | None:  # pragma: no cover - Protocol
        ...

    def mark_used(
        self, code_id: str, user_id: str, used_at: datetime
    ) -> PointCode | None:  # pragma: no cover - Protocol
        """is_used=False 이고 만료되지 않은 경우에만 사용 처리한다. 실패 시 None."""
        ...

    def delete_unused(
        self, code_id: str, business_id: str
    ) -> PointCode | None:  # pragma: no cover - Protocol
        """소유 비즈니스의 미사용 코드만 삭제하고 삭제된 코드를 반환한다. 실패 시 None."""
        ...

    def list_active_by_business(
        self, business_id: str, now: datetime
    ) -> list[PointCode]:  # pragma: no cover - Protocol
        ...

    def redeem(
        self,
        point_code: PointCode,
        user_id: str,
        now: datetime,
        record: RedemptionRecord,
    ) -> RedeemOutcome:  # pragma: no cover - Protocol
        """사용 처리, 잔액 차감, 이력 기록을 하나의 원자적 단위로 수행한다.

        사용 가능 여부를 먼저 확인하므로, 이미 사용된 코드는 잔액과 무관하게
        CODE_UNAVAILABLE 이다. 잔액이 부족하면 아무것도 바꾸지 않는다.
        """
        ...


class AccountBalanceRepositoryInterface(Protocol):
    """users 도큐먼트의 비즈니스별 포인트 잔액(points.<business_id>) 접근 계약."""

    def get_balance(
        self, user_id: str, business_id: str
    ) -> int:  # pragma: no cover - Protocol
        ...

    def set_balance(
        self, user_id: str, business_id: str, value: int
    ) -> None:  # pragma: no cover - Protocol
        ...

    def increment(
        self, user_id: str, business_id: str, amount: int
    ) -> int:  # pragma: no cover - Protocol
        """원자적으로 더하고 변경 후 잔액을 반환한다."""
        ...

    def try_decrement(
        self, user_id: str, business_id: str, amount: int
    ) -> int | None:  # pragma: no cover - Protocol
        """잔액이 amount 이상일 때만 원자적으로 차감한다. 부족하면 None."""
        ...


class RedemptionRepositoryInterface(Protocol):
    """redemptions 컬렉션(append-only) 계약."""

    def create(
        self, record: RedemptionRecord
    ) -> RedemptionRecord:  # pragma: no cover - Protocol
        ...

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[RedemptionRecord], int]:  # pragma: no cover - Protocol
        ...
