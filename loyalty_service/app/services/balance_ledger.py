"""고객의 비즈니스별 포인트 잔액 원장."""

from __future__ import annotations

from ..repositories.interfaces import AccountBalanceRepositoryInterface


def validate_business_id(business_id: str) -> None:
    # business_id 는 users.points 의 필드 이름으로 쓰인다.
    if not business_id or "." in business_id or business_id.startswith("$"):
        raise ValueError(f"invalid business_id for balance field: {business_id!r}")


class AccountBalanceLedger:
    """points[business_id] 잔액의 조회/변경.

    - credit/debit 은 저장소의 원자적 증감 연산만 사용한다.
    - set_balance 는 무조건 덮어쓰기이며 외부 거래 기록 흐름에서 사용한다.
    """

    def __init__(self, balance_repo: AccountBalanceRepositoryInterface) -> None:
        self._balance_repo = balance_repo

    def get_balance(self, user_id: str, business_id: str) -> int:
        validate_business_id(business_id)
        return self._balance_repo.get_balance(user_id, business_id)

    def set_balance(self, user_id: str, business_id: str, value: int) -> None:
        validate_business_id(business_id)
        if value < 0:
            raise ValueError("balance must be >= 0")
        self._balance_repo.set_balance(user_id, business_id, value)

    def credit(self, user_id: str, business_id: str, amount: int) -> int:
        """amount 만큼 적립하고 변경 후 잔액을 반환한다."""
        validate_business_id(business_id)
        if amount < 0:
            raise ValueError("amount must be >= 0")
        return self._balance_repo.increment(user_id, business_id, amount)

    def debit(self, user_id: str, business_id: str, amount: int) -> int | None:
        """잔액이 충분할 때만 차감하고 변경 후 잔액을, 부족하면 None 을 반환한다."""
        validate_business_id(business_id)
        if amount < 0:
            raise ValueError("amount must be >= 0")
        if amount == 0:
            return self._balance_repo.get_balance(user_id, business_id)
        return self._balance_repo.try_decrement(user_id, business_id, amount)
