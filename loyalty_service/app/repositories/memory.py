"""프로세스 메모리 기반 저장소 구현체.

로컬 개발(LOYALTY_STORE_BACKEND=memory)과 테스트에서 MongoDB 대신 주입한다.
세 레포지토리가 하나의 InMemoryStore 와 락을 공유하므로, 조건부 연산은
MongoDB 의 단일 도큐먼트 연산과 같은 원자성을 가진다.
"""

from __future__ import annotations

import threading
from datetime import datetime

from .interfaces import (
    AccountBalanceRepositoryInterface,
    DuplicateCodeError,
    PointCodeRepositoryInterface,
    RedeemOutcome,
    RedeemStatus,
    RedemptionRepositoryInterface,
)
from ..models.point_code import PointCode
from ..models.redemption import RedemptionRecord


class InMemoryStore:
    """컬렉션 이름별 dict 를 보관하는 단순 저장소. dict 는 삽입 순서를 유지한다."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.point_codes: dict[str, PointCode] = {}
        self.code_index: dict[str, str] = {}
        self.users: dict[str, dict[str, int]] = {}
        self.redemptions: list[RedemptionRecord] = []


class InMemoryPointCodeRepository(PointCodeRepositoryInterface):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def insert(self, point_code: PointCode) -> PointCode:
        with self._store.lock:
            if point_code.code in self._store.code_index:
                raise DuplicateCodeError(point_code.code)
            self._store.code_index[point_code.code] = point_code.id
            self._store.point_codes[point_code.id] = point_code.model_copy(deep=True)
        return point_code

    def find_id_by_code(self, code: str) -> str | None:
        with self._store.lock:
            return self._store.code_index.get(code)

    def find_by_id(self, code_id: str) -> PointCode | None:
        with self._store.lock:
            found = self._store.point_codes.get(code_id)
            return found.model_copy(deep=True) if found else None

    def mark_used(
        self, code_id: str, user_id: str, used_at: datetime
    ) -> PointCode | None:
        with self._store.lock:
            found = self._store.point_codes.get(code_id)
            if found is None or found.is_used or found.expires_at < used_at:
                return None
            updated = found.model_copy(
                update={"is_used": True, "used_by": user_id, "used_at": used_at}
            )
            self._store.point_codes[code_id] = updated
            return updated.model_copy(deep=True)

    def delete_unused(self, code_id: str, business_id: str) -> PointCode | None:
        with self._store.lock:
            found = self._store.point_codes.get(code_id)
            if found is None or found.is_used or found.business_id != business_id:
                return None
            del self._store.point_codes[code_id]
            if self._store.code_index.get(found.code) == code_id:
                del self._store.code_index[found.code]
            return found

    def list_active_by_business(
        self, business_id: str, now: datetime
    ) -> list[PointCode]:
        with self._store.lock:
            return [
                code.model_copy(deep=True)
                for code in self._store.point_codes.values()
                if code.business_id == business_id
                and not code.is_used
                and code.expires_at > now
            ]

    def redeem(
        self,
        point_code: PointCode,
        user_id: str,
        now: datetime,
        record: RedemptionRecord,
    ) -> RedeemOutcome:
        business_id = point_code.business_id
        amount = point_code.point_amount

        with self._store.lock:
            found = self._store.point_codes.get(point_code.id)
            if found is None or found.is_used or found.expires_at < now:
                return RedeemOutcome(status=RedeemStatus.CODE_UNAVAILABLE)

            current = self._store.users.get(user_id, {}).get(business_id, 0)
            if current < amount:
                return RedeemOutcome(
                    status=RedeemStatus.INSUFFICIENT_BALANCE, balance=current
                )

            updated = found.model_copy(
                update={"is_used": True, "used_by": user_id, "used_at": now}
            )
            self._store.point_codes[point_code.id] = updated
            if amount:
                self._store.users.setdefault(user_id, {})[business_id] = current - amount
            self._store.redemptions.append(record.model_copy(deep=True))

        return RedeemOutcome(
            status=RedeemStatus.REDEEMED,
            point_code=updated.model_copy(deep=True),
            balance=current - amount,
        )


class InMemoryAccountBalanceRepository(AccountBalanceRepositoryInterface):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_balance(self, user_id: str, business_id: str) -> int:
        with self._store.lock:
            return self._store.users.get(user_id, {}).get(business_id, 0)

    def set_balance(self, user_id: str, business_id: str, value: int) -> None:
        with self._store.lock:
            self._store.users.setdefault(user_id, {})[business_id] = value

    def increment(self, user_id: str, business_id: str, amount: int) -> int:
        with self._store.lock:
            points = self._store.users.setdefault(user_id, {})
            points[business_id] = points.get(business_id, 0) + amount
            return points[business_id]

    def try_decrement(self, user_id: str, business_id: str, amount: int) -> int | None:
        with self._store.lock:
            points = self._store.users.get(user_id)
            if points is None or points.get(business_id, 0) < amount:
                return None
            points[business_id] -= amount
            return points[business_id]


class InMemoryRedemptionRepository(RedemptionRepositoryInterface):
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, record: RedemptionRecord) -> RedemptionRecord:
        with self._store.lock:
            self._store.redemptions.append(record.model_copy(deep=True))
        return record

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[RedemptionRecord], int]:
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > 100:
            page_size = 20

        with self._store.lock:
            # append 순서의 역순 == 최신순
            items = [r for r in reversed(self._store.redemptions) if r.user_id == user_id]

        skip = (page - 1) * page_size
        return items[skip : skip + page_size], len(items)
