"""고객 포인트 잔액 레포지토리 구현체 (MongoDB).

users 도큐먼트에 {"points": {"<business_id>": int}} 형태로 잔액을 임베드한다.
모든 변경은 $inc 단일 연산으로 처리해 동시 요청 간 lost update 가 없다.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pymongo import ReturnDocument
from pymongo.database import Database

from .interfaces import AccountBalanceRepositoryInterface


def points_field(business_id: str) -> str:
    return f"points.{business_id}"


class AccountBalanceRepository(AccountBalanceRepositoryInterface):
    """users 컬렉션의 points 필드에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["users"]

    def get_balance(self, user_id: str, business_id: str) -> int:
        field = points_field(business_id)
        doc = self._col.find_one({"_id": user_id}, {field: 1})
        if not doc:
            return 0
        return int((doc.get("points") or {}).get(business_id, 0))

    def set_balance(self, user_id: str, business_id: str, value: int) -> None:
        now = datetime.now(timezone.utc)
        self._col.update_one(
            {"_id": user_id},
            {
                "$set": {points_field(business_id): value, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )

    def increment(self, user_id: str, business_id: str, amount: int) -> int:
        now = datetime.now(timezone.utc)
        # 처음 적립하는 고객은 upsert 로 도큐먼트가 생성된다.
        doc = self._col.find_one_and_update(
            {"_id": user_id},
            {
                "$inc": {points_field(business_id): amount},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["points"][business_id])

    def try_decrement(self, user_id: str, business_id: str, amount: int) -> int | None:
        field = points_field(business_id)
        now = datetime.now(timezone.utc)
        doc = self._col.find_one_and_update(
            {"_id": user_id, field: {"$gte": amount}},
            {"$inc": {field: -amount}, "$set": {"updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return int(doc["points"][business_id])
