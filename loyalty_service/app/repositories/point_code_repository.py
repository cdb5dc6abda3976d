"""포인트 코드 레포지토리 구현체 (MongoDB).

point_codes 에 코드 본문을, code_index 에 "코드 문자열 -> 내부 id" 역색인을 저장한다.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pymongo import ASCENDING, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .balance_repository import points_field
from .documents.point_code_document import CodeIndexDocument, PointCodeDocument
from .documents.redemption_document import RedemptionDocument
from .interfaces import (
    DuplicateCodeError,
    PointCodeRepositoryInterface,
    RedeemOutcome,
    RedeemStatus,
)
from ..models.point_code import PointCode
from ..models.redemption import RedemptionRecord


logger = logging.getLogger(__name__)


class PointCodeRepository(PointCodeRepositoryInterface):
    """point_codes / code_index 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["point_codes"]
        self._index = database["code_index"]

    @staticmethod
    def _from_document(doc: dict) -> PointCode:
        return PointCodeDocument.model_validate(doc).to_domain()

    def insert(self, point_code: PointCode) -> PointCode:
        """역색인을 먼저 기록하고 코드 본문을 저장한다.

        - code_index 의 _id 가 코드 문자열이므로 충돌은 DuplicateKeyError 로 드러난다.
        - 본문 저장이 실패하면 방금 만든 역색인을 지워 고아 엔트리를 남기지 않는다.
        """
        index_doc = CodeIndexDocument(
            _id=point_code.code,
            point_code_id=point_code.id,
            created_at=point_code.created_at,
        )
        try:
            self._index.insert_one(index_doc.to_mongo_record())
        except DuplicateKeyError as exc:
            raise DuplicateCodeError(point_code.code) from exc

        payload = PointCodeDocument.from_domain(point_code).to_mongo_record()
        try:
            self._col.insert_one(payload)
        except Exception:
            logger.error(
                "failed to store point code, rolling back index entry (code_id=%s)",
                point_code.id,
            )
            self._index.delete_one(
                {"_id": point_code.code, "point_code_id": point_code.id}
            )
            raise

        return point_code

    def find_id_by_code(self, code: str) -> str | None:
        doc = self._index.find_one({"_id": code})
        if not doc:
            return None
        return str(doc["point_code_id"])

    def find_by_id(self, code_id: str) -> PointCode | None:
        doc = self._col.find_one({"_id": code_id})
        if not doc:
            return None
        return self._from_document(doc)

    def mark_used(
        self, code_id: str, user_id: str, used_at: datetime
    ) -> PointCode | None:
        # 조건부 단일 업데이트: 이미 사용됐거나 만료/삭제된 코드는 매칭되지 않는다.
        doc = self._col.find_one_and_update(
            {
                "_id": code_id,
                "is_used": False,
                "expires_at": {"$gte": used_at},
            },
            {
                "$set": {
                    "is_used": True,
                    "used_by": user_id,
                    "used_at": used_at,
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            return None
        return self._from_document(doc)

    def delete_unused(self, code_id: str, business_id: str) -> PointCode | None:
        doc = self._col.find_one_and_delete(
            {"_id": code_id, "business_id": business_id, "is_used": False}
        )
        if not doc:
            return None

        deleted = self._from_document(doc)
        # 본문이 먼저 사라졌으므로 여기서 실패해도 코드는 "Code details not found." 로 막힌다.
        self._index.delete_one({"_id": deleted.code, "point_code_id": deleted.id})
        return deleted

    def list_active_by_business(
        self, business_id: str, now: datetime
    ) -> list[PointCode]:
        cursor = self._col.find(
            {
                "business_id": business_id,
                "is_used": False,
                "expires_at": {"$gt": now},
            },
            sort=[("created_at", ASCENDING)],
        )
        return [self._from_document(doc) for doc in cursor]

    def redeem(
        self,
        point_code: PointCode,
        user_id: str,
        now: datetime,
        record: RedemptionRecord,
    ) -> RedeemOutcome:
        with self._db.client.start_session() as session:
            try:
                return session.with_transaction(
                    lambda s: self._redeem_in_transaction(s, point_code, user_id, now, record)
                )
            except _InsufficientBalance as exc:
                return RedeemOutcome(
                    status=RedeemStatus.INSUFFICIENT_BALANCE, balance=exc.balance
                )

    def _redeem_in_transaction(
        self,
        session: ClientSession,
        point_code: PointCode,
        user_id: str,
        now: datetime,
        record: RedemptionRecord,
    ) -> RedeemOutcome:
        business_id = point_code.business_id
        amount = point_code.point_amount
        field = points_field(business_id)

        claimed = self._col.find_one_and_update(
            {"_id": point_code.id, "is_used": False, "expires_at": {"$gte": now}},
            {"$set": {"is_used": True, "used_by": user_id, "used_at": now}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not claimed:
            return RedeemOutcome(status=RedeemStatus.CODE_UNAVAILABLE)

        if amount == 0:
            balance = self._read_balance(session, user_id, business_id)
        else:
            doc = self._users.find_one_and_update(
                {"_id": user_id, field: {"$gte": amount}},
                {"$inc": {field: -amount}, "$set": {"updated_at": now}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not doc:
                # 예외로 빠져나가야 with_transaction 이 사용 처리까지 롤백한다.
                raise _InsufficientBalance(
                    self._read_balance(session, user_id, business_id)
                )
            balance = int(doc["points"][business_id])

        self._redemptions.insert_one(
            RedemptionDocument.from_domain(record).to_mongo_record(), session=session
        )
        return RedeemOutcome(
            status=RedeemStatus.REDEEMED,
            point_code=self._from_document(claimed),
            balance=balance,
        )

    def _read_balance(
        self, session: ClientSession, user_id: str, business_id: str
    ) -> int:
        doc = self._users.find_one(
            {"_id": user_id}, {points_field(business_id): 1}, session=session
        )
        return int(((doc or {}).get("points") or {}).get(business_id, 0))


class _InsufficientBalance(Exception):
    def __init__(self, balance: int) -> None:
        super().__init__(f"insufficient balance: {balance}")
        self.balance = balance
