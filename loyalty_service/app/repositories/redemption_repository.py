from __future__ import annotations

from pymongo.database import Database

from .documents.redemption_document import RedemptionDocument
from .interfaces import RedemptionRepositoryInterface
from ..models.redemption import RedemptionRecord


class RedemptionRepository(RedemptionRepositoryInterface):
    """redemptions 컬렉션에 대한 MongoDB 접근 레이어 (append-only)."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["redemptions"]

    def create(self, record: RedemptionRecord) -> RedemptionRecord:
        payload = RedemptionDocument.from_domain(record).to_mongo_record()
        self._col.insert_one(payload)
        return record

    def list_by_user(
        self, user_id: str, page: int, page_size: int
    ) -> tuple[list[RedemptionRecord], int]:
        """유저의 교환 이력을 최신순으로 조회한다."""
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > 100:
            page_size = 20

        skip = (page - 1) * page_size

        total = self._col.count_documents({"user_id": user_id})
        cursor = self._col.find(
            {"user_id": user_id},
            sort=[("redeemed_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items: list[RedemptionRecord] = []
        for raw in cursor:
            items.append(RedemptionDocument.model_validate(raw).to_domain())

        return items, total
