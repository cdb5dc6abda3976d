from __future__ import annotations

from common.mongo.types import BaseDocument, MongoDateTime, build_document_data_from_domain

from ...models.redemption import RedemptionRecord


class RedemptionDocument(BaseDocument):
    """MongoDB redemptions 컬렉션 도큐먼트 모델."""

    user_id: str
    business_id: str
    program_id: str
    point_amount: int
    code_id: str
    redeemed_at: MongoDateTime

    @classmethod
    def from_domain(cls, record: RedemptionRecord) -> "RedemptionDocument":
        data = build_document_data_from_domain(record)
        data["_id"] = data.pop("id")
        # 이력은 생성 시각 == 교환 시각
        data["created_at"] = record.redeemed_at
        return cls.model_validate(data)

    def to_domain(self) -> RedemptionRecord:
        return RedemptionRecord(
            id=self.id,
            user_id=self.user_id,
            business_id=self.business_id,
            program_id=self.program_id,
            point_amount=self.point_amount,
            code_id=self.code_id,
            redeemed_at=self.redeemed_at,
        )
