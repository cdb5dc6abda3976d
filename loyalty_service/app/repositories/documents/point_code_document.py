"""포인트 코드 MongoDB 도큐먼트."""

from __future__ import annotations

from typing import Any

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    OptionalMongoDateTime,
    build_document_data_from_domain,
)

from ...models.point_code import PointCode, PointCodeKind


class PointCodeDocument(BaseDocument):
    """MongoDB point_codes 컬렉션 도큐먼트 모델. _id 는 내부 UUID."""

    code: str
    kind: PointCodeKind
    business_id: str
    program_id: str
    point_amount: int
    is_used: bool = False
    used_by: str | None = None
    used_at: OptionalMongoDateTime = None
    expires_at: MongoDateTime
    metadata: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, point_code: PointCode) -> "PointCodeDocument":
        data = build_document_data_from_domain(point_code)
        data["_id"] = data.pop("id")
        return cls.model_validate(data)

    def to_domain(self) -> PointCode:
        assert self.id is not None
        return PointCode(
            id=self.id,
            code=self.code,
            kind=self.kind,
            business_id=self.business_id,
            program_id=self.program_id,
            point_amount=self.point_amount,
            is_used=self.is_used,
            used_by=self.used_by,
            used_at=self.used_at,
            created_at=self.created_at,
            expires_at=self.expires_at,
            metadata=dict(self.metadata),
        )


class CodeIndexDocument(BaseDocument):
    """MongoDB code_index 컬렉션 도큐먼트. _id 가 사용자 입력 코드 문자열이다."""

    point_code_id: str
