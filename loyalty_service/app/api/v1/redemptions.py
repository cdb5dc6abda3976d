from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..schemas.common import PaginatedResponse
from ..schemas.point_codes import RedemptionItem
from ...services.point_code_service import PointCodeService, get_point_code_service


router = APIRouter()


@router.get(
    "/{user_id}",
    response_model=PaginatedResponse[RedemptionItem],
    summary="유저 교환 이력 조회",
)
async def list_redemptions(
    user_id: str,
    page: int = Query(1, ge=1, description="조회할 페이지 (1부터 시작)"),
    page_size: int = Query(
        20,
        ge=1,
        le=100,
        description="페이지당 아이템 개수 (1~100)",
    ),
    service: PointCodeService = Depends(get_point_code_service),
) -> PaginatedResponse[RedemptionItem]:
    items, total = service.get_user_redemption_history(user_id, page, page_size)
    return PaginatedResponse(
        items=[RedemptionItem.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )
