from fastapi import APIRouter

from .balances import router as balances_router
from .point_codes import router as point_codes_router
from .redemptions import router as redemptions_router

api_router = APIRouter()
api_router.include_router(
    point_codes_router
)  # prefix는 router 파일 내부에서 정의되어 있음 (/point-codes)
api_router.include_router(
    redemptions_router, prefix="/redemptions", tags=["redemptions"]
)
api_router.include_router(balances_router, prefix="/balances", tags=["balances"])
