from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..schemas.balances import BalanceResponse, SetBalanceRequest
from ...services.balance_ledger import AccountBalanceLedger
from ...services.point_code_service import get_balance_ledger


router = APIRouter()


@router.get(
    "/{user_id}/{business_id}",
    response_model=BalanceResponse,
    summary="고객의 비즈니스별 포인트 잔액 조회",
)
async def get_balance(
    user_id: str,
    business_id: str,
    ledger: AccountBalanceLedger = Depends(get_balance_ledger),
) -> BalanceResponse:
    try:
        points = ledger.get_balance(user_id, business_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return BalanceResponse(user_id=user_id, business_id=business_id, points=points)


@router.put(
    "/{user_id}/{business_id}",
    response_model=BalanceResponse,
    summary="포인트 잔액 덮어쓰기 (내부용)",
)
async def set_balance(
    user_id: str,
    business_id: str,
    body: SetBalanceRequest,
    ledger: AccountBalanceLedger = Depends(get_balance_ledger),
) -> BalanceResponse:
    try:
        ledger.set_balance(user_id, business_id, body.points)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return BalanceResponse(
        user_id=user_id, business_id=business_id, points=body.points
    )
