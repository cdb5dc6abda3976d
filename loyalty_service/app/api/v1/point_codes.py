"""포인트 코드 API 라우터.

비즈니스 대시보드(발급/목록/무효화)와 고객 앱(코드 입력/검증)에서 호출한다.
QR 페이로드 해석은 클라이언트 책임이며, 이 API 는 코드 문자열만 받는다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from common.eventbus.helpers import new_json_event
from common.eventbus.kafka import KafkaEventBus, get_kafka_event_bus
from common.eventbus.topics import TOPIC_POINT_CODE
from common.events.point_code import (
    PointCodeEventType,
    PointCodeInvalidatedEvent,
    PointCodeProcessedEvent,
)

from ...models.point_code import PointCode, PointCodeError, PointCodeKind
from ...services.point_code_service import (
    DEFAULT_EARN_EXPIRY_MINUTES,
    DEFAULT_REDEEM_EXPIRY_MINUTES,
    PointCodeGenerationError,
    PointCodeService,
    get_point_code_service,
)
from ..schemas.common import ErrorDetail
from ..schemas.point_codes import (
    GenerateCodeRequest,
    InvalidationResponse,
    ListActiveCodesResponse,
    PointCodeResponse,
    PointCodeResultResponse,
    ProcessCodeRequest,
    ValidateCodeRequest,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/point-codes", tags=["point_codes"])


ERROR_STATUS: dict[PointCodeError, int] = {
    PointCodeError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PointCodeError.ALREADY_USED: status.HTTP_409_CONFLICT,
    PointCodeError.EXPIRED: status.HTTP_410_GONE,
    PointCodeError.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    PointCodeError.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    PointCodeError.STORAGE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_for_error(error: PointCodeError | None, message: str) -> None:
    code = error or PointCodeError.STORAGE_FAILURE
    raise HTTPException(
        status_code=ERROR_STATUS[code],
        detail=ErrorDetail(code=code.value, message=message).model_dump(),
    )


# -------- Endpoints --------


@router.post("/earn", summary="적립 코드 발급")
def generate_earn_code(
    req: GenerateCodeRequest,
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
) -> PointCodeResponse:
    try:
        point_code = service.generate_earn_code(
            business_id=req.business_id,
            program_id=req.program_id,
            point_amount=req.point_amount,
            expiry_minutes=req.expiry_or(DEFAULT_EARN_EXPIRY_MINUTES),
            metadata=req.metadata,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except PointCodeGenerationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    return PointCodeResponse.from_domain(point_code)


@router.post("/redeem", summary="교환 코드 발급")
def generate_redeem_code(
    req: GenerateCodeRequest,
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
) -> PointCodeResponse:
    try:
        point_code = service.generate_redeem_code(
            business_id=req.business_id,
            program_id=req.program_id,
            point_amount=req.point_amount,
            expiry_minutes=req.expiry_or(DEFAULT_REDEEM_EXPIRY_MINUTES),
            metadata=req.metadata,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except PointCodeGenerationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    return PointCodeResponse.from_domain(point_code)


@router.post("/process", summary="코드 사용 (적립/교환)")
def process_point_code(
    req: ProcessCodeRequest,
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
    bus: Annotated[KafkaEventBus | None, Depends(get_kafka_event_bus)],
) -> PointCodeResultResponse:
    result = service.process_point_code(req.code, req.user_id)
    if not result.success:
        _raise_for_error(result.error, result.message)

    if result.point_code is not None:
        _publish_point_code_processed_event(
            bus,
            user_id=req.user_id,
            point_code=result.point_code,
            balance=result.balance,
        )
    return PointCodeResultResponse.from_domain(result)


@router.post("/validate", summary="코드 유효성 확인 (사용하지 않음)")
def validate_point_code(
    req: ValidateCodeRequest,
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
) -> PointCodeResultResponse:
    result = service.validate_point_code(req.code)
    if not result.success:
        _raise_for_error(result.error, result.message)
    return PointCodeResultResponse.from_domain(result)


@router.get("/active", summary="비즈니스의 사용 가능한 코드 목록")
def list_active_codes(
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
    business_id: str = Query(..., min_length=1, description="비즈니스 ID"),
) -> ListActiveCodesResponse:
    codes = service.get_business_active_codes(business_id)
    return ListActiveCodesResponse(
        total=len(codes),
        items=[PointCodeResponse.from_domain(c) for c in codes],
    )


@router.delete("/{code_id}", summary="미사용 코드 무효화")
def invalidate_code(
    code_id: str,
    service: Annotated[PointCodeService, Depends(get_point_code_service)],
    bus: Annotated[KafkaEventBus | None, Depends(get_kafka_event_bus)],
    business_id: str = Query(..., min_length=1, description="요청한 비즈니스 ID"),
) -> InvalidationResponse:
    result = service.invalidate_code(code_id, business_id)
    if not result.success:
        _raise_for_error(result.error, result.message)

    _publish_point_code_invalidated_event(
        bus, business_id=business_id, code_id=code_id
    )
    return InvalidationResponse(success=result.success, message=result.message)


# -------- Event Publishing Helpers --------


def _publish(bus: KafkaEventBus | None, event_id: str, payload: dict) -> None:
    """이벤트 발행. 브로커 미설정이면 건너뛰고, 실패는 로그만 남긴다."""
    if bus is None:
        return
    try:
        bus.publish(TOPIC_POINT_CODE.base, new_json_event(payload, event_id=event_id))
    except Exception:  # noqa: BLE001
        logger.exception("failed to publish point code event id=%s", event_id)


def _publish_point_code_processed_event(
    bus: KafkaEventBus | None,
    *,
    user_id: str,
    point_code: PointCode,
    balance: int | None,
) -> None:
    """point_code.earned / point_code.redeemed 이벤트 발행."""
    event_id = str(uuid.uuid4())
    event_type = (
        PointCodeEventType.POINT_CODE_EARNED
        if point_code.kind is PointCodeKind.EARN
        else PointCodeEventType.POINT_CODE_REDEEMED
    )
    event = PointCodeProcessedEvent(
        id=event_id,
        type=event_type,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source="loyalty-service",
        version="1.0",
        user_id=user_id,
        business_id=point_code.business_id,
        program_id=point_code.program_id,
        code_id=point_code.id,
        point_amount=point_code.point_amount,
        balance=balance,
    )
    _publish(bus, event_id, asdict(event))


def _publish_point_code_invalidated_event(
    bus: KafkaEventBus | None, *, business_id: str, code_id: str
) -> None:
    """point_code.invalidated 이벤트 발행."""
    event_id = str(uuid.uuid4())
    event = PointCodeInvalidatedEvent(
        id=event_id,
        type=PointCodeEventType.POINT_CODE_INVALIDATED,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source="loyalty-service",
        version="1.0",
        business_id=business_id,
        code_id=code_id,
    )
    _publish(bus, event_id, asdict(event))
