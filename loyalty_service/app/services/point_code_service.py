"""포인트 코드 서비스.

적립/교환 코드의 발급, 검증, 사용, 무효화와 그에 따른 잔액 변경을 처리한다.

상태 전이는 모두 저장소의 조건부 단일 연산으로 수행한다.
- 사용 처리: is_used=False 인 경우에만 True 로 바꾼다 (동시 요청 중 하나만 성공).
- 교환: 사용 처리, 잔액 차감, 이력 기록을 저장소의 원자적 redeem 한 번으로 처리한다.
  이미 사용된 코드는 잔액과 무관하게 ALREADY_USED 로 끝난다.
- 무효화: 미사용 코드만 삭제한다.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fastapi import Request

from ..models.point_code import (
    InvalidationResult,
    PointCode,
    PointCodeError,
    PointCodeKind,
    PointCodeResult,
)
from ..models.redemption import RedemptionRecord
from ..repositories.interfaces import (
    DuplicateCodeError,
    PointCodeRepositoryInterface,
    RedeemStatus,
    RedemptionRepositoryInterface,
)
from ..repositories.registry import get_repositories
from .balance_ledger import AccountBalanceLedger, validate_business_id
from .code_generator import CodeGenerator


logger = logging.getLogger(__name__)


DEFAULT_EARN_EXPIRY_MINUTES = 60
DEFAULT_REDEEM_EXPIRY_MINUTES = 1440

MSG_INVALID_CODE = "Invalid code."
MSG_DETAILS_NOT_FOUND = "Code details not found."
MSG_ALREADY_USED = "This code has already been used."
MSG_EXPIRED = "This code has expired."
MSG_VALID = "Code is valid."
MSG_PROCESS_FAILED = "An error occurred while processing the code."
MSG_CODE_NOT_FOUND = "Code not found."
MSG_PERMISSION_DENIED = "You do not have permission to manage this code."
MSG_INVALIDATED = "Code successfully invalidated."
MSG_INVALIDATE_FAILED = "An error occurred while invalidating the code."


class PointCodeGenerationError(Exception):
    """코드 발급 중 저장소 오류 또는 코드 충돌 재시도 초과."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PointCodeService:
    """포인트 코드 수명주기 비즈니스 로직."""

    def __init__(
        self,
        point_code_repo: PointCodeRepositoryInterface,
        balance_ledger: AccountBalanceLedger,
        redemption_repo: RedemptionRepositoryInterface,
        code_generator: CodeGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
        max_code_attempts: int = 5,
    ) -> None:
        self._point_code_repo = point_code_repo
        self._ledger = balance_ledger
        self._redemption_repo = redemption_repo
        self._generator = code_generator or CodeGenerator()
        self._clock = clock or _utcnow
        self._max_code_attempts = max_code_attempts

    # 발급 -----------------------------------------------------------------
    def generate_earn_code(
        self,
        business_id: str,
        program_id: str,
        point_amount: int,
        expiry_minutes: int = DEFAULT_EARN_EXPIRY_MINUTES,
        metadata: dict[str, Any] | None = None,
    ) -> PointCode:
        """적립 코드 발급. 기본 유효시간 1시간."""
        return self._generate(
            PointCodeKind.EARN,
            business_id,
            program_id,
            point_amount,
            expiry_minutes,
            metadata,
            failure_message="Failed to generate earn code",
        )

    def generate_redeem_code(
        self,
        business_id: str,
        program_id: str,
        point_amount: int,
        expiry_minutes: int = DEFAULT_REDEEM_EXPIRY_MINUTES,
        metadata: dict[str, Any] | None = None,
    ) -> PointCode:
        """교환 코드 발급. 특정 고객에게 건네고 나중에 쓰는 경우가 많아 기본 24시간."""
        return self._generate(
            PointCodeKind.REDEEM,
            business_id,
            program_id,
            point_amount,
            expiry_minutes,
            metadata,
            failure_message="Failed to generate redemption code",
        )

    def _generate(
        self,
        kind: PointCodeKind,
        business_id: str,
        program_id: str,
        point_amount: int,
        expiry_minutes: int,
        metadata: dict[str, Any] | None,
        *,
        failure_message: str,
    ) -> PointCode:
        if point_amount < 0:
            raise ValueError("point_amount must be >= 0")
        if expiry_minutes <= 0:
            raise ValueError("expiry_minutes must be > 0")
        validate_business_id(business_id)

        now = self._clock()
        code_id = self._generator.new_internal_id()

        for attempt in range(1, self._max_code_attempts + 1):
            point_code = PointCode(
                id=code_id,
                code=self._generator.new_user_code(),
                kind=kind,
                business_id=business_id,
                program_id=program_id,
                point_amount=point_amount,
                is_used=False,
                created_at=now,
                expires_at=now + timedelta(minutes=expiry_minutes),
                metadata=dict(metadata or {}),
            )
            try:
                stored = self._point_code_repo.insert(point_code)
            except DuplicateCodeError:
                logger.warning(
                    "point code collision, regenerating (attempt %d/%d)",
                    attempt,
                    self._max_code_attempts,
                    extra={"business_id": business_id, "code_id": code_id},
                )
                continue
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "failed to store %s code",
                    kind.value,
                    extra={"business_id": business_id, "code_id": code_id},
                )
                raise PointCodeGenerationError(failure_message) from exc

            logger.info(
                "generated %s code",
                kind.value,
                extra={
                    "business_id": business_id,
                    "program_id": program_id,
                    "code_id": code_id,
                    "point_amount": point_amount,
                },
            )
            return stored

        raise PointCodeGenerationError(
            f"{failure_message}: no unique code after {self._max_code_attempts} attempts"
        )

    # 사용 -----------------------------------------------------------------
    def process_point_code(self, code: str, user_id: str) -> PointCodeResult:
        """고객이 입력한 코드를 처리한다. 어떤 경우에도 예외를 밖으로 던지지 않는다."""
        try:
            return self._process(code.strip(), user_id)
        except Exception:  # noqa: BLE001
            logger.exception(
                "error while processing point code", extra={"user_id": user_id}
            )
            return PointCodeResult.failure(
                PointCodeError.STORAGE_FAILURE, MSG_PROCESS_FAILED
            )

    def validate_point_code(self, code: str) -> PointCodeResult:
        """사용하지 않고 코드의 유효성만 확인한다."""
        try:
            now = self._clock()
            resolved = self._resolve(code.strip())
            if isinstance(resolved, PointCodeResult):
                return resolved
            rejected = self._check_usable(resolved, now)
            if rejected is not None:
                return rejected
            return PointCodeResult(success=True, message=MSG_VALID, point_code=resolved)
        except Exception:  # noqa: BLE001
            logger.exception("error while validating point code")
            return PointCodeResult.failure(
                PointCodeError.STORAGE_FAILURE, MSG_PROCESS_FAILED
            )

    def _process(self, code: str, user_id: str) -> PointCodeResult:
        now = self._clock()
        resolved = self._resolve(code)
        if isinstance(resolved, PointCodeResult):
            return resolved

        rejected = self._check_usable(resolved, now)
        if rejected is not None:
            return rejected

        if resolved.kind is PointCodeKind.EARN:
            return self._apply_earn(resolved, user_id, now)
        return self._apply_redeem(resolved, user_id, now)

    def _resolve(self, code: str) -> PointCode | PointCodeResult:
        code_id = self._point_code_repo.find_id_by_code(code)
        if code_id is None:
            return PointCodeResult.failure(PointCodeError.NOT_FOUND, MSG_INVALID_CODE)

        point_code = self._point_code_repo.find_by_id(code_id)
        if point_code is None:
            # 역색인과 본문이 어긋난 경우
            logger.warning(
                "code index points to missing point code", extra={"code_id": code_id}
            )
            return PointCodeResult.failure(
                PointCodeError.NOT_FOUND, MSG_DETAILS_NOT_FOUND
            )
        return point_code

    @staticmethod
    def _check_usable(point_code: PointCode, now: datetime) -> PointCodeResult | None:
        if point_code.is_used:
            return PointCodeResult.failure(
                PointCodeError.ALREADY_USED, MSG_ALREADY_USED, point_code
            )
        if point_code.is_expired(now):
            return PointCodeResult.failure(
                PointCodeError.EXPIRED, MSG_EXPIRED, point_code
            )
        return None

    def _apply_earn(
        self, point_code: PointCode, user_id: str, now: datetime
    ) -> PointCodeResult:
        claimed = self._point_code_repo.mark_used(point_code.id, user_id, now)
        if claimed is None:
            return self._claim_lost(point_code.id, now)

        try:
            balance = self._ledger.credit(
                user_id, point_code.business_id, point_code.point_amount
            )
        except Exception:
            # 코드는 사용 처리됐지만 적립이 안 된 상태. 자동 보정하지 않는다.
            logger.error(
                "point code claimed but balance credit failed",
                extra={
                    "user_id": user_id,
                    "business_id": point_code.business_id,
                    "code_id": point_code.id,
                    "point_amount": point_code.point_amount,
                },
            )
            raise

        logger.info(
            "earn code processed",
            extra={
                "user_id": user_id,
                "business_id": point_code.business_id,
                "code_id": point_code.id,
                "point_amount": point_code.point_amount,
            },
        )
        return PointCodeResult(
            success=True,
            message=f"Congratulations! You've earned {point_code.point_amount} points.",
            point_code=claimed,
            balance=balance,
        )

    def _apply_redeem(
        self, point_code: PointCode, user_id: str, now: datetime
    ) -> PointCodeResult:
        business_id = point_code.business_id
        amount = point_code.point_amount
        validate_business_id(business_id)

        record = RedemptionRecord(
            id=self._generator.new_internal_id(),
            user_id=user_id,
            business_id=business_id,
            program_id=point_code.program_id,
            point_amount=amount,
            code_id=point_code.id,
            redeemed_at=now,
        )
        # 사용 처리 -> 잔액 확인/차감 -> 이력 기록이 한 단위로 처리된다.
        outcome = self._point_code_repo.redeem(point_code, user_id, now, record)

        if outcome.status is RedeemStatus.CODE_UNAVAILABLE:
            return self._claim_lost(point_code.id, now)
        if outcome.status is RedeemStatus.INSUFFICIENT_BALANCE:
            return PointCodeResult.failure(
                PointCodeError.INSUFFICIENT_BALANCE,
                f"You don't have enough points. You need {amount} points, "
                f"but you only have {outcome.balance}.",
                point_code,
            )

        logger.info(
            "redeem code processed",
            extra={
                "user_id": user_id,
                "business_id": business_id,
                "code_id": point_code.id,
                "point_amount": amount,
            },
        )
        return PointCodeResult(
            success=True,
            message=f"Success! You've redeemed a reward for {amount} points.",
            point_code=outcome.point_code,
            balance=outcome.balance,
        )

    def _claim_lost(self, code_id: str, now: datetime) -> PointCodeResult:
        """조건부 사용 처리에 실패했을 때 현재 상태를 다시 읽어 사유를 결정한다."""
        current = self._point_code_repo.find_by_id(code_id)
        if current is None:
            return PointCodeResult.failure(PointCodeError.NOT_FOUND, MSG_INVALID_CODE)
        if current.is_expired(now) and not current.is_used:
            return PointCodeResult.failure(PointCodeError.EXPIRED, MSG_EXPIRED, current)
        return PointCodeResult.failure(
            PointCodeError.ALREADY_USED, MSG_ALREADY_USED, current
        )

    # 조회 / 관리 ----------------------------------------------------------
    def get_business_active_codes(self, business_id: str) -> list[PointCode]:
        """미사용이면서 만료되지 않은 코드 목록 (발급 순)."""
        return self._point_code_repo.list_active_by_business(business_id, self._clock())

    def invalidate_code(self, code_id: str, business_id: str) -> InvalidationResult:
        """비즈니스가 미사용 코드를 무효화(삭제)한다. 되돌릴 수 없다."""
        try:
            point_code = self._point_code_repo.find_by_id(code_id)
            if point_code is None:
                return InvalidationResult(
                    success=False,
                    message=MSG_CODE_NOT_FOUND,
                    error=PointCodeError.NOT_FOUND,
                )

            if point_code.business_id != business_id:
                logger.warning(
                    "invalidation attempted by non-owner business",
                    extra={"business_id": business_id, "code_id": code_id},
                )
                return InvalidationResult(
                    success=False,
                    message=MSG_PERMISSION_DENIED,
                    error=PointCodeError.PERMISSION_DENIED,
                )

            if point_code.is_used:
                return InvalidationResult(
                    success=False,
                    message=MSG_ALREADY_USED,
                    error=PointCodeError.ALREADY_USED,
                )

            deleted = self._point_code_repo.delete_unused(code_id, business_id)
            if deleted is None:
                # 조회 이후 다른 요청이 먼저 사용/삭제했다.
                current = self._point_code_repo.find_by_id(code_id)
                if current is None:
                    return InvalidationResult(
                        success=False,
                        message=MSG_CODE_NOT_FOUND,
                        error=PointCodeError.NOT_FOUND,
                    )
                return InvalidationResult(
                    success=False,
                    message=MSG_ALREADY_USED,
                    error=PointCodeError.ALREADY_USED,
                )
        except Exception:  # noqa: BLE001
            logger.exception(
                "error while invalidating point code",
                extra={"business_id": business_id, "code_id": code_id},
            )
            return InvalidationResult(
                success=False,
                message=MSG_INVALIDATE_FAILED,
                error=PointCodeError.STORAGE_FAILURE,
            )

        logger.info(
            "point code invalidated",
            extra={"business_id": business_id, "code_id": code_id},
        )
        return InvalidationResult(success=True, message=MSG_INVALIDATED)

    def get_user_redemption_history(
        self, user_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[RedemptionRecord], int]:
        """유저의 교환 이력 조회 (최신순)."""
        return self._redemption_repo.list_by_user(user_id, page, page_size)


def get_balance_ledger(request: Request) -> AccountBalanceLedger:
    """FastAPI DI용 AccountBalanceLedger 팩토리."""

    repositories = get_repositories(request)
    return AccountBalanceLedger(repositories.balances)


def get_point_code_service(request: Request) -> PointCodeService:
    """FastAPI DI용 PointCodeService 팩토리.

    저장소 구현은 create_app 시점에 설정으로 결정되어 app.state 에 보관된다.
    """

    repositories = get_repositories(request)
    config = request.app.state.config
    return PointCodeService(
        point_code_repo=repositories.point_codes,
        balance_ledger=AccountBalanceLedger(repositories.balances),
        redemption_repo=repositories.redemptions,
        max_code_attempts=config.point_code.max_attempts,
    )
