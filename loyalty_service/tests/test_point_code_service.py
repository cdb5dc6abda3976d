from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from loyalty_service.app.models.point_code import PointCodeError, PointCodeKind
from loyalty_service.app.repositories.interfaces import DuplicateCodeError
from loyalty_service.app.repositories.memory import (
    InMemoryAccountBalanceRepository,
    InMemoryPointCodeRepository,
    InMemoryRedemptionRepository,
    InMemoryStore,
)
from loyalty_service.app.services.balance_ledger import AccountBalanceLedger
from loyalty_service.app.services.code_generator import CodeGenerator
from loyalty_service.app.services.point_code_service import (
    PointCodeGenerationError,
    PointCodeService,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class ServiceFixture:
    service: PointCodeService
    store: InMemoryStore
    ledger: AccountBalanceLedger
    clock: FakeClock


def _build_fixture(
    *,
    code_generator: CodeGenerator | None = None,
    point_code_repo=None,
    store: InMemoryStore | None = None,
    max_code_attempts: int = 5,
) -> ServiceFixture:
    store = store or InMemoryStore()
    clock = FakeClock()
    ledger = AccountBalanceLedger(InMemoryAccountBalanceRepository(store))
    service = PointCodeService(
        point_code_repo=point_code_repo or InMemoryPointCodeRepository(store),
        balance_ledger=ledger,
        redemption_repo=InMemoryRedemptionRepository(store),
        code_generator=code_generator,
        clock=clock,
        max_code_attempts=max_code_attempts,
    )
    return ServiceFixture(service=service, store=store, ledger=ledger, clock=clock)


@pytest.fixture
def fixture() -> ServiceFixture:
    return _build_fixture()


# -------- 발급 --------


def test_generate_earn_code_persists_code_and_index(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code(
        "biz-1", "prog-1", 50, metadata={"programName": "GudPoints"}
    )

    assert code.kind is PointCodeKind.EARN
    assert code.is_used is False
    assert code.used_by is None
    assert code.created_at == fixture.clock.now
    assert code.expires_at == fixture.clock.now + timedelta(minutes=60)
    assert code.metadata == {"programName": "GudPoints"}
    assert fixture.store.code_index[code.code] == code.id
    assert fixture.store.point_codes[code.id].code == code.code


def test_generate_redeem_code_defaults_to_one_day_expiry(
    fixture: ServiceFixture,
) -> None:
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 30)

    assert code.kind is PointCodeKind.REDEEM
    assert code.expires_at - code.created_at == timedelta(minutes=1440)


@pytest.mark.parametrize(
    ("point_amount", "expiry_minutes"),
    [(-1, 60), (10, 0), (10, -5)],
)
def test_generate_rejects_invalid_preconditions(
    fixture: ServiceFixture, point_amount: int, expiry_minutes: int
) -> None:
    with pytest.raises(ValueError):
        fixture.service.generate_earn_code(
            "biz-1", "prog-1", point_amount, expiry_minutes=expiry_minutes
        )
    assert fixture.store.point_codes == {}


def test_generate_rejects_business_id_unusable_as_balance_field(
    fixture: ServiceFixture,
) -> None:
    with pytest.raises(ValueError):
        fixture.service.generate_earn_code("biz.1", "prog-1", 10)


class SequenceCodeGenerator(CodeGenerator):
    """미리 정한 코드 문자열을 순서대로 돌려주는 생성기."""

    def __init__(self, codes: list[str]) -> None:
        super().__init__()
        self._codes = list(codes)

    def new_user_code(self) -> str:
        return self._codes.pop(0)


def test_generate_retries_with_new_code_on_collision() -> None:
    fixture = _build_fixture(
        code_generator=SequenceCodeGenerator(["AAAA2222", "AAAA2222", "BBBB3333"])
    )

    first = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    second = fixture.service.generate_earn_code("biz-1", "prog-1", 20)

    assert first.code == "AAAA2222"
    assert second.code == "BBBB3333"
    # 첫 코드의 역색인은 덮어써지지 않는다.
    assert fixture.store.code_index["AAAA2222"] == first.id
    assert fixture.store.code_index["BBBB3333"] == second.id


def test_generate_gives_up_after_max_attempts() -> None:
    fixture = _build_fixture(
        code_generator=SequenceCodeGenerator(["AAAA2222"] * 4),
        max_code_attempts=3,
    )
    fixture.service.generate_earn_code("biz-1", "prog-1", 10)

    with pytest.raises(PointCodeGenerationError):
        fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    assert len(fixture.store.point_codes) == 1


class FailingPointCodeRepository(InMemoryPointCodeRepository):
    def __init__(self, store: InMemoryStore) -> None:
        super().__init__(store)
        self.fail_insert = False
        self.fail_lookup = False

    def insert(self, point_code):  # type: ignore[override]
        if self.fail_insert:
            raise ConnectionError("store unreachable")
        return super().insert(point_code)

    def find_id_by_code(self, code):  # type: ignore[override]
        if self.fail_lookup:
            raise ConnectionError("store unreachable")
        return super().find_id_by_code(code)

    def find_by_id(self, code_id):  # type: ignore[override]
        if self.fail_lookup:
            raise ConnectionError("store unreachable")
        return super().find_by_id(code_id)


def test_generate_wraps_store_failure() -> None:
    store = InMemoryStore()
    repo = FailingPointCodeRepository(store)
    repo.fail_insert = True
    fixture = _build_fixture(point_code_repo=repo, store=store)

    with pytest.raises(PointCodeGenerationError, match="Failed to generate redemption code"):
        fixture.service.generate_redeem_code("biz-1", "prog-1", 10)


# -------- 사용: 시나리오 --------


def test_scenario_a_earn_code_credits_balance(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 50, expiry_minutes=60)

    result = fixture.service.process_point_code(code.code, "U1")

    assert result.success is True
    assert result.error is None
    assert "50 points" in result.message
    assert result.balance == 50
    assert fixture.ledger.get_balance("U1", "biz-1") == 50
    stored = fixture.store.point_codes[code.id]
    assert stored.is_used is True
    assert stored.used_by == "U1"
    assert stored.used_at == fixture.clock.now
    assert result.point_code is not None and result.point_code.is_used is True


def test_scenario_b_redeem_with_insufficient_balance(fixture: ServiceFixture) -> None:
    fixture.ledger.set_balance("U2", "biz-1", 40)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 100)

    result = fixture.service.process_point_code(code.code, "U2")

    assert result.success is False
    assert result.error is PointCodeError.INSUFFICIENT_BALANCE
    assert "need 100" in result.message
    assert "have 40" in result.message
    assert fixture.ledger.get_balance("U2", "biz-1") == 40
    assert fixture.store.point_codes[code.id].is_used is False
    assert fixture.store.redemptions == []


def test_scenario_c_redeem_debits_and_records_history(fixture: ServiceFixture) -> None:
    fixture.ledger.set_balance("U3", "biz-1", 100)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 30)

    result = fixture.service.process_point_code(code.code, "U3")

    assert result.success is True
    assert "30 points" in result.message
    assert result.balance == 70
    assert fixture.ledger.get_balance("U3", "biz-1") == 70
    assert len(fixture.store.redemptions) == 1
    record = fixture.store.redemptions[0]
    assert record.user_id == "U3"
    assert record.point_amount == 30
    assert record.business_id == "biz-1"
    assert record.program_id == "prog-1"
    assert record.code_id == code.id
    assert record.redeemed_at == fixture.clock.now
    assert record.id


def test_scenario_d_expired_code_is_rejected(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 25, expiry_minutes=1)
    fixture.clock.advance(minutes=1, seconds=1)

    result = fixture.service.process_point_code(code.code, "U4")

    assert result.success is False
    assert result.error is PointCodeError.EXPIRED
    assert result.message == "This code has expired."
    assert fixture.ledger.get_balance("U4", "biz-1") == 0
    assert fixture.store.point_codes[code.id].is_used is False


def test_expired_redeem_fails_even_with_sufficient_balance(
    fixture: ServiceFixture,
) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 500)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 10, expiry_minutes=5)
    fixture.clock.advance(minutes=6)

    result = fixture.service.process_point_code(code.code, "U1")

    assert result.error is PointCodeError.EXPIRED
    assert fixture.ledger.get_balance("U1", "biz-1") == 500
    assert fixture.store.redemptions == []


def test_code_is_still_usable_exactly_at_expiry(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 5, expiry_minutes=1)
    fixture.clock.advance(minutes=1)

    result = fixture.service.process_point_code(code.code, "U4")

    assert result.success is True


def test_code_is_not_listed_as_active_exactly_at_expiry(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 5, expiry_minutes=60)
    fixture.clock.advance(minutes=59, seconds=59)
    before = fixture.service.get_business_active_codes("biz-1")
    fixture.clock.advance(seconds=1)

    at_expiry = fixture.service.get_business_active_codes("biz-1")

    assert fixture.clock.now == code.expires_at
    assert [c.id for c in before] == [code.id]
    assert at_expiry == []


def test_scenario_e_other_business_cannot_invalidate(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("B1", "prog-1", 10)

    result = fixture.service.invalidate_code(code.id, "B2")

    assert result.success is False
    assert result.error is PointCodeError.PERMISSION_DENIED
    assert result.message == "You do not have permission to manage this code."
    active = fixture.service.get_business_active_codes("B1")
    assert [c.id for c in active] == [code.id]
    assert fixture.service.process_point_code(code.code, "U1").success is True


# -------- 사용: 속성 --------


def test_code_can_only_be_used_once(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)

    first = fixture.service.process_point_code(code.code, "U1")
    second = fixture.service.process_point_code(code.code, "U2")

    assert first.success is True
    assert second.success is False
    assert second.error is PointCodeError.ALREADY_USED
    assert second.message == "This code has already been used."
    assert fixture.ledger.get_balance("U1", "biz-1") == 10
    assert fixture.ledger.get_balance("U2", "biz-1") == 0


def test_concurrent_processing_succeeds_exactly_once(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    barrier = threading.Barrier(8)

    def _attempt(index: int):
        barrier.wait()
        return fixture.service.process_point_code(code.code, f"user-{index}")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(_attempt, range(8)))

    successes = [r for r in results if r.success]
    failures = [r for r in results if not r.success]
    assert len(successes) == 1
    assert all(r.error is PointCodeError.ALREADY_USED for r in failures)
    total = sum(fixture.ledger.get_balance(f"user-{i}", "biz-1") for i in range(8))
    assert total == 10


def test_concurrent_redeems_never_overdraw_balance(fixture: ServiceFixture) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 100)
    codes = [
        fixture.service.generate_redeem_code("biz-1", "prog-1", 30) for _ in range(6)
    ]
    barrier = threading.Barrier(len(codes))

    def _attempt(code_string: str):
        barrier.wait()
        return fixture.service.process_point_code(code_string, "U1")

    with ThreadPoolExecutor(max_workers=len(codes)) as pool:
        results = list(pool.map(_attempt, [c.code for c in codes]))

    successes = [r for r in results if r.success]
    assert len(successes) == 3
    assert fixture.ledger.get_balance("U1", "biz-1") == 10
    assert len(fixture.store.redemptions) == 3


def test_balance_never_goes_negative_over_a_sequence(fixture: ServiceFixture) -> None:
    steps = [
        (PointCodeKind.EARN, 20),
        (PointCodeKind.REDEEM, 50),
        (PointCodeKind.REDEEM, 15),
        (PointCodeKind.EARN, 5),
        (PointCodeKind.REDEEM, 10),
        (PointCodeKind.REDEEM, 1),
    ]
    expected = 0
    for kind, amount in steps:
        if kind is PointCodeKind.EARN:
            code = fixture.service.generate_earn_code("biz-1", "prog-1", amount)
        else:
            code = fixture.service.generate_redeem_code("biz-1", "prog-1", amount)

        result = fixture.service.process_point_code(code.code, "U1")

        if kind is PointCodeKind.EARN:
            expected += amount
            assert result.success is True
        elif amount <= expected:
            expected -= amount
            assert result.success is True
        else:
            assert result.error is PointCodeError.INSUFFICIENT_BALANCE
        balance = fixture.ledger.get_balance("U1", "biz-1")
        assert balance == expected
        assert balance >= 0


def test_earn_adds_to_existing_balance(fixture: ServiceFixture) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 75)
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 25)

    fixture.service.process_point_code(code.code, "U1")

    assert fixture.ledger.get_balance("U1", "biz-1") == 100


def test_balances_are_kept_per_business(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 25)

    fixture.service.process_point_code(code.code, "U1")

    assert fixture.ledger.get_balance("U1", "biz-1") == 25
    assert fixture.ledger.get_balance("U1", "biz-2") == 0


def test_unknown_code_is_invalid(fixture: ServiceFixture) -> None:
    result = fixture.service.process_point_code("ZZZZ9999", "U1")

    assert result.success is False
    assert result.error is PointCodeError.NOT_FOUND
    assert result.message == "Invalid code."


def test_code_lookup_is_case_sensitive_but_trims_whitespace(
    fixture: ServiceFixture,
) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)

    lowered = fixture.service.process_point_code(code.code.lower(), "U1")
    padded = fixture.service.process_point_code(f"  {code.code}\n", "U1")

    assert lowered.error is PointCodeError.NOT_FOUND
    assert padded.success is True


def test_index_entry_without_point_code_reports_missing_details(
    fixture: ServiceFixture,
) -> None:
    fixture.store.code_index["ORPHAN22"] = "missing-id"

    result = fixture.service.process_point_code("ORPHAN22", "U1")

    assert result.error is PointCodeError.NOT_FOUND
    assert result.message == "Code details not found."


def test_used_check_comes_before_expiry_check(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10, expiry_minutes=5)
    fixture.service.process_point_code(code.code, "U1")
    fixture.clock.advance(minutes=10)

    result = fixture.service.process_point_code(code.code, "U2")

    assert result.error is PointCodeError.ALREADY_USED


def test_storage_failure_is_reported_without_raising() -> None:
    store = InMemoryStore()
    repo = FailingPointCodeRepository(store)
    fixture = _build_fixture(point_code_repo=repo, store=store)
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    repo.fail_lookup = True

    result = fixture.service.process_point_code(code.code, "U1")

    assert result.success is False
    assert result.error is PointCodeError.STORAGE_FAILURE
    assert result.message == "An error occurred while processing the code."
    assert "unreachable" not in result.message


class InterleavingPointCodeRepository(InMemoryPointCodeRepository):
    """첫 교환 요청의 조회 직후, 원자적 처리 직전에 다른 요청을 끝까지 실행한다."""

    def __init__(self, store: InMemoryStore) -> None:
        super().__init__(store)
        self.interleaved = None
        self.results = []

    def redeem(self, point_code, user_id, now, record):  # type: ignore[override]
        if self.interleaved is not None:
            run, self.interleaved = self.interleaved, None
            self.results.append(run())
        return super().redeem(point_code, user_id, now, record)


def test_same_user_interleaved_redeems_yield_one_already_used() -> None:
    store = InMemoryStore()
    repo = InterleavingPointCodeRepository(store)
    fixture = _build_fixture(point_code_repo=repo, store=store)
    fixture.ledger.set_balance("U1", "biz-1", 30)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 30)
    repo.interleaved = lambda: fixture.service.process_point_code(code.code, "U1")

    outer = fixture.service.process_point_code(code.code, "U1")
    [inner] = repo.results

    assert inner.success is True
    assert outer.success is False
    assert outer.error is PointCodeError.ALREADY_USED
    assert outer.message == "This code has already been used."
    assert fixture.ledger.get_balance("U1", "biz-1") == 0
    assert len(fixture.store.redemptions) == 1


def test_concurrent_same_user_redeems_never_report_insufficient_balance(
    fixture: ServiceFixture,
) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 30)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 30)
    barrier = threading.Barrier(8)

    def _attempt(_: int):
        barrier.wait()
        return fixture.service.process_point_code(code.code, "U1")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(_attempt, range(8)))

    assert sum(1 for r in results if r.success) == 1
    assert all(
        r.error is PointCodeError.ALREADY_USED for r in results if not r.success
    )
    assert fixture.ledger.get_balance("U1", "biz-1") == 0
    assert len(fixture.store.redemptions) == 1


def test_insufficient_redeem_leaves_code_unused_and_reusable(
    fixture: ServiceFixture,
) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 10)
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 30)

    first = fixture.service.process_point_code(code.code, "U1")
    fixture.ledger.set_balance("U1", "biz-1", 40)
    second = fixture.service.process_point_code(code.code, "U1")

    assert first.error is PointCodeError.INSUFFICIENT_BALANCE
    assert "have 10" in first.message
    assert second.success is True
    assert second.balance == 10


def test_zero_point_redeem_succeeds_without_balance(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 0)

    result = fixture.service.process_point_code(code.code, "newcomer")

    assert result.success is True
    assert result.balance == 0
    assert "newcomer" not in fixture.store.users


# -------- 검증 --------


def test_validate_does_not_consume_code(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)

    result = fixture.service.validate_point_code(code.code)

    assert result.success is True
    assert result.message == "Code is valid."
    assert result.point_code is not None and result.point_code.id == code.id
    assert fixture.store.point_codes[code.id].is_used is False


def test_validate_reports_expired_code(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_redeem_code("biz-1", "prog-1", 10, expiry_minutes=1)
    fixture.clock.advance(minutes=2)

    result = fixture.service.validate_point_code(code.code)

    assert result.error is PointCodeError.EXPIRED


# -------- 목록 / 무효화 / 이력 --------


def test_active_codes_exclude_used_expired_and_other_businesses(
    fixture: ServiceFixture,
) -> None:
    active = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    used = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    short = fixture.service.generate_earn_code("biz-1", "prog-1", 10, expiry_minutes=1)
    fixture.service.generate_earn_code("biz-2", "prog-9", 10)
    later = fixture.service.generate_redeem_code("biz-1", "prog-1", 5)
    fixture.service.process_point_code(used.code, "U1")
    fixture.clock.advance(minutes=2)

    codes = fixture.service.get_business_active_codes("biz-1")

    assert [c.id for c in codes] == [active.id, later.id]
    assert short.id not in [c.id for c in codes]


def test_invalidated_code_can_no_longer_be_resolved(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)

    invalidated = fixture.service.invalidate_code(code.id, "biz-1")
    result = fixture.service.process_point_code(code.code, "U1")

    assert invalidated.success is True
    assert invalidated.message == "Code successfully invalidated."
    assert result.error is PointCodeError.NOT_FOUND
    assert code.code not in fixture.store.code_index
    assert code.id not in fixture.store.point_codes


def test_invalidate_unknown_code(fixture: ServiceFixture) -> None:
    result = fixture.service.invalidate_code("nope", "biz-1")

    assert result.success is False
    assert result.error is PointCodeError.NOT_FOUND
    assert result.message == "Code not found."


def test_used_code_cannot_be_invalidated(fixture: ServiceFixture) -> None:
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    fixture.service.process_point_code(code.code, "U1")

    result = fixture.service.invalidate_code(code.id, "biz-1")

    assert result.error is PointCodeError.ALREADY_USED
    assert code.id in fixture.store.point_codes


def test_invalidate_reports_storage_failure() -> None:
    store = InMemoryStore()
    repo = FailingPointCodeRepository(store)
    fixture = _build_fixture(point_code_repo=repo, store=store)
    code = fixture.service.generate_earn_code("biz-1", "prog-1", 10)
    repo.fail_lookup = True

    result = fixture.service.invalidate_code(code.id, "biz-1")

    assert result.success is False
    assert result.error is PointCodeError.STORAGE_FAILURE
    assert result.message == "An error occurred while invalidating the code."


def test_redemption_history_is_newest_first(fixture: ServiceFixture) -> None:
    fixture.ledger.set_balance("U1", "biz-1", 100)
    first = fixture.service.generate_redeem_code("biz-1", "prog-1", 10)
    second = fixture.service.generate_redeem_code("biz-1", "prog-1", 20)
    fixture.service.process_point_code(first.code, "U1")
    fixture.clock.advance(minutes=1)
    fixture.service.process_point_code(second.code, "U1")

    items, total = fixture.service.get_user_redemption_history("U1")

    assert total == 2
    assert [r.code_id for r in items] == [second.id, first.id]
    assert fixture.service.get_user_redemption_history("U2") == ([], 0)


def test_duplicate_code_error_carries_code() -> None:
    error = DuplicateCodeError("ABCD2345")

    assert error.code == "ABCD2345"
    assert "ABCD2345" in str(error)
