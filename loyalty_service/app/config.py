from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import StrEnum


LOYALTY_STORE_BACKEND = "LOYALTY_STORE_BACKEND"
LOYALTY_CODE_MAX_ATTEMPTS = "LOYALTY_CODE_MAX_ATTEMPTS"
LOYALTY_SERVICE_PORT = "LOYALTY_SERVICE_PORT"

DEFAULT_CODE_MAX_ATTEMPTS = 5
DEFAULT_SERVICE_PORT = 8003


class StoreBackend(StrEnum):
    MONGO = "mongo"
    MEMORY = "memory"

    @classmethod
    def from_str(cls, value: str) -> "StoreBackend":
        normalized = value.strip().lower()
        for backend in cls:
            if backend.value == normalized:
                return backend
        raise RuntimeError(
            f"{LOYALTY_STORE_BACKEND} must be one of "
            f"{', '.join(b.value for b in cls)}, got: {value!r}"
        )


@dataclass(slots=True)
class StoreConfig:
    """저장소 선택. memory 는 로컬 개발/테스트 전용이다."""

    backend: StoreBackend = StoreBackend.MONGO


@dataclass(slots=True)
class PointCodeConfig:
    # 코드 문자열 충돌 시 새 코드로 재시도하는 최대 횟수
    max_attempts: int = DEFAULT_CODE_MAX_ATTEMPTS


@dataclass(slots=True)
class AppConfig:
    """loyalty-service 전체 설정."""

    store: StoreConfig = field(default_factory=StoreConfig)
    point_code: PointCodeConfig = field(default_factory=PointCodeConfig)
    port: int = DEFAULT_SERVICE_PORT


def _read_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer if set, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be >= 1, got: {value}")
    return value


def load_store_config() -> StoreConfig:
    raw = os.getenv(LOYALTY_STORE_BACKEND, "").strip()
    if not raw:
        return StoreConfig()
    return StoreConfig(backend=StoreBackend.from_str(raw))


def load_point_code_config() -> PointCodeConfig:
    return PointCodeConfig(
        max_attempts=_read_positive_int(
            LOYALTY_CODE_MAX_ATTEMPTS, DEFAULT_CODE_MAX_ATTEMPTS
        )
    )


def load_config() -> AppConfig:
    """환경 변수에서 loyalty-service 설정을 로드한다. 잘못된 값은 기동 시점에 실패한다."""

    return AppConfig(
        store=load_store_config(),
        point_code=load_point_code_config(),
        port=_read_positive_int(LOYALTY_SERVICE_PORT, DEFAULT_SERVICE_PORT),
    )
