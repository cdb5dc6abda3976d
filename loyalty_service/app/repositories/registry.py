"""설정에 따라 저장소 구현(MongoDB / 메모리)을 선택해 묶어 주는 레이어."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from fastapi import Request

from common.mongo.client import get_database

from ..config import StoreBackend
from .balance_repository import AccountBalanceRepository
from .interfaces import (
    AccountBalanceRepositoryInterface,
    PointCodeRepositoryInterface,
    RedemptionRepositoryInterface,
)
from .memory import (
    InMemoryAccountBalanceRepository,
    InMemoryPointCodeRepository,
    InMemoryRedemptionRepository,
    InMemoryStore,
)
from .point_code_repository import PointCodeRepository
from .redemption_repository import RedemptionRepository


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Repositories:
    point_codes: PointCodeRepositoryInterface
    balances: AccountBalanceRepositoryInterface
    redemptions: RedemptionRepositoryInterface


class RepositoryProvider:
    """프로세스당 하나의 저장소 묶음을 제공한다.

    MongoDB 연결은 첫 요청 시점에 맺는다 (모듈 import 만으로 DB 에 접속하지 않도록).
    """

    def __init__(self, backend: StoreBackend) -> None:
        self.backend = backend
        self._repositories: Repositories | None = None
        self._lock = threading.Lock()
        if backend is StoreBackend.MEMORY:
            self._repositories = self._build_memory()

    def get(self) -> Repositories:
        if self._repositories is not None:
            return self._repositories

        with self._lock:
            if self._repositories is None:
                self._repositories = self._build_mongo()
        return self._repositories

    @staticmethod
    def _build_memory() -> Repositories:
        logger.warning("using in-memory store; data is lost on restart")
        store = InMemoryStore()
        return Repositories(
            point_codes=InMemoryPointCodeRepository(store),
            balances=InMemoryAccountBalanceRepository(store),
            redemptions=InMemoryRedemptionRepository(store),
        )

    @staticmethod
    def _build_mongo() -> Repositories:
        database = get_database()
        return Repositories(
            point_codes=PointCodeRepository(database),
            balances=AccountBalanceRepository(database),
            redemptions=RedemptionRepository(database),
        )


def get_repositories(request: Request) -> Repositories:
    """FastAPI DI용 저장소 묶음 팩토리."""

    provider: RepositoryProvider = request.app.state.repository_provider
    return provider.get()
