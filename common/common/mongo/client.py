from __future__ import annotations

import logging
import threading
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def _connect(uri: str) -> MongoClient:
    client = MongoClient(uri, tz_aware=True)
    try:
        client.admin.command("ping")
    except Exception as exc:  # noqa: BLE001
        client.close()
        raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc
    return client


def _select_database(client: MongoClient) -> Database:
    db_name = get_mongo_db_name()
    if db_name:
        return client[db_name]
    try:
        return client.get_default_database()
    except Exception as exc:  # noqa: BLE001
        client.close()
        raise RuntimeError(
            "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
        ) from exc


def get_database() -> Database:
    """프로세스 전역 Database 를 반환한다.

    첫 호출에서 MONGO_URI 로 접속해 ping 으로 검증하고, 포인트 코드 관련 인덱스를 만든다.
    인덱스 생성 실패는 기동 실패로 취급한다.
    """

    global _client, _db

    if _db is not None:
        return _db

    with _lock:
        if _db is None:
            client = _connect(get_mongo_uri())
            db = _select_database(client)
            ensure_indexes(db)
            _client, _db = client, db
            logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
    return _db


def close_client() -> None:
    """앱 종료 시 커넥션 풀을 닫는다. 접속한 적이 없으면 아무것도 하지 않는다."""

    global _client, _db

    with _lock:
        if _client is not None:
            _client.close()
        _client, _db = None, None


def ensure_indexes(db: Database) -> None:
    """필수 인덱스를 생성한다. 같은 이름으로 다시 호출해도 MongoDB 가 무시한다.

    code_index 는 _id 가 코드 문자열이므로 별도 유니크 인덱스가 필요 없다.
    """

    # 비즈니스별 활성 코드 목록
    db["point_codes"].create_index(
        [("business_id", ASCENDING), ("is_used", ASCENDING), ("expires_at", ASCENDING)],
        name="idx_business_active",
    )

    # 유저별 교환 이력 (최신순)
    db["redemptions"].create_index(
        [("user_id", ASCENDING), ("redeemed_at", DESCENDING), ("_id", DESCENDING)],
        name="idx_user_redeemed_at",
    )
