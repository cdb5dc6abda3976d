from __future__ import annotations

import os


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"


def get_mongo_uri() -> str:
    """접속 URI. mongo 백엔드로 첫 요청을 처리할 때 읽으며, 비어 있으면 그 자리에서 실패한다."""

    uri = os.getenv(MONGO_URI_ENV, "").strip()
    if uri:
        return uri
    raise RuntimeError(
        f"{MONGO_URI_ENV} is not set; set it or run with LOYALTY_STORE_BACKEND=memory",
    )


def get_mongo_db_name() -> str | None:
    # None 이면 URI 경로의 DB 를 쓴다 (mongodb://host/loyalty)
    return os.getenv(MONGO_DB_NAME_ENV, "").strip() or None
