from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.eventbus.kafka import get_kafka_event_bus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client

from .api.health import router as health_router
from .api.v1 import api_router
from .config import AppConfig, load_config
from .repositories.registry import RepositoryProvider


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    yield
    bus = get_kafka_event_bus()
    if bus is not None:
        bus.close()
    close_client()


def create_app(config: AppConfig | None = None) -> FastAPI:
    """loyalty-service 앱을 생성한다.

    저장소 구현(mongo/memory)은 여기서 한 번 결정되어 app.state 로 주입된다.
    """
    setup_logger(name="loyalty-service")
    if config is None:
        config = load_config()

    app = FastAPI(
        title="Loyalty Point Code Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.repository_provider = RepositoryProvider(config.store.backend)
    logger.info("loyalty-service configured (store=%s)", config.store.backend.value)

    app.add_middleware(RequestTraceMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run(
        "loyalty_service.app.main:app",
        host="0.0.0.0",
        port=app.state.config.port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
