from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI
from starlette.middleware.cors import CORSMiddleware

from .auth import get_current_user_id
from .config import settings
from .logging import configure_logging, logger
from .metrics import MetricsRegistry
from .middleware import AccessLogAndMetricsMiddleware, RequestIDMiddleware
from .routers import health, srs
from .srs import SRSService
from .store import build_stores


def build_service() -> SRSService:
    """設定値から Firestore ストアを組み立て、SRS サービスへ注入する。"""

    progress, catalog = build_stores(settings)
    return SRSService(
        progress,
        catalog,
        batch_max=settings.srs_batch_review_max,
        batch_concurrency=settings.srs_batch_concurrency,
        due_chunk_size=settings.srs_due_filter_chunk_size,
    )


def create_app(service: SRSService | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    ``service`` を渡すとそれを使い、省略時は起動時（lifespan）に Firestore へ接続する。
    テストではフェイクのストアを組み込んだサービスを直接渡す。
    """
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "srs_service", None) is None:
            app.state.srs_service = build_service()
            logger.info(
                "srs_service_started",
                progress_collection=settings.progress_collection,
                vocabulary_collection=settings.vocabulary_collection,
            )
        yield

    app = FastAPI(title="Vocab SRS API", version="0.1.0", lifespan=lifespan)
    app.state.srs_service = service
    app.state.metrics = MetricsRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Starlette では後から追加したミドルウェアが外側で実行される。
    # RequestID で採番した request_id を AccessLog 側で参照する。
    app.add_middleware(AccessLogAndMetricsMiddleware, registry=app.state.metrics)
    app.add_middleware(RequestIDMiddleware)

    if settings.disable_session_auth:
        logger.warning(
            "session_auth_disabled",
            reason="config_flag",
        )
    protected_dependency: list[Any] = [Depends(get_current_user_id)]
    app.include_router(srs.router, prefix="/api/srs", dependencies=protected_dependency)
    app.include_router(health.router)

    return app


app = create_app()
