from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Simple health check endpoint.

    ライブネス/レディネス確認用の簡易エンドポイント。
    """
    return {"status": "ok"}


@router.get("/metrics")
def metrics(request: Request) -> JSONResponse:
    """Return in-memory metrics snapshot.

    p95/エラー/件数をパス別に返す簡易メトリクス。
    """
    return JSONResponse(content={"paths": request.app.state.metrics.snapshot()})
