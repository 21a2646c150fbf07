from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..auth import get_current_user_id
from ..config import settings
from ..errors import SRSError, ValidationError
from ..logging import logger
from ..models.progress import (
    BatchReviewItemResult,
    BatchReviewRequest,
    BatchReviewResponse,
    DeleteProgressResponse,
    DueItem,
    DueItemsResponse,
    MasteryBreakdown,
    ProgressListResponse,
    ProgressResponse,
    ReviewRequest,
    ReviewResponse,
    StatsResponse,
)
from ..srs import SRSService
from ..srs.filters import parse_jlpt_levels

router = APIRouter(tags=["srs"])


def get_srs_service(request: Request) -> SRSService:
    """アプリ生成時に組み立てたサービスを取り出す。"""

    service = getattr(request.app.state, "srs_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="SRS service is not ready")
    return service


def _to_http(exc: SRSError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _levels_or_400(raw: str | None) -> tuple[int, ...] | None:
    try:
        return parse_jlpt_levels(raw)
    except ValidationError as exc:
        raise _to_http(exc) from exc


@router.get("/due", response_model=DueItemsResponse, summary="復習期限が来た語彙を取得")
async def due_items(
    limit: int = Query(default=settings.srs_due_default_limit, ge=1, le=settings.srs_due_max_limit),
    jlpt: str | None = Query(default=None, description="Comma separated JLPT levels, e.g. 1,2,3"),
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> DueItemsResponse:
    """Return due items, most overdue first.

    - jlpt 指定時は語彙カタログと突合して絞り込む
    - 走査予算内で全件を見切れなかった場合、total は推定値（total_is_estimate=true）
    """
    levels = _levels_or_400(jlpt)
    try:
        result = await service.due_items(user_id, limit, levels)
    except SRSError as exc:
        logger.error("srs_due_items_failed", user_id=user_id, error=exc.message)
        raise _to_http(exc) from exc
    return DueItemsResponse(
        items=[
            DueItem(
                progress=entry.progress,
                vocabulary=dict(entry.vocabulary) if entry.vocabulary is not None else None,
            )
            for entry in result.items
        ],
        total=result.total,
        total_is_estimate=result.total_is_estimate,
    )


@router.get("/stats", response_model=StatsResponse, summary="学習進捗の統計")
async def srs_stats(
    jlpt: str | None = Query(default=None, description="Comma separated JLPT levels, e.g. 1,2,3"),
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> StatsResponse:
    levels = _levels_or_400(jlpt)
    try:
        stats = await service.stats(user_id, levels)
    except SRSError as exc:
        logger.error("srs_stats_failed", user_id=user_id, error=exc.message)
        raise _to_http(exc) from exc
    breakdown = stats.mastery_breakdown
    return StatsResponse(
        total_items=stats.total_items,
        due_today=stats.due_today,
        mastery_breakdown=MasteryBreakdown(
            new=breakdown.new,
            learning=breakdown.learning,
            reviewing=breakdown.reviewing,
            mastered=breakdown.mastered,
        ),
        average_ease_factor=stats.average_ease_factor,
        total_reviews=stats.total_reviews,
        accuracy_rate=stats.accuracy_rate,
    )


@router.post("/review", response_model=ReviewResponse, summary="採点して次回復習日を更新")
async def record_review(
    req: ReviewRequest,
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> ReviewResponse:
    """Grade one item with SM-2. 404 when the vocabulary is unknown, 409 on a lost race."""
    try:
        progress = await service.record_review(user_id, req.vocabulary_id, req.quality)
    except SRSError as exc:
        logger.warning(
            "srs_review_failed",
            user_id=user_id,
            vocabulary_id=req.vocabulary_id,
            error_type=exc.__class__.__name__,
            error=exc.message,
        )
        raise _to_http(exc) from exc
    return ReviewResponse(progress=progress)


@router.post("/batch-review", response_model=BatchReviewResponse, summary="複数語をまとめて採点")
async def batch_review(
    req: BatchReviewRequest,
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> BatchReviewResponse:
    """Apply many reviews at once. Per-item failures are reported, never raised."""
    try:
        result = await service.process_batch(user_id, req.reviews)
    except SRSError as exc:
        raise _to_http(exc) from exc
    return BatchReviewResponse(
        processed=result.processed,
        successful=result.successful,
        failed=result.failed,
        results=[
            BatchReviewItemResult(
                vocabulary_id=outcome.vocabulary_id,
                success=outcome.success,
                error=outcome.error,
            )
            for outcome in result.results
        ],
    )


@router.get("/progress/{vocabulary_id}", response_model=ProgressResponse, summary="語彙ごとの進捗")
async def get_progress(
    vocabulary_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> ProgressResponse:
    """未学習の語は 404 ではなく progress=null を返す。"""
    try:
        progress = await service.get_progress(user_id, vocabulary_id)
    except SRSError as exc:
        raise _to_http(exc) from exc
    return ProgressResponse(progress=progress)


@router.get("/all", response_model=ProgressListResponse, summary="全進捗の一覧")
async def list_progress(
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> ProgressListResponse:
    try:
        items = await service.list_progress(user_id)
    except SRSError as exc:
        raise _to_http(exc) from exc
    return ProgressListResponse(items=items, total=len(items))


@router.delete(
    "/progress/{vocabulary_id}",
    response_model=DeleteProgressResponse,
    summary="進捗をリセット（削除）",
)
async def delete_progress(
    vocabulary_id: str,
    user_id: str = Depends(get_current_user_id),
    service: SRSService = Depends(get_srs_service),
) -> DeleteProgressResponse:
    try:
        await service.delete_progress(user_id, vocabulary_id)
    except SRSError as exc:
        raise _to_http(exc) from exc
    logger.info("srs_progress_deleted", user_id=user_id, vocabulary_id=vocabulary_id)
    return DeleteProgressResponse()
