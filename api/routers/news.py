from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from app.models.news import NewsEntry
from app.runtime import IngestRuntime
from services.ingest_errors import StoreError

router = APIRouter(
    prefix="/api",
    tags=["news"],
)


class CycleSummaryOut(BaseModel):
    succeeded: int
    failed: int
    total: int
    duration_s: float


class HealthResponse(BaseModel):
    status: str
    scheduler: str
    feed_count: int
    interval_s: float
    last_cycle: Optional[CycleSummaryOut] = None
    checked_at: datetime


def get_runtime(request: Request) -> IngestRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return runtime


@router.get("/news", response_model=List[NewsEntry])
async def get_news(
    limit: Optional[int] = Query(
        None,
        ge=1,
        le=100,
        description="Maximum number of entries; omitted means the configured default.",
    ),
    runtime: IngestRuntime = Depends(get_runtime),
) -> List[NewsEntry]:
    try:
        return await runtime.news_service.get_news(limit or 0)
    except StoreError as exc:
        runtime.logger.error("news_read_failed", limit=limit, error=str(exc))
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc


@router.get("/health", response_model=HealthResponse)
async def health(runtime: IngestRuntime = Depends(get_runtime)) -> HealthResponse:
    scheduler = runtime.scheduler
    summary = scheduler.last_summary
    return HealthResponse(
        status="ok",
        scheduler=scheduler.state.value,
        feed_count=len(scheduler.addresses),
        interval_s=scheduler.interval_s,
        last_cycle=(
            CycleSummaryOut(
                succeeded=summary.succeeded,
                failed=summary.failed,
                total=summary.total,
                duration_s=summary.duration_s,
            )
            if summary is not None
            else None
        ),
        checked_at=datetime.now(timezone.utc),
    )
