from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.db.operations import commit_async
from cart_engine.db.session_async import get_async_db
from cart_engine.domain.enums import AbandonmentStage
from cart_engine.schemas.abandonment import (
    AbandonmentRecover,
    AbandonmentTrack,
    AbandonmentTrackingRead,
)
from cart_engine.schemas.pagination import PaginatedAbandonmentTracking, page_count
from cart_engine.services import abandonment_service
from cart_engine.services.exceptions import ResourceNotFoundError

router = APIRouter(prefix="/abandonment", tags=["abandonment"])


@router.get("", response_model=PaginatedAbandonmentTracking)
async def list_analytics(
    stage: AbandonmentStage | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    is_recovered: bool | None = Query(default=None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
):
    rows, total = await abandonment_service.list_abandonment_analytics(
        db,
        stage=stage,
        date_from=date_from,
        date_to=date_to,
        is_recovered=is_recovered,
        page=page,
        limit=limit,
    )
    return PaginatedAbandonmentTracking(
        total=total,
        page=page,
        pages=page_count(total, limit),
        limit=limit,
        items=[AbandonmentTrackingRead.model_validate(row) for row in rows],
    )


@router.get("/unrecovered", response_model=list[AbandonmentTrackingRead])
async def list_unrecovered(
    older_than_hours: int = Query(24, ge=0, description="Minimum age of the abandonment"),
    limit: int | None = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_async_db),
):
    cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
    return await abandonment_service.get_unrecovered(db, older_than=cutoff, limit=limit)


@router.get("/{cart_id}", response_model=AbandonmentTrackingRead)
async def get_tracking(cart_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    tracking = await abandonment_service.get_tracking(db, cart_id)
    if tracking is None:
        raise ResourceNotFoundError("Abandonment tracking not found")
    return tracking


@router.post("/{cart_id}", response_model=AbandonmentTrackingRead, status_code=status.HTTP_201_CREATED)
async def create_tracking(
    cart_id: uuid.UUID,
    payload: AbandonmentTrack,
    db: AsyncSession = Depends(get_async_db),
):
    tracking = await abandonment_service.create_abandonment_tracking(
        db, cart_id=cart_id, stage=payload.stage, last_page=payload.last_page
    )
    await commit_async(db)
    return tracking


@router.put("/{cart_id}", response_model=AbandonmentTrackingRead)
async def track(
    cart_id: uuid.UUID,
    payload: AbandonmentTrack,
    response: Response,
    db: AsyncSession = Depends(get_async_db),
):
    existed = await abandonment_service.get_tracking(db, cart_id) is not None
    tracking = await abandonment_service.track_abandonment(
        db, cart_id=cart_id, stage=payload.stage, last_page=payload.last_page
    )
    await commit_async(db)
    if not existed:
        response.status_code = status.HTTP_201_CREATED
    return tracking


@router.post("/{cart_id}/recover", response_model=AbandonmentTrackingRead)
async def mark_recovered(
    cart_id: uuid.UUID,
    payload: AbandonmentRecover,
    db: AsyncSession = Depends(get_async_db),
):
    tracking = await abandonment_service.mark_recovered(db, cart_id=cart_id, order_id=payload.order_id)
    await commit_async(db)
    return tracking


@router.post("/{cart_id}/emails", response_model=AbandonmentTrackingRead)
async def record_email(cart_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    tracking = await abandonment_service.record_recovery_email(db, cart_id=cart_id)
    await commit_async(db)
    return tracking


@router.post("/{cart_id}/clicks", response_model=AbandonmentTrackingRead)
async def record_click(cart_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    tracking = await abandonment_service.record_recovery_click(db, cart_id=cart_id)
    await commit_async(db)
    return tracking
