# cart_engine/schemas/abandonment.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from cart_engine.domain.enums import AbandonmentStage


class AbandonmentTrack(BaseModel):
    stage: AbandonmentStage
    last_page: Optional[str] = Field(default=None, max_length=500)


class AbandonmentRecover(BaseModel):
    order_id: UUID


class AbandonmentTrackingRead(BaseModel):
    id: UUID
    cart_id: UUID
    stage: AbandonmentStage
    last_page_visited: str | None
    abandoned_at: datetime
    emails_sent: int
    recovery_clicks: int
    last_email_sent_at: datetime | None
    is_recovered: bool
    recovered_at: datetime | None
    recovered_order_id: UUID | None

    model_config = ConfigDict(from_attributes=True)
