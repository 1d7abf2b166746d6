import uuid
from datetime import datetime, timedelta, timezone

import pytest

from cart_engine.domain.enums import AbandonmentStage
from cart_engine.services import abandonment_service
from cart_engine.services.exceptions import ConflictError, ResourceNotFoundError


@pytest.mark.asyncio
async def test_track_abandonment_upserts(async_db_session):
    cart_id = uuid.uuid4()

    first = await abandonment_service.track_abandonment(
        async_db_session, cart_id=cart_id, stage=AbandonmentStage.cart, last_page="/cart"
    )
    second = await abandonment_service.track_abandonment(
        async_db_session, cart_id=cart_id, stage=AbandonmentStage.payment, last_page="/checkout/pay"
    )

    assert second.id == first.id
    assert second.stage == AbandonmentStage.payment
    assert second.last_page_visited == "/checkout/pay"
    assert second.is_recovered is False
    assert second.emails_sent == 0


@pytest.mark.asyncio
async def test_create_tracking_twice_conflicts(async_db_session):
    cart_id = uuid.uuid4()
    await abandonment_service.create_abandonment_tracking(
        async_db_session, cart_id=cart_id, stage=AbandonmentStage.checkout
    )
    with pytest.raises(ConflictError):
        await abandonment_service.create_abandonment_tracking(
            async_db_session, cart_id=cart_id, stage=AbandonmentStage.checkout
        )


@pytest.mark.asyncio
async def test_mark_recovered(async_db_session):
    cart_id, order_id = uuid.uuid4(), uuid.uuid4()
    await abandonment_service.track_abandonment(async_db_session, cart_id=cart_id, stage=AbandonmentStage.cart)

    tracking = await abandonment_service.mark_recovered(async_db_session, cart_id=cart_id, order_id=order_id)

    assert tracking.is_recovered is True
    assert tracking.recovered_order_id == order_id
    assert tracking.recovered_at is not None


@pytest.mark.asyncio
async def test_mark_recovered_without_tracking(async_db_session):
    with pytest.raises(ResourceNotFoundError):
        await abandonment_service.mark_recovered(async_db_session, cart_id=uuid.uuid4(), order_id=uuid.uuid4())
    assert (
        await abandonment_service.mark_recovered(
            async_db_session, cart_id=uuid.uuid4(), order_id=uuid.uuid4(), missing_ok=True
        )
        is None
    )


@pytest.mark.asyncio
async def test_get_unrecovered_never_returns_recovered_rows(async_db_session):
    now = datetime.now(timezone.utc)
    old_open, old_recovered, fresh = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    for cart_id in (old_open, old_recovered, fresh):
        await abandonment_service.track_abandonment(async_db_session, cart_id=cart_id, stage=AbandonmentStage.cart)
    for cart_id in (old_open, old_recovered):
        tracking = await abandonment_service.get_tracking(async_db_session, cart_id)
        tracking.abandoned_at = now - timedelta(days=2)
    await async_db_session.flush()
    await abandonment_service.mark_recovered(async_db_session, cart_id=old_recovered, order_id=uuid.uuid4())

    rows = await abandonment_service.get_unrecovered(async_db_session, older_than=now - timedelta(hours=1))

    assert [row.cart_id for row in rows] == [old_open]
    assert all(row.is_recovered is False for row in rows)


@pytest.mark.asyncio
async def test_recovery_counters(async_db_session):
    cart_id = uuid.uuid4()
    await abandonment_service.track_abandonment(async_db_session, cart_id=cart_id, stage=AbandonmentStage.checkout)

    await abandonment_service.record_recovery_email(async_db_session, cart_id=cart_id)
    await abandonment_service.record_recovery_email(async_db_session, cart_id=cart_id)
    tracking = await abandonment_service.record_recovery_click(async_db_session, cart_id=cart_id)

    assert tracking.emails_sent == 2
    assert tracking.recovery_clicks == 1
    assert tracking.last_email_sent_at is not None

    with pytest.raises(ResourceNotFoundError):
        await abandonment_service.record_recovery_click(async_db_session, cart_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_analytics_filters(async_db_session):
    stages = [AbandonmentStage.cart, AbandonmentStage.checkout, AbandonmentStage.checkout, AbandonmentStage.payment]
    cart_ids = [uuid.uuid4() for _ in stages]
    for cart_id, stage in zip(cart_ids, stages):
        await abandonment_service.track_abandonment(async_db_session, cart_id=cart_id, stage=stage)
    await abandonment_service.mark_recovered(async_db_session, cart_id=cart_ids[1], order_id=uuid.uuid4())

    rows, total = await abandonment_service.list_abandonment_analytics(async_db_session, stage=AbandonmentStage.checkout)
    assert total == 2
    assert {row.cart_id for row in rows} == {cart_ids[1], cart_ids[2]}

    rows, total = await abandonment_service.list_abandonment_analytics(
        async_db_session, stage=AbandonmentStage.checkout, is_recovered=False
    )
    assert [row.cart_id for row in rows] == [cart_ids[2]]

    rows, total = await abandonment_service.list_abandonment_analytics(async_db_session, page=2, limit=3)
    assert total == 4
    assert len(rows) == 1

    _, total = await abandonment_service.list_abandonment_analytics(
        async_db_session, date_from=datetime.now(timezone.utc) + timedelta(hours=1)
    )
    assert total == 0
