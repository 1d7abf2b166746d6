# cart_engine/models/cart.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cart_engine.db.session import Base
from cart_engine.db.types import GUID
from cart_engine.domain.enums import AbandonmentStage, CartStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        Index("ix_carts_user_id_status", "user_id", "status"),
        Index("ix_carts_session_id_status", "session_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    status: Mapped[CartStatus] = mapped_column(Enum(CartStatus), default=CartStatus.active, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vendor_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    shipping_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    coupon_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    converted_order_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Optimistic concurrency token: a stale write raises StaleDataError on flush.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.position",
        collection_class=ordering_list("position"),
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def destination_country(self) -> str | None:
        if not self.shipping_address:
            return None
        country = self.shipping_address.get("country")
        return str(country).upper() if country else None

    @property
    def active_items(self) -> list["CartItem"]:
        return [item for item in self.items if not item.is_saved_for_later]


class CartItem(Base):
    __tablename__ = "cart_items"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    cart_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, index=True)
    variant_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)
    vendor_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    # Display snapshot, refreshed from the catalog on mutation only.
    product_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    stock_snapshot: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_saved_for_later: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_gift: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gift_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    cart = relationship("Cart", back_populates="items")

    @property
    def key(self) -> tuple[uuid.UUID, uuid.UUID | None]:
        return self.product_id, self.variant_id


class CartAbandonmentTracking(Base):
    __tablename__ = "cart_abandonment_tracking"
    __table_args__ = (Index("ix_cart_abandonment_tracking_unrecovered", "is_recovered", "abandoned_at"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4, nullable=False)
    # No FK: tracking rows outlive merged and cleaned-up carts.
    cart_id: Mapped[uuid.UUID] = mapped_column(GUID(), nullable=False, unique=True, index=True)

    stage: Mapped[AbandonmentStage] = mapped_column(Enum(AbandonmentStage), nullable=False)
    last_page_visited: Mapped[str | None] = mapped_column(String(500), nullable=True)
    abandoned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    emails_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    recovery_clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_recovered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recovered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    recovered_order_id: Mapped[uuid.UUID | None] = mapped_column(GUID(), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
