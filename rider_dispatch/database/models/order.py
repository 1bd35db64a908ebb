"""
Order models for delivery dispatch and lifecycle tracking.

Orders are created by the checkout flow and afterwards mutated only through
the order lifecycle service. They are never physically deleted: cancellation
is a status. Line items are immutable snapshots taken at order time, and
every status change is recorded in ``order_status_history``.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rider_dispatch.database.base import Base, BaseModel, UUIDMixin
from rider_dispatch.database.models.profile import Profile
from rider_dispatch.services.orders.enums import OrderStatus


def _status_column_type(name: str) -> SQLEnum:
    return SQLEnum(
        OrderStatus,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda e: [member.value for member in e],
    )


class Order(BaseModel):
    """
    Delivery order.

    Attributes:
        status: Lifecycle status
        user_id: Customer profile who placed the order
        rider_id: Assigned rider profile, null while unassigned
        subtotal: Sum of line items
        delivery_fee: Fee paid to the rider on delivery
        total_amount: subtotal + delivery_fee
        dropoff_address: Destination address string
        dropoff_lat, dropoff_lng: Destination coordinates
        landmark: Optional landmark near the destination
        payment_method: Payment method chosen at checkout
        confirmed_at: Time the order was claimed
        picked_up_at: Time the rider picked the order up
        delivered_at: Time the order was delivered
        cancelled_at: Time the order was cancelled
    """

    __tablename__ = "orders"

    status: Mapped[OrderStatus] = mapped_column(
        _status_column_type("order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Order lifecycle status",
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Customer profile",
    )

    rider_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Assigned rider profile",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    delivery_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )

    dropoff_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    dropoff_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dropoff_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    landmark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="cod",
    )

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    customer: Mapped[Profile] = relationship(
        Profile,
        foreign_keys=[user_id],
        lazy="raise_on_sql",
    )

    rider: Mapped[Optional[Profile]] = relationship(
        Profile,
        foreign_keys=[rider_id],
        lazy="raise_on_sql",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        lazy="raise_on_sql",
        order_by="OrderStatusHistory.created_at",
    )

    __table_args__ = (
        Index("ix_orders_status_rider_created", "status", "rider_id", "created_at"),
        CheckConstraint(
            "(status = 'pending' AND rider_id IS NULL) "
            "OR status = 'cancelled' "
            "OR (status NOT IN ('pending', 'cancelled') AND rider_id IS NOT NULL)",
            name="ck_orders_rider_matches_status",
        ),
        CheckConstraint("delivery_fee >= 0", name="ck_orders_delivery_fee_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
    )

    @property
    def has_destination(self) -> bool:
        return self.dropoff_lat is not None and self.dropoff_lng is not None


class OrderItem(Base, UUIDMixin):
    """Line item snapshot; immutable after order creation."""

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        comment="Catalog product reference",
    )

    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Unit price snapshot at order time",
    )

    order: Mapped[Order] = relationship(Order, back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class OrderStatusHistory(Base, UUIDMixin):
    """Audit trail row written for every committed status change."""

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    from_status: Mapped[Optional[OrderStatus]] = mapped_column(
        _status_column_type("order_status_from"),
        nullable=True,
    )

    to_status: Mapped[OrderStatus] = mapped_column(
        _status_column_type("order_status_to"),
        nullable=False,
    )

    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="Profile that performed the transition",
    )

    change_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    order: Mapped[Order] = relationship(Order, back_populates="status_history")
