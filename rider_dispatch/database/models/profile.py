"""
Profile model for customers, riders and administrators.

A profile carries the identity and role used for access control, the rider's
accepting-orders flag, the rider's latest known position and the cumulative
delivery counters maintained by the order lifecycle.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Float,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from rider_dispatch.database.base import BaseModel


class UserRole(str, enum.Enum):
    """Closed set of profile roles used at every access-control checkpoint."""

    CUSTOMER = "customer"
    RIDER = "rider"
    ADMIN = "admin"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"Invalid role: {value}")

    @property
    def participates_in_dispatch(self) -> bool:
        match self:
            case UserRole.RIDER:
                return True
            case UserRole.CUSTOMER | UserRole.ADMIN:
                return False

    @property
    def can_cancel_any_order(self) -> bool:
        match self:
            case UserRole.ADMIN:
                return True
            case UserRole.CUSTOMER | UserRole.RIDER:
                return False


class Profile(BaseModel):
    """
    Profile row for any platform participant.

    Attributes:
        user_id: Identifier of the account in the auth provider
        display_name: Name shown to other participants
        mobile: Contact number shown on order cards
        role: Closed role variant
        is_active: Rider accepting-orders flag
        lat, lng: Current position (riders only)
        location_timestamp: Epoch milliseconds of the current position sample
        location_updated_at: Wall clock time the position was stored
        daily_quota: Target number of deliveries per day
        total_deliveries: Cumulative delivered orders
        total_earnings: Cumulative delivery fees earned
        last_order_at: Time of the rider's last successful claim
    """

    __tablename__ = "profiles"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        unique=True,
        comment="Auth provider account identifier",
    )

    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name",
    )

    mobile: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Mobile number",
    )

    address: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Default address",
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(
            UserRole,
            name="user_role",
            native_enum=False,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True,
        comment="Profile role for access control",
    )

    is_active: Mapped[bool] = mapped_column(
        default=False,
        nullable=False,
        comment="Rider is accepting new orders",
    )

    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    location_timestamp: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Epoch milliseconds of the current position sample",
    )

    location_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Time the current position was stored",
    )

    daily_quota: Mapped[int] = mapped_column(
        default=0,
        nullable=False,
        comment="Target deliveries per day",
    )

    total_deliveries: Mapped[int] = mapped_column(
        default=0,
        nullable=False,
        comment="Cumulative delivered orders",
    )

    total_earnings: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Cumulative delivery fees earned",
    )

    last_order_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Time of the last successful claim",
    )

    __table_args__ = (
        Index("ix_profiles_role_active", "role", "is_active"),
        CheckConstraint("total_deliveries >= 0", name="ck_profiles_deliveries_non_negative"),
        CheckConstraint("lat IS NULL OR (lat >= -90 AND lat <= 90)", name="ck_profiles_lat_range"),
        CheckConstraint("lng IS NULL OR (lng >= -180 AND lng <= 180)", name="ck_profiles_lng_range"),
    )

    @property
    def is_rider(self) -> bool:
        return self.role.participates_in_dispatch

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None
