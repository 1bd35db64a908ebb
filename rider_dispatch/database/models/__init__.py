"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata for
Alembic and for ``create_all`` in the test suite.
"""

from rider_dispatch.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from rider_dispatch.database.models.profile import Profile, UserRole
from rider_dispatch.database.models.order import Order, OrderItem, OrderStatusHistory
from rider_dispatch.database.models.location import RiderLocationHistory

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Profile",
    "UserRole",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "RiderLocationHistory",
]
