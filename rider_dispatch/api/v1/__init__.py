"""
API v1 package initialization.

This module collects the v1 routers of the rider dispatch backend.
"""

from rider_dispatch.api.v1.dispatch import router as dispatch_router
from rider_dispatch.api.v1.locations import router as locations_router
from rider_dispatch.api.v1.orders import router as orders_router

__all__ = ["dispatch_router", "locations_router", "orders_router"]
