"""
Profile data access for riders and customers.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rider_dispatch.core.logging import get_logger
from rider_dispatch.database.models.profile import Profile

logger = get_logger(__name__)


class ProfileRepositoryError(Exception):
    """Base exception for profile repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class ProfileRepository:
    """Async reads and targeted updates of profile rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, profile_id: uuid.UUID) -> Optional[Profile]:
        """
        Get profile by ID, reloading column state from the database.

        Raises:
            ProfileRepositoryError: If query fails
        """
        stmt = (
            select(Profile)
            .where(Profile.id == profile_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch profile", profile_id=str(profile_id), error=str(e))
            raise ProfileRepositoryError(
                "Failed to fetch profile",
                profile_id=str(profile_id),
                error=str(e),
            ) from e

    async def set_availability(self, profile_id: uuid.UUID, is_active: bool) -> bool:
        """
        Set the accepting-orders flag.

        Returns:
            True if the profile exists and was updated
        """
        stmt = (
            update(Profile)
            .where(Profile.id == profile_id)
            .values(is_active=is_active)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to update availability",
                profile_id=str(profile_id),
                error=str(e),
            )
            raise ProfileRepositoryError(
                "Failed to update availability",
                profile_id=str(profile_id),
                error=str(e),
            ) from e
        return result.rowcount == 1
