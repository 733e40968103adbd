# backend/casaora/repositories/user_repository.py
"""User Repository for the Casaora platform."""

import logging
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import User, UserRole
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User data access."""

    def __init__(self, db: Session):
        super().__init__(db, User)

    def list_active_admins(self) -> List[User]:
        """Return every active administrator, used for operational alerts."""
        try:
            return (
                self._build_query()
                .filter(User.role == UserRole.ADMIN.value, User.is_active.is_(True))
                .order_by(User.email)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing admins: {str(e)}")
            raise RepositoryException(f"Failed to list admins: {str(e)}") from e
