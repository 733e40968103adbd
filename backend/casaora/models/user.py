# backend/casaora/models/user.py
"""
User model for the Casaora platform.

Customers, professionals and administrators share one table and are
differentiated by ``role``. Authentication lives outside this service; the
check-out workflow only needs names, emails and the admin roster.
"""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func
import ulid

from ..database import Base


class UserRole(str, Enum):
    CUSTOMER = "customer"
    PROFESSIONAL = "professional"
    ADMIN = "admin"


class User(Base):
    """Account record for every party in a booking."""

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def display_name(self) -> str:
        if self.full_name:
            return str(self.full_name)
        return {
            UserRole.PROFESSIONAL.value: "Professional",
            UserRole.ADMIN.value: "Admin",
        }.get(str(self.role), "Customer")

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} role={self.role}>"
